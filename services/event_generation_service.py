"""
Event Generation Service
Converges the stored calendar projection to what the recurrence rules ask for
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, Dict, List, Optional, Tuple
from datetime import datetime, timedelta

import models
from models import CalendarEventStatus, CalendarEventType
from domain import (
    ActivityInput, ActivityMetadata, AppointmentInput, AppointmentMetadata,
    MedicationDueMetadata, ReconcileResult, SupplementDueMetadata,
)
from exceptions import ConflictError, SchedulingError
from services.calendar_store import CalendarEventStore
from services.source_store import ScheduleSource, SourceStore
from tools.recurrence import RecurrenceRuleEngine
from tools.notification_service import NotificationScheduler


logger = logging.getLogger(__name__)

PENDING = CalendarEventStatus.PENDING.value

METADATA_BY_KIND = {
    models.SourceKind.MEDICATION: MedicationDueMetadata,
    models.SourceKind.SUPPLEMENT: SupplementDueMetadata,
}


class EventGenerationService:
    """
    Service that materializes recurrence rules into calendar events.

    Each reconcile diffs the desired instants against the stored rows of one
    source and applies the minimal insert/delete inside one transaction.
    Only pending rows are ever deleted; completed and skipped rows are
    history of record.
    """

    def __init__(
        self,
        calendar_store: CalendarEventStore,
        source_store: SourceStore,
        engine: RecurrenceRuleEngine,
        notifier: NotificationScheduler,
        clock: Callable[[], datetime] = datetime.now,
        horizon_days: int = 30
    ):
        self.calendar_store = calendar_store
        self.source_store = source_store
        self.engine = engine
        self.notifier = notifier
        self.clock = clock
        self.horizon_days = horizon_days
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _lock_for(self, source_id: str):
        """Hold the per-source lock; the entry is dropped once nobody holds or awaits it"""
        lock = self._locks.get(source_id)
        if lock is None:
            lock = self._locks[source_id] = asyncio.Lock()
        self._lock_users[source_id] = self._lock_users.get(source_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[source_id] -= 1
            if self._lock_users[source_id] == 0:
                del self._lock_users[source_id]
                del self._locks[source_id]

    def default_window(self, days_ahead: Optional[int] = None) -> Tuple[datetime, datetime]:
        """[now, now + horizon) window"""
        now = self.clock()
        return now, now + timedelta(days=days_ahead or self.horizon_days)

    # ==================== RECURRING SOURCES ====================

    async def reconcile(
        self,
        source: ScheduleSource,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None
    ) -> ReconcileResult:
        """
        Converge the pending events of one source

        Args:
            source: Medication or supplement
            window_start: Inclusive window start (defaults to now)
            window_end: Exclusive window end (defaults to start + horizon)

        Returns:
            ReconcileResult with the number of inserted and deleted rows
        """
        if window_start is None or window_end is None:
            default_start, default_end = self.default_window()
            window_start = window_start or default_start
            window_end = window_end or default_end

        async with self._lock_for(source.id):
            try:
                inserted, deleted_ids = self._converge(source, window_start, window_end)
            except SchedulingError as e:
                logger.error(f"Reconcile failed for {source.kind.value} {source.id}: {e}")
                raise

        for event in inserted:
            await self.notifier.schedule_event(event)
        for event_id in deleted_ids:
            await self.notifier.cancel_event(event_id)

        result = ReconcileResult(source_id=source.id, inserted=len(inserted), deleted=len(deleted_ids))
        if not result.is_noop:
            logger.info(
                f"Reconciled {source.kind.value} {source.id}: "
                f"+{result.inserted} -{result.deleted}"
            )
        return result

    def _converge(
        self,
        source: ScheduleSource,
        window_start: datetime,
        window_end: datetime
    ) -> Tuple[List[models.CalendarEvent], List[str]]:
        now = self.clock()

        with self.calendar_store.transaction() as session:
            if not source.is_active:
                deleted = self.calendar_store.delete_by_source(source.id, after=now, db=session)
                return [], deleted

            # Past rows are history; never regenerate before now
            start = max(window_start, now)
            if start >= window_end:
                return [], []

            desired = self.engine.generate(
                source.rule, source.time_of_day, start, window_end, anchor=source.created_at
            )
            occupied = self.calendar_store.occupied_times(source.id, start, window_end, db=session)

            deleted = self.calendar_store.delete_pending_not_in(
                source.id, desired, start, window_end, db=session
            )
            # A completed/skipped row at a desired time already satisfies it
            missing = [t for t in desired if t not in occupied]
            inserted = self.calendar_store.insert_many(
                [self._event_fields(source, t) for t in missing], db=session
            )
            return inserted, deleted

    def _event_fields(self, source: ScheduleSource, scheduled_time: datetime) -> dict:
        metadata_type = METADATA_BY_KIND[source.kind]
        return {
            "profile_id": source.profile_id,
            "source_id": source.id,
            "event_type": source.event_type,
            "title": source.display_title,
            "scheduled_time": scheduled_time,
            "metadata": metadata_type(dosage=source.dosage, form=source.form),
        }

    async def reconcile_source(self, source_id: str) -> ReconcileResult:
        """Load a source and reconcile it over the default horizon"""
        source = self.source_store.get_required(source_id)
        return await self.reconcile(source)

    async def remove_source(self, source: ScheduleSource) -> ReconcileResult:
        """Drop every future pending event of a source regardless of its state"""
        async with self._lock_for(source.id):
            deleted = self.calendar_store.delete_by_source(source.id, after=self.clock())
        for event_id in deleted:
            await self.notifier.cancel_event(event_id)
        return ReconcileResult(source_id=source.id, deleted=len(deleted))

    async def regenerate_profile(
        self,
        profile_id: str,
        days_ahead: Optional[int] = None
    ) -> List[ReconcileResult]:
        """
        Roll the horizon forward for every source of a profile.

        A failing source is logged and skipped; the next run re-derives it.
        """
        window_start, window_end = self.default_window(days_ahead)
        results = []

        for source in self.source_store.list_by_profile(profile_id, active_only=False):
            try:
                results.append(await self.reconcile(source, window_start, window_end))
            except SchedulingError as e:
                logger.warning(f"Skipping {source.kind.value} {source.id} during regeneration: {e}")

        total = sum(r.inserted for r in results)
        logger.info(f"Regenerated events for profile {profile_id}: {total} new")
        return results

    # ==================== ONE-SHOT SOURCES ====================

    async def reconcile_appointment(self, appointment: AppointmentInput) -> ReconcileResult:
        """
        Keep exactly one calendar event for an appointment.

        A rescheduled appointment moves its pending event; an appointment that
        is already completed or skipped is left alone.
        """
        async with self._lock_for(appointment.id):
            inserted, deleted_ids = self._converge_appointment(appointment)

        for event in inserted:
            await self.notifier.schedule_event(event)
        for event_id in deleted_ids:
            await self.notifier.cancel_event(event_id)

        return ReconcileResult(source_id=appointment.id, inserted=len(inserted), deleted=len(deleted_ids))

    def _converge_appointment(self, appointment: AppointmentInput) -> Tuple[List[models.CalendarEvent], List[str]]:
        with self.calendar_store.transaction() as session:
            existing = self.calendar_store.get_by_source(appointment.id, db=session)
            if any(e.status != PENDING for e in existing):
                return [], []

            deleted = self.calendar_store.delete_pending_not_in(
                appointment.id, [appointment.scheduled_time], db=session
            )
            if any(e.scheduled_time == appointment.scheduled_time for e in existing):
                return [], deleted

            event = self.calendar_store.insert(
                db=session,
                profile_id=appointment.profile_id,
                source_id=appointment.id,
                event_type=CalendarEventType.APPOINTMENT,
                title=appointment.title,
                scheduled_time=appointment.scheduled_time,
                end_time=appointment.scheduled_time + timedelta(minutes=appointment.duration_minutes),
                metadata=AppointmentMetadata(
                    doctor_name=appointment.doctor_name,
                    specialty=appointment.specialty,
                    location=appointment.location,
                    reason=appointment.reason,
                ),
            )
            return [event], deleted

    async def record_activity(self, activity: ActivityInput) -> Optional[models.CalendarEvent]:
        """
        Record a logged activity as an already-completed event.

        Logging the same activity twice is a no-op that returns the stored row.
        """
        try:
            return self.calendar_store.insert(
                profile_id=activity.profile_id,
                source_id=activity.id,
                event_type=CalendarEventType.ACTIVITY,
                title=activity.activity_type.replace("_", " ").title(),
                scheduled_time=activity.start_time,
                end_time=activity.end_time,
                status=CalendarEventStatus.COMPLETED,
                completed_time=activity.end_time or activity.start_time,
                metadata=ActivityMetadata(value=activity.value, unit=activity.unit, notes=activity.notes),
            )
        except ConflictError:
            logger.debug(f"Activity {activity.id} already recorded")
            return self.calendar_store.get_by_source_and_time(activity.id, activity.start_time)
