"""
Reconciliation Actions
User-facing take/skip transitions
"""

import logging
from typing import Callable, Optional
from datetime import datetime

from models import HistoryStatus
from domain import ActionResult
from exceptions import ConcurrencyConflict, NotFoundError
from services.calendar_store import CalendarEventStore
from services.history_store import HistoryStore
from services.source_store import SourceStore
from tools.notification_service import NotificationScheduler


logger = logging.getLogger(__name__)


class ReconciliationActions:
    """
    Applies a user's take/skip to the three places it touches:

    1. the history log (committed first, on its own; the durable record)
    2. the calendar event (pending -> completed/skipped)
    3. the source inventory (atomic decrement, take only)

    A failure in step 2 never rolls back step 1.
    """

    def __init__(
        self,
        source_store: SourceStore,
        calendar_store: CalendarEventStore,
        history_store: HistoryStore,
        notifier: NotificationScheduler,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.source_store = source_store
        self.calendar_store = calendar_store
        self.history_store = history_store
        self.notifier = notifier
        self.clock = clock

    async def mark_taken(
        self,
        source_id: str,
        scheduled_time: datetime,
        notes: Optional[str] = None
    ) -> ActionResult:
        """
        Record that a dose was taken

        Args:
            source_id: Medication or supplement ID
            scheduled_time: Scheduled time of the dose
            notes: Free-text notes stored on the history entry

        Returns:
            ActionResult with the history entry, the event and remaining quantity
        """
        return await self._apply(source_id, scheduled_time, HistoryStatus.TAKEN, notes)

    async def mark_skipped(
        self,
        source_id: str,
        scheduled_time: datetime,
        notes: Optional[str] = None
    ) -> ActionResult:
        """Record that a dose was intentionally skipped"""
        return await self._apply(source_id, scheduled_time, HistoryStatus.SKIPPED, notes)

    async def _apply(
        self,
        source_id: str,
        scheduled_time: datetime,
        status: HistoryStatus,
        notes: Optional[str]
    ) -> ActionResult:
        now = self.clock()
        source = self.source_store.get_required(source_id)

        entry = self.history_store.append(
            source, scheduled_time, status, actual_time=now, notes=notes
        )
        result = ActionResult(history_entry=entry, remaining_quantity=source.current_quantity)

        await self._transition_event(result, source_id, scheduled_time, status, now)

        if status is HistoryStatus.TAKEN:
            remaining = self.source_store.decrement_quantity(source_id)
            source.current_quantity = remaining
            result.remaining_quantity = remaining
            if source.needs_refill:
                result.needs_refill = True
                await self.notifier.notify_refill(source)

        return result

    async def _transition_event(
        self,
        result: ActionResult,
        source_id: str,
        scheduled_time: datetime,
        status: HistoryStatus,
        now: datetime
    ) -> None:
        try:
            event = self.calendar_store.get_by_source_and_time(source_id, scheduled_time)
            if event is None:
                raise NotFoundError(f"No calendar event for source {source_id} at {scheduled_time}")

            if status is HistoryStatus.TAKEN:
                event = self.calendar_store.mark_completed(event.id, now)
            else:
                event = self.calendar_store.mark_skipped(event.id)
            result.event = event
            result.event_transitioned = True

        except NotFoundError as e:
            # History stays authoritative
            logger.warning(f"{e.message}; recorded {status.value} in history only")
            result.warnings.append(e.message)
            return
        except ConcurrencyConflict as e:
            logger.info(f"Event already settled: {e.message}")
            result.event = self.calendar_store.get_by_id(e.detail["event_id"])
            result.warnings.append(e.message)
            return

        await self.notifier.cancel_event(result.event.id)
