"""
Calendar Event Store
Transactional persistence for calendar_events, the projection of recurrence rules
"""

import logging
from typing import Dict, Iterable, List, Optional, Any
from datetime import datetime

from sqlalchemy import and_, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import models
from models import CalendarEventStatus
from domain import EventMetadata, encode_metadata
from exceptions import ConflictError, ConcurrencyConflict, NotFoundError
from services.base import BaseStore


logger = logging.getLogger(__name__)

PENDING = CalendarEventStatus.PENDING.value


class CalendarEventStore(BaseStore):
    """
    Store for calendar events.

    At most one row exists per (source_id, scheduled_time). Rows leave the
    `pending` state only through mark_completed / mark_skipped, and only
    pending rows are ever deleted.
    """

    # ==================== WRITES ====================

    def _build(
        self,
        profile_id: str,
        source_id: str,
        event_type: str,
        title: str,
        scheduled_time: datetime,
        metadata: Optional[EventMetadata] = None,
        status: CalendarEventStatus = CalendarEventStatus.PENDING,
        end_time: Optional[datetime] = None,
        completed_time: Optional[datetime] = None,
    ) -> models.CalendarEvent:
        event_type = getattr(event_type, "value", event_type)
        return models.CalendarEvent(
            profile_id=profile_id,
            source_id=source_id,
            event_type=event_type,
            title=title,
            scheduled_time=scheduled_time,
            end_time=end_time,
            status=CalendarEventStatus(status).value,
            completed_time=completed_time,
            event_metadata=encode_metadata(event_type, metadata),
        )

    def insert(self, db: Optional[Session] = None, **fields: Any) -> models.CalendarEvent:
        """
        Insert one event.

        Raises:
            ConflictError: an event already exists for (source_id, scheduled_time)
        """
        event = self._build(**fields)

        def _insert(session: Session) -> models.CalendarEvent:
            existing = self._find(session, event.source_id, event.scheduled_time)
            if existing is not None:
                raise ConflictError(
                    f"Event already exists for source {event.source_id} at {event.scheduled_time}",
                    detail={"event_id": existing.id},
                )
            session.add(event)
            try:
                session.flush()
            except IntegrityError as e:
                raise ConflictError(
                    f"Event already exists for source {event.source_id} at {event.scheduled_time}"
                ) from e
            return event

        return self._run(_insert, db)

    def insert_many(
        self,
        events: Iterable[Dict[str, Any]],
        db: Optional[Session] = None
    ) -> List[models.CalendarEvent]:
        """Insert a batch in one flush; callers must have filtered out existing keys"""
        rows = [self._build(**fields) for fields in events]
        if not rows:
            return []

        def _insert(session: Session) -> List[models.CalendarEvent]:
            session.add_all(rows)
            try:
                session.flush()
            except IntegrityError as e:
                raise ConflictError("Batch insert hit an existing (source, time) pair") from e
            return rows

        return self._run(_insert, db)

    def _transition(
        self,
        event_id: str,
        status: CalendarEventStatus,
        completed_time: Optional[datetime],
        db: Optional[Session]
    ) -> models.CalendarEvent:
        def _update(session: Session) -> models.CalendarEvent:
            updated = session.query(models.CalendarEvent).filter(
                and_(
                    models.CalendarEvent.id == event_id,
                    models.CalendarEvent.status == PENDING
                )
            ).update(
                {
                    models.CalendarEvent.status: status.value,
                    models.CalendarEvent.completed_time: completed_time,
                    models.CalendarEvent.updated_at: datetime.now(),
                },
                synchronize_session=False
            )

            event = session.query(models.CalendarEvent).filter(
                models.CalendarEvent.id == event_id
            ).populate_existing().first()

            if event is None:
                raise NotFoundError(f"Calendar event {event_id} not found")
            if not updated:
                raise ConcurrencyConflict(
                    f"Calendar event {event_id} is already {event.status}",
                    detail={"event_id": event_id, "status": event.status},
                )
            return event

        return self._run(_update, db)

    def mark_completed(
        self,
        event_id: str,
        completed_time: datetime,
        db: Optional[Session] = None
    ) -> models.CalendarEvent:
        """Transition pending -> completed"""
        return self._transition(event_id, CalendarEventStatus.COMPLETED, completed_time, db)

    def mark_skipped(self, event_id: str, db: Optional[Session] = None) -> models.CalendarEvent:
        """Transition pending -> skipped"""
        return self._transition(event_id, CalendarEventStatus.SKIPPED, None, db)

    def delete_by_source(
        self,
        source_id: str,
        after: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[str]:
        """
        Delete pending events of a source (optionally only those at/after `after`)

        Returns:
            IDs of deleted events
        """
        def _delete(session: Session) -> List[str]:
            query = session.query(models.CalendarEvent.id).filter(
                and_(
                    models.CalendarEvent.source_id == source_id,
                    models.CalendarEvent.status == PENDING
                )
            )
            if after is not None:
                query = query.filter(models.CalendarEvent.scheduled_time >= after)
            ids = [row.id for row in query.all()]
            self._delete_ids(session, ids)
            return ids

        return self._run(_delete, db)

    def delete_pending_not_in(
        self,
        source_id: str,
        keep: Iterable[datetime],
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[str]:
        """
        Delete pending events of a source whose time is not in `keep`,
        optionally restricted to [window_start, window_end)

        Returns:
            IDs of deleted events
        """
        keep = set(keep)

        def _delete(session: Session) -> List[str]:
            pending = self.pending_events_in_window(source_id, window_start, window_end, db=session)
            ids = [e.id for e in pending if e.scheduled_time not in keep]
            self._delete_ids(session, ids)
            return ids

        return self._run(_delete, db)

    def _delete_ids(self, session: Session, ids: List[str]) -> None:
        if not ids:
            return
        # Status guard again so a row completed meanwhile survives
        session.query(models.CalendarEvent).filter(
            and_(
                models.CalendarEvent.id.in_(ids),
                models.CalendarEvent.status == PENDING
            )
        ).delete(synchronize_session=False)

    # ==================== READS ====================

    def _find(self, session: Session, source_id: str, scheduled_time: datetime) -> Optional[models.CalendarEvent]:
        return session.query(models.CalendarEvent).filter(
            and_(
                models.CalendarEvent.source_id == source_id,
                models.CalendarEvent.scheduled_time == scheduled_time
            )
        ).first()

    def get_by_id(self, event_id: str, db: Optional[Session] = None) -> Optional[models.CalendarEvent]:
        """Get event by ID"""
        def _get(session: Session) -> Optional[models.CalendarEvent]:
            return session.query(models.CalendarEvent).filter(
                models.CalendarEvent.id == event_id
            ).first()

        return self._run(_get, db)

    def get_by_source_and_time(
        self,
        source_id: str,
        scheduled_time: datetime,
        db: Optional[Session] = None
    ) -> Optional[models.CalendarEvent]:
        """Get the event identified by (source_id, scheduled_time)"""
        return self._run(lambda session: self._find(session, source_id, scheduled_time), db)

    def get_by_source(self, source_id: str, db: Optional[Session] = None) -> List[models.CalendarEvent]:
        """All events of a source, newest first"""
        def _get(session: Session) -> List[models.CalendarEvent]:
            return session.query(models.CalendarEvent).filter(
                models.CalendarEvent.source_id == source_id
            ).order_by(models.CalendarEvent.scheduled_time.desc()).all()

        return self._run(_get, db)

    def get_overdue(
        self,
        profile_id: str,
        now: datetime,
        db: Optional[Session] = None
    ) -> List[models.CalendarEvent]:
        """Pending events scheduled before `now`, oldest first"""
        def _get(session: Session) -> List[models.CalendarEvent]:
            return session.query(models.CalendarEvent).filter(
                and_(
                    models.CalendarEvent.profile_id == profile_id,
                    models.CalendarEvent.status == PENDING,
                    models.CalendarEvent.scheduled_time < now
                )
            ).order_by(models.CalendarEvent.scheduled_time.asc()).all()

        return self._run(_get, db)

    def get_upcoming(
        self,
        profile_id: str,
        limit: Optional[int],
        now: datetime,
        until: Optional[datetime] = None,
        event_type: Optional[str] = None,
        event_types: Optional[Iterable[str]] = None,
        db: Optional[Session] = None
    ) -> List[models.CalendarEvent]:
        """Pending events scheduled at or after `now`, soonest first"""
        def _get(session: Session) -> List[models.CalendarEvent]:
            query = session.query(models.CalendarEvent).filter(
                and_(
                    models.CalendarEvent.profile_id == profile_id,
                    models.CalendarEvent.status == PENDING,
                    models.CalendarEvent.scheduled_time >= now
                )
            )
            if until is not None:
                query = query.filter(models.CalendarEvent.scheduled_time < until)
            if event_type is not None:
                query = query.filter(models.CalendarEvent.event_type == getattr(event_type, "value", event_type))
            if event_types:
                query = query.filter(models.CalendarEvent.event_type.in_(
                    [getattr(t, "value", t) for t in event_types]
                ))
            query = query.order_by(models.CalendarEvent.scheduled_time.asc())
            if limit is not None:
                query = query.limit(limit)
            return query.all()

        return self._run(_get, db)

    def pending_events_in_window(
        self,
        source_id: str,
        window_start: Optional[datetime],
        window_end: Optional[datetime],
        db: Optional[Session] = None
    ) -> List[models.CalendarEvent]:
        """Pending events of a source within [window_start, window_end)"""
        def _get(session: Session) -> List[models.CalendarEvent]:
            query = session.query(models.CalendarEvent).filter(
                and_(
                    models.CalendarEvent.source_id == source_id,
                    models.CalendarEvent.status == PENDING
                )
            )
            if window_start is not None:
                query = query.filter(models.CalendarEvent.scheduled_time >= window_start)
            if window_end is not None:
                query = query.filter(models.CalendarEvent.scheduled_time < window_end)
            return query.order_by(models.CalendarEvent.scheduled_time.asc()).all()

        return self._run(_get, db)

    def timestamps_in_window(
        self,
        source_id: str,
        window_start: Optional[datetime],
        window_end: Optional[datetime],
        db: Optional[Session] = None
    ) -> List[datetime]:
        """Scheduled times of the pending events of a source in the window"""
        return [
            e.scheduled_time
            for e in self.pending_events_in_window(source_id, window_start, window_end, db=db)
        ]

    def occupied_times(
        self,
        source_id: str,
        window_start: datetime,
        window_end: datetime,
        db: Optional[Session] = None
    ) -> Dict[datetime, str]:
        """Scheduled time -> status for every event of a source in the window"""
        def _get(session: Session) -> Dict[datetime, str]:
            rows = session.query(
                models.CalendarEvent.scheduled_time, models.CalendarEvent.status
            ).filter(
                and_(
                    models.CalendarEvent.source_id == source_id,
                    models.CalendarEvent.scheduled_time >= window_start,
                    models.CalendarEvent.scheduled_time < window_end
                )
            ).all()
            return {row.scheduled_time: row.status for row in rows}

        return self._run(_get, db)

    def get_in_range(
        self,
        profile_id: str,
        start: datetime,
        end: datetime,
        event_types: Optional[Iterable[str]] = None,
        db: Optional[Session] = None
    ) -> List[models.CalendarEvent]:
        """Events of a profile within [start, end), ascending (timeline query)"""
        def _get(session: Session) -> List[models.CalendarEvent]:
            query = session.query(models.CalendarEvent).filter(
                and_(
                    models.CalendarEvent.profile_id == profile_id,
                    models.CalendarEvent.scheduled_time >= start,
                    models.CalendarEvent.scheduled_time < end
                )
            )
            if event_types:
                query = query.filter(models.CalendarEvent.event_type.in_(
                    [getattr(t, "value", t) for t in event_types]
                ))
            return query.order_by(models.CalendarEvent.scheduled_time.asc()).all()

        return self._run(_get, db)

    def get_first_scheduled_time(self, profile_id: str, db: Optional[Session] = None) -> Optional[datetime]:
        """Earliest obligation of a profile, if any"""
        def _get(session: Session) -> Optional[datetime]:
            return session.query(func.min(models.CalendarEvent.scheduled_time)).filter(
                models.CalendarEvent.profile_id == profile_id
            ).scalar()

        return self._run(_get, db)

    def get_stats(
        self,
        profile_id: str,
        start: datetime,
        end: datetime,
        now: datetime,
        event_types: Optional[Iterable[str]] = None,
        db: Optional[Session] = None
    ) -> Dict[str, int]:
        """
        Status counts within [start, end).

        Pending rows scheduled before `now` are reported as missed, so the
        numbers agree with classify_status.
        """
        event_table = models.CalendarEvent

        def _get(session: Session) -> Dict[str, int]:
            overdue = and_(event_table.status == PENDING, event_table.scheduled_time < now)
            query = session.query(
                func.count(event_table.id).label("total"),
                func.sum(case((event_table.status == CalendarEventStatus.COMPLETED.value, 1), else_=0)).label("completed"),
                func.sum(case((event_table.status == CalendarEventStatus.SKIPPED.value, 1), else_=0)).label("skipped"),
                func.sum(case((event_table.status == CalendarEventStatus.MISSED.value, 1), (overdue, 1), else_=0)).label("missed"),
                func.sum(case((and_(event_table.status == PENDING, event_table.scheduled_time >= now), 1), else_=0)).label("pending"),
            ).filter(
                and_(
                    event_table.profile_id == profile_id,
                    event_table.scheduled_time >= start,
                    event_table.scheduled_time < end
                )
            )
            if event_types:
                query = query.filter(event_table.event_type.in_(
                    [getattr(t, "value", t) for t in event_types]
                ))
            row = query.one()

            return {
                "total": row.total or 0,
                "completed": row.completed or 0,
                "skipped": row.skipped or 0,
                "missed": row.missed or 0,
                "pending": row.pending or 0,
            }

        return self._run(_get, db)


def classify_status(event: models.CalendarEvent, now: datetime) -> CalendarEventStatus:
    """
    Effective status of an event at `now`.

    `missed` is never written by a sweep: a pending row whose time has
    passed is missed. Every reader (adherence, alarm fallback, history
    display) uses this predicate.
    """
    status = CalendarEventStatus(event.status)
    if status is CalendarEventStatus.PENDING and event.scheduled_time < now:
        return CalendarEventStatus.MISSED
    return status
