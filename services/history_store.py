"""
History Store
Append-only medication and supplement history
"""

import logging
from typing import Dict, List, Optional, Union
from datetime import datetime
from collections import Counter

from sqlalchemy import and_
from sqlalchemy.orm import Session

import models
from models import HistoryStatus, SourceKind
from services.base import BaseStore


logger = logging.getLogger(__name__)

HistoryEntry = Union[models.MedicationHistory, models.SupplementHistory]

HISTORY_MODELS = {
    SourceKind.MEDICATION: (models.MedicationHistory, "medication_id"),
    SourceKind.SUPPLEMENT: (models.SupplementHistory, "supplement_id"),
}


class HistoryStore(BaseStore):
    """
    The durable audit trail of user actions.

    There is deliberately no update or delete method: entries are written
    once and survive any regeneration of the calendar projection.
    """

    def append(
        self,
        source,
        scheduled_time: datetime,
        status: HistoryStatus,
        actual_time: Optional[datetime] = None,
        notes: Optional[str] = None,
        db: Optional[Session] = None
    ) -> HistoryEntry:
        """Append one history entry for a medication or supplement"""
        model, fk = HISTORY_MODELS[SourceKind(source.kind)]

        def _append(session: Session) -> HistoryEntry:
            entry = model(
                profile_id=source.profile_id,
                scheduled_time=scheduled_time,
                actual_time=actual_time,
                status=HistoryStatus(status).value,
                notes=notes,
                **{fk: source.id}
            )
            session.add(entry)
            session.flush()
            logger.info(
                f"Recorded {entry.status} for {source.kind.value} {source.id} "
                f"scheduled at {scheduled_time}"
            )
            return entry

        return self._run(_append, db)

    def get_by_source(
        self,
        source_id: str,
        limit: int = 50,
        offset: int = 0,
        db: Optional[Session] = None
    ) -> List[HistoryEntry]:
        """History of one source, newest first"""
        def _get(session: Session) -> List[HistoryEntry]:
            for model, fk in HISTORY_MODELS.values():
                column = getattr(model, fk)
                rows = session.query(model).filter(column == source_id).order_by(
                    model.scheduled_time.desc(), model.created_at.desc()
                ).offset(offset).limit(limit).all()
                if rows:
                    return rows
            return []

        return self._run(_get, db)

    def get_by_profile_range(
        self,
        profile_id: str,
        start: datetime,
        end: datetime,
        kinds: Optional[List[SourceKind]] = None,
        db: Optional[Session] = None
    ) -> List[HistoryEntry]:
        """History of a profile with scheduled_time in [start, end), newest first"""
        kinds = kinds or list(HISTORY_MODELS)

        def _get(session: Session) -> List[HistoryEntry]:
            entries: List[HistoryEntry] = []
            for kind in kinds:
                model, _ = HISTORY_MODELS[SourceKind(kind)]
                entries.extend(session.query(model).filter(
                    and_(
                        model.profile_id == profile_id,
                        model.scheduled_time >= start,
                        model.scheduled_time < end
                    )
                ).all())
            return sorted(entries, key=lambda e: (e.scheduled_time, e.created_at), reverse=True)

        return self._run(_get, db)

    def taken_by_hour(self, profile_id: str, db: Optional[Session] = None) -> Dict[int, int]:
        """Hour of scheduled time -> number of taken entries"""
        def _get(session: Session) -> Dict[int, int]:
            counts: Counter = Counter()
            for model, _ in HISTORY_MODELS.values():
                rows = session.query(model.scheduled_time).filter(
                    and_(model.profile_id == profile_id, model.status == HistoryStatus.TAKEN.value)
                ).all()
                counts.update(row.scheduled_time.hour for row in rows)
            return dict(counts)

        return self._run(_get, db)
