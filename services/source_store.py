"""
Source Store
Medications and supplements: the entities that own recurrence rules
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import and_, case
from sqlalchemy.orm import Session

import models
from models import SourceKind
from domain import dump_rule, parse_rule
from exceptions import NotFoundError, ValidationError
from config import scheduling_config
from services.base import BaseStore
from tools.recurrence import format_time_of_day


logger = logging.getLogger(__name__)

ScheduleSource = Union[models.Medication, models.Supplement]

MODEL_BY_KIND = {
    SourceKind.MEDICATION: models.Medication,
    SourceKind.SUPPLEMENT: models.Supplement,
}

# Fields whose change requires the calendar projection to be reconciled
SCHEDULE_FIELDS = {"time_of_day", "frequency_rule", "is_active"}

UPDATABLE_FIELDS = {
    "name", "dosage", "form", "time_of_day", "frequency_rule", "current_quantity",
    "refill_threshold", "notes", "is_active", "hide_name",
}


class SourceStore(BaseStore):
    """
    Store for schedule sources.

    The scheduling engine only reads sources, except for
    decrement_quantity which is a single arithmetic UPDATE.
    """

    def _model(self, kind: Union[SourceKind, str]):
        try:
            return MODEL_BY_KIND[SourceKind(kind)]
        except ValueError as e:
            raise ValidationError(f"Unknown source kind: {kind}") from e

    def _clean(self, kind: SourceKind, fields: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(fields)
        if "rule" in data:
            data["frequency_rule"] = data.pop("rule")
        if "frequency_rule" in data:
            data["frequency_rule"] = dump_rule(parse_rule(data["frequency_rule"]))
        if "time_of_day" in data:
            data["time_of_day"] = format_time_of_day(data["time_of_day"] or [])
        if data.get("current_quantity") is not None and data["current_quantity"] < 0:
            raise ValidationError("current_quantity cannot be negative")
        if "hide_name" in data and kind is not SourceKind.MEDICATION:
            data.pop("hide_name")
        return data

    def create(
        self,
        kind: Union[SourceKind, str],
        profile_id: str,
        name: str,
        db: Optional[Session] = None,
        **fields: Any
    ) -> ScheduleSource:
        """Create a medication or supplement"""
        kind = SourceKind(kind)
        model = self._model(kind)
        data = self._clean(kind, fields)
        data.setdefault("time_of_day", [])
        data.setdefault("frequency_rule", dump_rule(parse_rule(None)))
        data.setdefault(
            "refill_threshold",
            scheduling_config.MEDICATION_REFILL_THRESHOLD if kind is SourceKind.MEDICATION
            else scheduling_config.SUPPLEMENT_REFILL_THRESHOLD
        )

        def _create(session: Session) -> ScheduleSource:
            source = model(profile_id=profile_id, name=name, **data)
            session.add(source)
            session.flush()
            logger.info(f"Created {kind.value} {source.id} for profile {profile_id}")
            return source

        return self._run(_create, db)

    def get(self, source_id: str, db: Optional[Session] = None) -> Optional[ScheduleSource]:
        """Find a source by ID in either table"""
        def _get(session: Session) -> Optional[ScheduleSource]:
            for model in MODEL_BY_KIND.values():
                source = session.query(model).filter(model.id == source_id).first()
                if source is not None:
                    return source
            return None

        return self._run(_get, db)

    def get_required(self, source_id: str, db: Optional[Session] = None) -> ScheduleSource:
        source = self.get(source_id, db=db)
        if source is None:
            raise NotFoundError(f"Source {source_id} not found")
        return source

    def list_by_profile(
        self,
        profile_id: str,
        active_only: bool = True,
        kind: Optional[SourceKind] = None,
        db: Optional[Session] = None
    ) -> List[ScheduleSource]:
        """Sources of a profile, medications first"""
        kinds = [SourceKind(kind)] if kind else list(MODEL_BY_KIND)

        def _get(session: Session) -> List[ScheduleSource]:
            sources: List[ScheduleSource] = []
            for k in kinds:
                model = MODEL_BY_KIND[k]
                query = session.query(model).filter(model.profile_id == profile_id)
                if active_only:
                    query = query.filter(model.is_active == True)  # noqa: E712
                sources.extend(query.order_by(model.name).all())
            return sources

        return self._run(_get, db)

    def update(
        self,
        kind: Union[SourceKind, str],
        source_id: str,
        updates: Dict[str, Any],
        db: Optional[Session] = None
    ) -> Tuple[ScheduleSource, bool]:
        """
        Update a source

        Returns:
            (source, schedule_changed) where schedule_changed tells the caller
            that the calendar projection must be reconciled
        """
        kind = SourceKind(kind)
        model = self._model(kind)
        data = self._clean(kind, {k: v for k, v in updates.items() if k in UPDATABLE_FIELDS | {"rule"}})

        def _update(session: Session) -> Tuple[ScheduleSource, bool]:
            source = session.query(model).filter(model.id == source_id).first()
            if source is None:
                raise NotFoundError(f"{kind.value.capitalize()} {source_id} not found")

            schedule_changed = False
            for field, value in data.items():
                if getattr(source, field) != value:
                    setattr(source, field, value)
                    schedule_changed = schedule_changed or field in SCHEDULE_FIELDS
            session.flush()
            return source, schedule_changed

        return self._run(_update, db)

    def decrement_quantity(self, source_id: str, db: Optional[Session] = None) -> Optional[int]:
        """
        Atomically decrement current_quantity by one, floored at zero.

        A NULL quantity (untracked inventory) stays NULL.

        Returns:
            The quantity after the update
        """
        def _decrement(session: Session) -> Optional[int]:
            for model in MODEL_BY_KIND.values():
                updated = session.query(model).filter(model.id == source_id).update(
                    {
                        model.current_quantity: case(
                            (
                                and_(model.current_quantity.isnot(None), model.current_quantity > 0),
                                model.current_quantity - 1
                            ),
                            else_=model.current_quantity
                        )
                    },
                    synchronize_session=False
                )
                if updated:
                    return session.query(model.current_quantity).filter(
                        model.id == source_id
                    ).scalar()
            raise NotFoundError(f"Source {source_id} not found")

        return self._run(_decrement, db)

    def get_needing_refill(self, profile_id: str, db: Optional[Session] = None) -> List[ScheduleSource]:
        """Active sources at or below their refill threshold, lowest stock first"""
        def _get(session: Session) -> List[ScheduleSource]:
            sources: List[ScheduleSource] = []
            for model in MODEL_BY_KIND.values():
                sources.extend(session.query(model).filter(
                    and_(
                        model.profile_id == profile_id,
                        model.is_active == True,  # noqa: E712
                        model.current_quantity.isnot(None),
                        model.current_quantity <= model.refill_threshold
                    )
                ).all())
            return sorted(sources, key=lambda s: s.current_quantity)

        return self._run(_get, db)
