"""
Database Models
SQLAlchemy ORM models for Follo
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, Index, UniqueConstraint, JSON
from sqlalchemy.orm import declared_attr
from datetime import datetime
from enum import Enum as PyEnum
import uuid

from database import Base
from domain import parse_rule, decode_metadata


def _new_id() -> str:
    return str(uuid.uuid4())


# ==================== ENUMS ====================

class SourceKind(str, PyEnum):
    """Entities that own a recurrence rule"""
    MEDICATION = "medication"
    SUPPLEMENT = "supplement"


class CalendarEventType(str, PyEnum):
    """Kinds of calendar obligations"""
    MEDICATION_DUE = "medication_due"
    SUPPLEMENT_DUE = "supplement_due"
    APPOINTMENT = "appointment"
    ACTIVITY = "activity"


class CalendarEventStatus(str, PyEnum):
    """Lifecycle of a calendar event"""
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    MISSED = "missed"

    @property
    def is_terminal(self) -> bool:
        return self is not CalendarEventStatus.PENDING


class HistoryStatus(str, PyEnum):
    """Status of a recorded dose"""
    TAKEN = "taken"
    SKIPPED = "skipped"
    MISSED = "missed"


EVENT_TYPE_BY_KIND = {
    SourceKind.MEDICATION: CalendarEventType.MEDICATION_DUE,
    SourceKind.SUPPLEMENT: CalendarEventType.SUPPLEMENT_DUE,
}


# ==================== MODELS ====================

class Profile(Base):
    """A person whose schedule is tracked (multi-user support)"""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    is_primary = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class ScheduleSourceMixin:
    """Columns shared by every entity that owns a recurrence rule"""

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    dosage = Column(String(100))
    form = Column(String(100))

    # Recurrence rule (JSON tagged union) and list of "HH:MM" strings
    frequency_rule = Column(JSON)
    time_of_day = Column(JSON, default=list)

    # Inventory
    current_quantity = Column(Integer)

    notes = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @declared_attr
    def profile_id(cls):
        return Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    @property
    def rule(self):
        return parse_rule(self.frequency_rule)

    @property
    def needs_refill(self) -> bool:
        return self.current_quantity is not None and self.current_quantity <= self.refill_threshold

    @property
    def event_type(self) -> CalendarEventType:
        return EVENT_TYPE_BY_KIND[self.kind]


class Medication(ScheduleSourceMixin, Base):
    """Medication with its dosing schedule"""
    __tablename__ = "medications"

    kind = SourceKind.MEDICATION

    refill_threshold = Column(Integer, default=7, nullable=False)
    hide_name = Column(Boolean, default=False)

    @property
    def display_title(self) -> str:
        return "Medication" if self.hide_name else self.name


class Supplement(ScheduleSourceMixin, Base):
    """Supplement with its intake schedule"""
    __tablename__ = "supplements"

    kind = SourceKind.SUPPLEMENT

    refill_threshold = Column("low_stock_threshold", Integer, default=10, nullable=False)

    @property
    def display_title(self) -> str:
        return self.name


class HistoryMixin:
    """Append-only dose record; rows are never updated or deleted"""

    id = Column(String(36), primary_key=True, default=_new_id)
    scheduled_time = Column(DateTime, nullable=False)
    actual_time = Column(DateTime)
    status = Column(String(20), nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.now)

    @declared_attr
    def profile_id(cls):
        return Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)


class MedicationHistory(HistoryMixin, Base):
    """Medication dose history (immutable log)"""
    __tablename__ = "medication_history"

    kind = SourceKind.MEDICATION

    medication_id = Column(String(36), ForeignKey("medications.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        Index("idx_medication_history", "medication_id", "scheduled_time"),
        Index("idx_medication_history_profile", "profile_id", "scheduled_time"),
    )

    @property
    def source_id(self) -> str:
        return self.medication_id


class SupplementHistory(HistoryMixin, Base):
    """Supplement intake history (immutable log)"""
    __tablename__ = "supplement_history"

    kind = SourceKind.SUPPLEMENT

    supplement_id = Column(String(36), ForeignKey("supplements.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        Index("idx_supplement_history", "supplement_id", "scheduled_time"),
        Index("idx_supplement_history_profile", "profile_id", "scheduled_time"),
    )

    @property
    def source_id(self) -> str:
        return self.supplement_id


class CalendarEvent(Base):
    """Concrete timestamped obligation; the projection of recurrence rules"""
    __tablename__ = "calendar_events"

    id = Column(String(36), primary_key=True, default=_new_id)
    profile_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(String(30), nullable=False)
    source_id = Column(String(36), nullable=False)
    title = Column(String(255), nullable=False)

    scheduled_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime)

    status = Column(String(20), default=CalendarEventStatus.PENDING.value, nullable=False)
    completed_time = Column(DateTime)

    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        UniqueConstraint("source_id", "scheduled_time", name="uq_calendar_source_time"),
        Index("idx_calendar_profile_time", "profile_id", "scheduled_time"),
        Index("idx_calendar_source", "source_id"),
    )

    @property
    def payload(self):
        return decode_metadata(self.event_type, self.event_metadata)

    @property
    def status_enum(self) -> CalendarEventStatus:
        return CalendarEventStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<CalendarEvent {self.id} source={self.source_id} "
            f"at={self.scheduled_time:%Y-%m-%d %H:%M} status={self.status}>"
        )
