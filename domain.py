"""
Domain Types
Recurrence rules, typed event payloads and derived adherence values.

All instants are naive datetimes in the user's local wall-clock time
("floating local time"); a dose at 08:00 stays at 08:00 when the device
changes time zone.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from exceptions import ValidationError


# ==================== RECURRENCE RULES ====================

class _RuleBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    end_date: Optional[date] = None


class Daily(_RuleBase):
    """Every calendar day"""
    frequency: Literal["daily"] = "daily"


class Weekly(_RuleBase):
    """Selected weekdays (0=Sunday, 6=Saturday); empty means every 7th day from the anchor"""
    frequency: Literal["weekly"] = "weekly"
    days_of_week: Optional[frozenset[int]] = None

    @field_validator("days_of_week")
    @classmethod
    def _check_days(cls, value: Optional[Set[int]]) -> Optional[frozenset]:
        if value is None:
            return None
        bad = [d for d in value if not 0 <= d <= 6]
        if bad:
            raise ValueError(f"days_of_week must be within 0..6, got {sorted(bad)}")
        return frozenset(value)


class Custom(_RuleBase):
    """Every `interval`-th day; interval 0 means as-needed (never scheduled)"""
    frequency: Literal["custom"] = "custom"
    interval: int = Field(default=1, ge=0)

    @property
    def is_as_needed(self) -> bool:
        return self.interval == 0


class Monthly(_RuleBase):
    """Same day of month as the anchor date"""
    frequency: Literal["monthly"] = "monthly"


RecurrenceRule = Annotated[
    Union[Daily, Weekly, Custom, Monthly],
    Field(discriminator="frequency")
]

_rule_adapter: TypeAdapter = TypeAdapter(RecurrenceRule)


def parse_rule(raw: Any) -> Union[Daily, Weekly, Custom, Monthly]:
    """
    Decode a stored/posted recurrence rule.

    A missing rule means daily, matching how sources without an explicit
    frequency have always been scheduled.
    """
    if raw is None or raw == {}:
        return Daily()
    if isinstance(raw, (Daily, Weekly, Custom, Monthly)):
        return raw
    try:
        return _rule_adapter.validate_python(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid recurrence rule: {raw!r}", detail={"errors": e.errors()}) from e


def dump_rule(rule: Union[Daily, Weekly, Custom, Monthly]) -> Dict[str, Any]:
    """Serialize a rule for the JSON column"""
    data = rule.model_dump(mode="json", exclude_none=True)
    if "days_of_week" in data:
        data["days_of_week"] = sorted(data["days_of_week"])
    return data


# ==================== EVENT METADATA ====================

class _MetadataBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class MedicationDueMetadata(_MetadataBase):
    dosage: Optional[str] = None
    form: Optional[str] = None


class SupplementDueMetadata(_MetadataBase):
    dosage: Optional[str] = None
    form: Optional[str] = None


class AppointmentMetadata(_MetadataBase):
    doctor_name: Optional[str] = None
    specialty: Optional[str] = None
    location: Optional[str] = None
    reason: Optional[str] = None


class ActivityMetadata(_MetadataBase):
    value: Optional[float] = None
    unit: Optional[str] = None
    notes: Optional[str] = None


EventMetadata = Union[
    MedicationDueMetadata, SupplementDueMetadata, AppointmentMetadata, ActivityMetadata
]

METADATA_TYPES: Dict[str, type] = {
    "medication_due": MedicationDueMetadata,
    "supplement_due": SupplementDueMetadata,
    "appointment": AppointmentMetadata,
    "activity": ActivityMetadata,
}


def decode_metadata(event_type: str, raw: Optional[Dict[str, Any]]) -> EventMetadata:
    """Decode the JSON metadata column into the payload type for `event_type`"""
    model = METADATA_TYPES.get(str(event_type))
    if model is None:
        raise ValidationError(f"Unknown event type: {event_type}")
    try:
        return model.model_validate(raw or {})
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid metadata for {event_type} event", detail={"errors": e.errors()}
        ) from e


def encode_metadata(event_type: str, payload: Optional[EventMetadata]) -> Optional[Dict[str, Any]]:
    """Encode a payload for storage, checking it matches the event type"""
    if payload is None:
        return None
    expected = METADATA_TYPES.get(str(event_type))
    if expected is None or not isinstance(payload, expected):
        raise ValidationError(
            f"Metadata {type(payload).__name__} does not match event type {event_type}"
        )
    return payload.model_dump(mode="json", exclude_none=True)


# ==================== ONE-SHOT SOURCES ====================

@dataclass
class AppointmentInput:
    """Appointment handed over by the appointments module"""
    id: str
    profile_id: str
    title: str
    scheduled_time: datetime
    duration_minutes: int = 30
    doctor_name: Optional[str] = None
    specialty: Optional[str] = None
    location: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class ActivityInput:
    """Logged activity handed over by the activities module"""
    id: str
    profile_id: str
    activity_type: str
    start_time: datetime
    end_time: Optional[datetime] = None
    value: Optional[float] = None
    unit: Optional[str] = None
    notes: Optional[str] = None


# ==================== RESULTS ====================

@dataclass
class ReconcileResult:
    """Net storage mutations performed by one reconcile call"""
    source_id: str
    inserted: int = 0
    deleted: int = 0

    @property
    def is_noop(self) -> bool:
        return self.inserted == 0 and self.deleted == 0


@dataclass
class ActionResult:
    """Outcome of a take/skip action"""
    history_entry: Any
    event: Optional[Any] = None
    event_transitioned: bool = False
    remaining_quantity: Optional[int] = None
    needs_refill: bool = False
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class AdherenceDataPoint:
    """Adherence percentage for one calendar day"""
    date: date
    percentage: int


@dataclass
class DashboardStats:
    """Trailing-window adherence numbers for the home screen"""
    profile_id: str
    adherence_percentage: int
    completed_count: int
    missed_count: int
    skipped_count: int
    current_streak: int
    upcoming_count: int
    today_completed: int
    today_total: int
    window_start: datetime
    window_end: datetime


@dataclass
class CareInsight:
    """One dashboard insight card"""
    type: str
    value: Any
    description: str
    score: Optional[int] = None
    trend: str = "neutral"
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "value": self.value,
            "description": self.description,
            "score": self.score,
            "trend": self.trend,
            "params": self.params,
        }
