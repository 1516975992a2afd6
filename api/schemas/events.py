"""
Event Schemas
Pydantic models for calendar event requests and responses
"""

from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field

from api.schemas.sources import HistoryEntryResponse
from services.calendar_store import classify_status


# ==================== REQUEST SCHEMAS ====================

class DoseActionRequest(BaseModel):
    """Take or skip one scheduled dose"""
    source_id: str
    scheduled_time: datetime
    notes: Optional[str] = Field(None, max_length=1000)


class RegenerateRequest(BaseModel):
    """Roll the scheduling horizon for a profile"""
    profile_id: Optional[str] = None
    days_ahead: Optional[int] = Field(None, ge=1, le=365)


class AppointmentRequest(BaseModel):
    """Appointment handed over by the appointments module"""
    id: str
    profile_id: str
    title: str = Field(..., min_length=1, max_length=255)
    scheduled_time: datetime
    duration_minutes: int = Field(default=30, ge=1, le=24 * 60)
    doctor_name: Optional[str] = None
    specialty: Optional[str] = None
    location: Optional[str] = None
    reason: Optional[str] = None


class ActivityRequest(BaseModel):
    """Logged activity"""
    id: str
    profile_id: str
    activity_type: str = Field(..., min_length=1, max_length=100)
    start_time: datetime
    end_time: Optional[datetime] = None
    value: Optional[float] = None
    unit: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


# ==================== RESPONSE SCHEMAS ====================

class CalendarEventResponse(BaseModel):
    """Calendar event; `status` is the effective status at request time"""
    id: str
    profile_id: str
    event_type: str
    source_id: str
    title: str
    scheduled_time: datetime
    end_time: Optional[datetime] = None
    status: str
    stored_status: str
    completed_time: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class EventList(BaseModel):
    """List of calendar events"""
    profile_id: str
    events: List[CalendarEventResponse]
    total: int


class DoseActionResponse(BaseModel):
    """Result of take/skip"""
    history_entry: HistoryEntryResponse
    event: Optional[CalendarEventResponse] = None
    event_transitioned: bool
    remaining_quantity: Optional[int] = None
    needs_refill: bool = False
    warnings: List[str] = Field(default_factory=list)


class RegenerateResponse(BaseModel):
    """Summary of a horizon roll"""
    profile_id: str
    sources: int
    inserted: int
    deleted: int


def event_response(event, now: datetime) -> CalendarEventResponse:
    """Build the response for a calendar event, applying the missed classification"""
    return CalendarEventResponse(
        id=event.id,
        profile_id=event.profile_id,
        event_type=event.event_type,
        source_id=event.source_id,
        title=event.title,
        scheduled_time=event.scheduled_time,
        end_time=event.end_time,
        status=classify_status(event, now).value,
        stored_status=event.status,
        completed_time=event.completed_time,
        metadata=event.payload.model_dump(exclude_none=True),
    )
