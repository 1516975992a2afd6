"""
Alarm Schemas
Pydantic models for alarm resolution
"""

from typing import Optional
from pydantic import BaseModel

from api.schemas.events import CalendarEventResponse


class AlarmResolveRequest(BaseModel):
    """Payload delivered by the OS alarm layer; both fields may be missing"""
    event_id: Optional[str] = None
    profile_id: Optional[str] = None


class AlarmResolveResponse(BaseModel):
    """Event to show on the alarm screen"""
    event: CalendarEventResponse
    path: str
    effective_status: str
