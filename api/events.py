"""
Events API Router
Endpoints for calendar events and dose actions
"""

from typing import Optional
from datetime import datetime, timedelta
from fastapi import APIRouter, Depends, HTTPException, Query, status

from models import CalendarEventType
from domain import ActivityInput, AppointmentInput
from api.deps import get_services, get_profile_id, resolve_profile_id
from api.schemas.events import (
    DoseActionRequest,
    DoseActionResponse,
    RegenerateRequest,
    RegenerateResponse,
    AppointmentRequest,
    ActivityRequest,
    CalendarEventResponse,
    EventList,
    event_response,
)
from api.schemas.sources import ReconcileSummary, history_response
from services.container import ServiceContainer


router = APIRouter(prefix="/events", tags=["events"])


@router.get("/overdue", response_model=EventList)
async def get_overdue_events(
    profile_id: str = Depends(get_profile_id),
    services: ServiceContainer = Depends(get_services)
):
    """
    Get pending events whose time has passed, oldest first
    """
    now = services.clock()
    events = services.calendar_store.get_overdue(profile_id, now)
    return EventList(
        profile_id=profile_id,
        events=[event_response(e, now) for e in events],
        total=len(events)
    )


@router.get("/upcoming", response_model=EventList)
async def get_upcoming_events(
    limit: int = Query(10, ge=1, le=200),
    hours: Optional[int] = Query(None, ge=1, le=24 * 30, description="Only events within this many hours"),
    event_type: Optional[CalendarEventType] = Query(None),
    profile_id: str = Depends(get_profile_id),
    services: ServiceContainer = Depends(get_services)
):
    """
    Get the next pending events, soonest first
    """
    now = services.clock()
    until = now + timedelta(hours=hours) if hours else None
    events = services.calendar_store.get_upcoming(
        profile_id, limit, now, until=until, event_type=event_type
    )
    return EventList(
        profile_id=profile_id,
        events=[event_response(e, now) for e in events],
        total=len(events)
    )


@router.get("/range", response_model=EventList)
async def get_events_in_range(
    start: datetime = Query(..., description="Inclusive start"),
    end: datetime = Query(..., description="Exclusive end"),
    profile_id: str = Depends(get_profile_id),
    services: ServiceContainer = Depends(get_services)
):
    """
    Get every event of a profile in [start, end) for the timeline view
    """
    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end must be after start"
        )

    now = services.clock()
    events = services.calendar_store.get_in_range(profile_id, start, end)
    return EventList(
        profile_id=profile_id,
        events=[event_response(e, now) for e in events],
        total=len(events)
    )


@router.get("/{event_id}", response_model=CalendarEventResponse)
async def get_event(
    event_id: str,
    services: ServiceContainer = Depends(get_services)
):
    """Get one calendar event"""
    event = services.calendar_store.get_by_id(event_id)
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Calendar event {event_id} not found"
        )
    return event_response(event, services.clock())


async def _dose_action(action, request: DoseActionRequest, services: ServiceContainer) -> DoseActionResponse:
    result = await action(request.source_id, request.scheduled_time, notes=request.notes)
    now = services.clock()
    return DoseActionResponse(
        history_entry=history_response(result.history_entry),
        event=event_response(result.event, now) if result.event else None,
        event_transitioned=result.event_transitioned,
        remaining_quantity=result.remaining_quantity,
        needs_refill=result.needs_refill,
        warnings=result.warnings
    )


@router.post("/take", response_model=DoseActionResponse)
async def take_dose(
    request: DoseActionRequest,
    services: ServiceContainer = Depends(get_services)
):
    """
    Mark a scheduled dose as taken

    History is recorded even when the calendar event no longer exists.
    """
    return await _dose_action(services.actions.mark_taken, request, services)


@router.post("/skip", response_model=DoseActionResponse)
async def skip_dose(
    request: DoseActionRequest,
    services: ServiceContainer = Depends(get_services)
):
    """Mark a scheduled dose as skipped"""
    return await _dose_action(services.actions.mark_skipped, request, services)


@router.post("/regenerate", response_model=RegenerateResponse)
async def regenerate_events(
    request: RegenerateRequest,
    services: ServiceContainer = Depends(get_services)
):
    """
    Roll the scheduling horizon forward for every source of a profile
    """
    profile_id = resolve_profile_id(request.profile_id, services)
    results = await services.event_generation.regenerate_profile(profile_id, request.days_ahead)
    return RegenerateResponse(
        profile_id=profile_id,
        sources=len(results),
        inserted=sum(r.inserted for r in results),
        deleted=sum(r.deleted for r in results)
    )


@router.post("/appointments", response_model=ReconcileSummary)
async def sync_appointment(
    request: AppointmentRequest,
    services: ServiceContainer = Depends(get_services)
):
    """Create or move the calendar event of an appointment"""
    result = await services.event_generation.reconcile_appointment(
        AppointmentInput(**request.model_dump())
    )
    return ReconcileSummary(inserted=result.inserted, deleted=result.deleted)


@router.post("/activities", response_model=CalendarEventResponse, status_code=status.HTTP_201_CREATED)
async def record_activity(
    request: ActivityRequest,
    services: ServiceContainer = Depends(get_services)
):
    """Record a logged activity as a completed calendar event"""
    event = await services.event_generation.record_activity(ActivityInput(**request.model_dump()))
    return event_response(event, services.clock())
