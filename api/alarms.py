"""
Alarms API Router
Alarm-time resolution for the OS notification layer
"""

from fastapi import APIRouter, Depends

from api.deps import get_services
from api.schemas.alarms import AlarmResolveRequest, AlarmResolveResponse
from api.schemas.events import event_response
from services.container import ServiceContainer


router = APIRouter(prefix="/alarms", tags=["alarms"])


@router.post("/resolve", response_model=AlarmResolveResponse)
async def resolve_alarm(
    request: AlarmResolveRequest,
    services: ServiceContainer = Depends(get_services)
):
    """
    Resolve which obligation an alarm fired for

    Falls back to the earliest overdue, then the next upcoming event when
    the event id is missing or stale. Returns 404 when nothing is pending
    and 504 when the lookup does not finish in time.
    """
    resolution = await services.alarms.resolve(
        event_id=request.event_id,
        profile_id=request.profile_id
    )
    return AlarmResolveResponse(
        event=event_response(resolution.event, services.clock()),
        path=resolution.path.value,
        effective_status=resolution.effective_status.value
    )
