"""
Sources API Router
Endpoints for medications and supplements, the owners of recurrence rules
"""

from fastapi import APIRouter, Depends, Query, status

from models import SourceKind
from api.deps import (
    get_services,
    get_profile_id,
    get_source_or_404,
    resolve_profile_id,
    pagination_params,
)
from api.schemas.sources import (
    SourceCreate,
    SourceUpdate,
    SourceChangeResponse,
    SourceList,
    SourceResponse,
    ReconcileSummary,
    HistoryList,
    source_response,
    history_response,
)
from services.container import ServiceContainer


router = APIRouter(prefix="/sources", tags=["sources"])


@router.get("/refills", response_model=SourceList)
async def get_refills_needed(
    profile_id: str = Depends(get_profile_id),
    services: ServiceContainer = Depends(get_services)
):
    """
    Get active sources at or below their refill threshold
    """
    sources = services.source_store.get_needing_refill(profile_id)
    return SourceList(
        sources=[source_response(s) for s in sources],
        total=len(sources),
        needs_refill_count=len(sources)
    )


@router.post("/{kind}", response_model=SourceChangeResponse, status_code=status.HTTP_201_CREATED)
async def create_source(
    kind: SourceKind,
    source_data: SourceCreate,
    services: ServiceContainer = Depends(get_services)
):
    """
    Add a medication or supplement and materialize its calendar events

    - **name**: Display name
    - **time_of_day**: List of "HH:MM" times
    - **frequency_rule**: `{"frequency": "daily" | "weekly" | "custom" | "monthly", ...}`
    """
    profile_id = resolve_profile_id(source_data.profile_id, services)
    fields = source_data.model_dump(exclude={"profile_id", "name"}, exclude_none=True)

    source = services.source_store.create(kind, profile_id, source_data.name, **fields)
    result = await services.event_generation.reconcile(source)

    return SourceChangeResponse(
        source=source_response(source),
        reconcile=ReconcileSummary(inserted=result.inserted, deleted=result.deleted)
    )


@router.get("/{kind}", response_model=SourceList)
async def list_sources(
    kind: SourceKind,
    active_only: bool = Query(True, description="Only return active sources"),
    profile_id: str = Depends(get_profile_id),
    services: ServiceContainer = Depends(get_services)
):
    """
    Get the medications or supplements of a profile
    """
    sources = services.source_store.list_by_profile(profile_id, active_only=active_only, kind=kind)
    return SourceList(
        sources=[source_response(s) for s in sources],
        total=len(sources),
        needs_refill_count=sum(1 for s in sources if s.needs_refill)
    )


@router.get("/{kind}/{source_id}", response_model=SourceResponse)
async def get_source(
    kind: SourceKind,
    source_id: str,
    services: ServiceContainer = Depends(get_services)
):
    """Get one medication or supplement"""
    return source_response(get_source_or_404(services, kind, source_id))


@router.patch("/{kind}/{source_id}", response_model=SourceChangeResponse)
async def update_source(
    kind: SourceKind,
    source_id: str,
    update_data: SourceUpdate,
    services: ServiceContainer = Depends(get_services)
):
    """
    Update a source

    Changing time_of_day, frequency_rule or is_active reconciles the calendar;
    completed and skipped events are never touched.
    """
    get_source_or_404(services, kind, source_id)
    source, schedule_changed = services.source_store.update(
        kind, source_id, update_data.model_dump(exclude_unset=True)
    )

    summary = ReconcileSummary()
    if schedule_changed:
        result = await services.event_generation.reconcile(source)
        summary = ReconcileSummary(inserted=result.inserted, deleted=result.deleted)

    return SourceChangeResponse(source=source_response(source), reconcile=summary)


@router.post("/{kind}/{source_id}/deactivate", response_model=SourceChangeResponse)
async def deactivate_source(
    kind: SourceKind,
    source_id: str,
    services: ServiceContainer = Depends(get_services)
):
    """
    Deactivate a source

    Future pending events are removed; history is kept.
    """
    get_source_or_404(services, kind, source_id)
    source, _ = services.source_store.update(kind, source_id, {"is_active": False})
    result = await services.event_generation.reconcile(source)

    return SourceChangeResponse(
        source=source_response(source),
        reconcile=ReconcileSummary(inserted=result.inserted, deleted=result.deleted)
    )


@router.get("/{kind}/{source_id}/history", response_model=HistoryList)
async def get_source_history(
    kind: SourceKind,
    source_id: str,
    pagination: dict = Depends(pagination_params),
    services: ServiceContainer = Depends(get_services)
):
    """Get the recorded doses of a source, newest first"""
    get_source_or_404(services, kind, source_id)
    entries = services.history_store.get_by_source(
        source_id, limit=pagination["page_size"], offset=pagination["offset"]
    )
    return HistoryList(
        source_id=source_id,
        entries=[history_response(e) for e in entries],
        page=pagination["page"],
        page_size=pagination["page_size"]
    )
