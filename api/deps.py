"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from typing import Optional
from fastapi import Depends, HTTPException, Query, Request, status

from models import SourceKind
from exceptions import NotFoundError
from services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """
    Service container dependency
    Built once in the application lifespan and kept on app.state
    """
    container = getattr(request.app.state, "services", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services are not initialized",
        )
    return container


def resolve_profile_id(
    profile_id: Optional[str],
    services: ServiceContainer
) -> str:
    """Explicit profile, then the configured default, then the primary profile"""
    if profile_id:
        return profile_id
    if services.settings.DEFAULT_PROFILE_ID:
        return services.settings.DEFAULT_PROFILE_ID

    profile = services.profile_store.get_primary()
    if profile is None:
        raise NotFoundError("No profile exists yet")
    return profile.id


async def get_profile_id(
    profile_id: Optional[str] = Query(None, description="Profile ID (defaults to the primary profile)"),
    services: ServiceContainer = Depends(get_services)
) -> str:
    """Profile ID query parameter with fallback to the primary profile"""
    return resolve_profile_id(profile_id, services)


def get_source_or_404(services: ServiceContainer, kind: SourceKind, source_id: str):
    """Load a source and check it is of the requested kind"""
    source = services.source_store.get(source_id)
    if source is None or source.kind is not kind:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{kind.value.capitalize()} {source_id} not found"
        )
    return source


def pagination_params(
    page: int = 1,
    page_size: int = 20
) -> dict:
    """
    Common pagination parameters
    """
    if page < 1:
        page = 1
    if page_size < 1:
        page_size = 20
    if page_size > 100:
        page_size = 100

    return {
        "page": page,
        "page_size": page_size,
        "offset": (page - 1) * page_size
    }
