"""
API Module
FastAPI routers for Follo
"""

from api.sources import router as sources_router
from api.events import router as events_router
from api.adherence import router as adherence_router
from api.alarms import router as alarms_router

from api.deps import (
    get_services,
    get_profile_id,
    resolve_profile_id,
    pagination_params,
)


__all__ = [
    # Routers
    "sources_router",
    "events_router",
    "adherence_router",
    "alarms_router",
    # Dependencies
    "get_services",
    "get_profile_id",
    "resolve_profile_id",
    "pagination_params",
]


def include_routers(app, prefix: str = "/api/v1"):
    """
    Include all API routers in the FastAPI app

    Usage:
        from api import include_routers
        include_routers(app)
    """
    app.include_router(sources_router, prefix=prefix)
    app.include_router(events_router, prefix=prefix)
    app.include_router(adherence_router, prefix=prefix)
    app.include_router(alarms_router, prefix=prefix)
