"""
Adherence API Router
Endpoints for adherence statistics and insights
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from api.deps import get_services, get_profile_id
from api.schemas.adherence import (
    DashboardResponse,
    AdherencePoint,
    AdherenceHistoryResponse,
    StreakResponse,
    InsightResponse,
    InsightList,
)
from services.container import ServiceContainer


router = APIRouter(prefix="/adherence", tags=["adherence"])


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    profile_id: str = Depends(get_profile_id),
    services: ServiceContainer = Depends(get_services)
):
    """
    Get trailing-window adherence for the home screen

    adherence_percentage is completed / (completed + missed), 0 when nothing was due.
    """
    stats = await services.adherence.get_dashboard_stats(profile_id)
    return DashboardResponse.model_validate(stats)


@router.get("/history", response_model=AdherenceHistoryResponse)
async def get_adherence_history(
    days: Optional[int] = Query(None, ge=1, le=365, description="Number of days (default from settings)"),
    profile_id: str = Depends(get_profile_id),
    services: ServiceContainer = Depends(get_services)
):
    """
    Get one adherence data point per day, oldest first
    """
    points = await services.adherence.get_adherence_history(profile_id, days)
    return AdherenceHistoryResponse(
        profile_id=profile_id,
        days=len(points),
        points=[AdherencePoint.model_validate(p) for p in points]
    )


@router.get("/streak", response_model=StreakResponse)
async def get_streak(
    profile_id: str = Depends(get_profile_id),
    services: ServiceContainer = Depends(get_services)
):
    """Get the current streak of days without a missed dose"""
    streak = await services.adherence.streak_days(profile_id)
    return StreakResponse(profile_id=profile_id, streak_days=streak)


@router.get("/insights", response_model=InsightList)
async def get_insights(
    profile_id: str = Depends(get_profile_id),
    services: ServiceContainer = Depends(get_services)
):
    """
    Get dashboard insight cards: consistency score, weekly trend,
    most missed source, best time of day and refill prediction
    """
    insights = await services.adherence.get_care_insights(profile_id)
    return InsightList(
        profile_id=profile_id,
        insights=[InsightResponse(**insight.to_dict()) for insight in insights]
    )
