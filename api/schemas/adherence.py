"""
Adherence Schemas
Pydantic models for adherence statistics responses
"""

from typing import Optional, List, Dict, Any
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict


class DashboardResponse(BaseModel):
    """Trailing-window adherence numbers"""
    profile_id: str
    adherence_percentage: int = Field(..., ge=0, le=100)
    completed_count: int
    missed_count: int
    skipped_count: int
    current_streak: int
    upcoming_count: int
    today_completed: int
    today_total: int
    window_start: datetime
    window_end: datetime

    model_config = ConfigDict(from_attributes=True)


class AdherencePoint(BaseModel):
    """Adherence of one day"""
    date: date
    percentage: int

    model_config = ConfigDict(from_attributes=True)


class AdherenceHistoryResponse(BaseModel):
    """Daily adherence series, oldest first"""
    profile_id: str
    days: int
    points: List[AdherencePoint]


class StreakResponse(BaseModel):
    """Current streak in days"""
    profile_id: str
    streak_days: int


class InsightResponse(BaseModel):
    """One insight card"""
    type: str
    value: Any
    description: str
    score: Optional[int] = None
    trend: str = "neutral"
    params: Dict[str, Any] = Field(default_factory=dict)


class InsightList(BaseModel):
    """Insight cards for the dashboard"""
    profile_id: str
    insights: List[InsightResponse]
