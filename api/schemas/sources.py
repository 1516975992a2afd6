"""
Source Schemas
Pydantic models for medication / supplement requests and responses
"""

from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from domain import RecurrenceRule


# ==================== REQUEST SCHEMAS ====================

class SourceBase(BaseModel):
    """Fields shared by medications and supplements"""
    name: str = Field(..., min_length=1, max_length=255)
    dosage: Optional[str] = Field(None, max_length=100)
    form: Optional[str] = Field(None, max_length=100)


class SourceCreate(SourceBase):
    """Schema for creating a medication or supplement"""
    profile_id: Optional[str] = None
    time_of_day: List[str] = Field(default_factory=list, description="Times as HH:MM")
    frequency_rule: Optional[RecurrenceRule] = None
    current_quantity: Optional[int] = Field(None, ge=0)
    refill_threshold: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None
    hide_name: bool = False


class SourceUpdate(BaseModel):
    """Schema for updating a source; only sent fields change"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    dosage: Optional[str] = Field(None, max_length=100)
    form: Optional[str] = Field(None, max_length=100)
    time_of_day: Optional[List[str]] = None
    frequency_rule: Optional[RecurrenceRule] = None
    current_quantity: Optional[int] = Field(None, ge=0)
    refill_threshold: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None
    is_active: Optional[bool] = None
    hide_name: Optional[bool] = None


# ==================== RESPONSE SCHEMAS ====================

class SourceResponse(SourceBase):
    """Schema for source response"""
    id: str
    profile_id: str
    kind: str
    time_of_day: List[str]
    frequency_rule: Optional[Dict[str, Any]] = None
    current_quantity: Optional[int] = None
    refill_threshold: int
    needs_refill: bool
    is_active: bool
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReconcileSummary(BaseModel):
    """Net calendar changes caused by a request"""
    inserted: int = 0
    deleted: int = 0


class SourceChangeResponse(BaseModel):
    """Source after a change, with the resulting calendar reconciliation"""
    source: SourceResponse
    reconcile: ReconcileSummary


class SourceList(BaseModel):
    """List of sources"""
    sources: List[SourceResponse]
    total: int
    needs_refill_count: int


class HistoryEntryResponse(BaseModel):
    """One recorded dose"""
    id: str
    source_id: str
    kind: str
    scheduled_time: datetime
    actual_time: Optional[datetime] = None
    status: str
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HistoryList(BaseModel):
    """Paginated history of one source"""
    source_id: str
    entries: List[HistoryEntryResponse]
    page: int
    page_size: int


def source_response(source) -> SourceResponse:
    """Build the response for a Medication / Supplement row"""
    return SourceResponse(
        id=source.id,
        profile_id=source.profile_id,
        kind=source.kind.value,
        name=source.name,
        dosage=source.dosage,
        form=source.form,
        time_of_day=list(source.time_of_day or []),
        frequency_rule=source.frequency_rule,
        current_quantity=source.current_quantity,
        refill_threshold=source.refill_threshold,
        needs_refill=source.needs_refill,
        is_active=source.is_active,
        notes=source.notes,
        created_at=source.created_at,
        updated_at=source.updated_at,
    )


def history_response(entry) -> HistoryEntryResponse:
    """Build the response for a history row"""
    return HistoryEntryResponse(
        id=entry.id,
        source_id=entry.source_id,
        kind=entry.kind.value,
        scheduled_time=entry.scheduled_time,
        actual_time=entry.actual_time,
        status=entry.status,
        notes=entry.notes,
        created_at=entry.created_at,
    )
