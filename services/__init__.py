"""
Services Module
Persistence stores and scheduling services for Follo
"""

from services.base import BaseStore
from services.calendar_store import CalendarEventStore, classify_status
from services.source_store import SourceStore, ScheduleSource
from services.history_store import HistoryStore
from services.profile_store import ProfileStore
from services.event_generation_service import EventGenerationService
from services.adherence_service import AdherenceCalculator, adherence_percentage


__all__ = [
    # Stores
    "BaseStore",
    "CalendarEventStore",
    "SourceStore",
    "ScheduleSource",
    "HistoryStore",
    "ProfileStore",
    # Services
    "EventGenerationService",
    "AdherenceCalculator",
    # Helpers
    "classify_status",
    "adherence_percentage",
]
