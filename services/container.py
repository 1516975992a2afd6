"""
Service Container
Wires stores, services and actions around one session factory
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import sessionmaker

from config import Settings, get_settings
from services.calendar_store import CalendarEventStore
from services.source_store import SourceStore
from services.history_store import HistoryStore
from services.profile_store import ProfileStore
from services.event_generation_service import EventGenerationService
from services.adherence_service import AdherenceCalculator
from actions.reconciliation_actions import ReconciliationActions
from actions.alarm_reconciler import AlarmDeliveryReconciler
from tools.recurrence import RecurrenceRuleEngine
from tools.notification_service import LoggingNotificationScheduler, NotificationScheduler


logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Every component of the scheduling engine, built once per process"""
    settings: Settings
    notifier: NotificationScheduler
    calendar_store: CalendarEventStore
    source_store: SourceStore
    history_store: HistoryStore
    profile_store: ProfileStore
    event_generation: EventGenerationService
    actions: ReconciliationActions
    adherence: AdherenceCalculator
    alarms: AlarmDeliveryReconciler
    clock: Callable[[], datetime] = datetime.now


def build_services(
    session_factory: sessionmaker,
    settings: Optional[Settings] = None,
    notifier: Optional[NotificationScheduler] = None,
    clock: Optional[Callable[[], datetime]] = None
) -> ServiceContainer:
    """
    Build the component graph.

    Args:
        session_factory: Session factory bound to the application engine
        settings: Application settings (defaults to get_settings())
        notifier: Notification scheduler (defaults to the in-memory one)
        clock: Source of "now" (defaults to datetime.now)
    """
    settings = settings or get_settings()
    notifier = notifier or LoggingNotificationScheduler()
    clock = clock or datetime.now
    engine = RecurrenceRuleEngine()

    calendar_store = CalendarEventStore(session_factory)
    source_store = SourceStore(session_factory)
    history_store = HistoryStore(session_factory)
    profile_store = ProfileStore(session_factory)

    container = ServiceContainer(
        settings=settings,
        notifier=notifier,
        calendar_store=calendar_store,
        source_store=source_store,
        history_store=history_store,
        profile_store=profile_store,
        event_generation=EventGenerationService(
            calendar_store, source_store, engine, notifier,
            clock=clock, horizon_days=settings.HORIZON_DAYS
        ),
        actions=ReconciliationActions(
            source_store, calendar_store, history_store, notifier, clock=clock
        ),
        adherence=AdherenceCalculator(
            calendar_store, history_store, source_store, engine,
            clock=clock,
            window_days=settings.ADHERENCE_WINDOW_DAYS,
            history_days=settings.HISTORY_DAYS,
            upcoming_hours=settings.UPCOMING_HOURS,
            streak_max_lookback_days=settings.STREAK_MAX_LOOKBACK_DAYS,
        ),
        alarms=AlarmDeliveryReconciler(
            calendar_store, profile_store,
            clock=clock, timeout_seconds=settings.ALARM_LOAD_TIMEOUT_SECONDS
        ),
        clock=clock,
    )
    logger.info("Scheduling services initialized")
    return container
