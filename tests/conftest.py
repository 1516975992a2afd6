"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all Follo tests.
Fixtures include the in-memory database, a controllable clock, the wired
service container, sample sources and the API test client.
"""

import os
import sys
from datetime import datetime, timedelta
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import get_settings
from database import create_db_engine, create_session_factory, init_db, drop_db
from domain import Daily
from models import CalendarEventStatus, SourceKind
from services.container import ServiceContainer, build_services
from tools.notification_service import LoggingNotificationScheduler
from tests import TEST_DATABASE_URL, FIXED_NOW_ISO
from app import app


FIXED_NOW = datetime.fromisoformat(FIXED_NOW_ISO)


class FakeClock:
    """Callable clock the tests can move"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_db_engine(TEST_DATABASE_URL)
    init_db(engine)

    yield engine

    # Cleanup
    drop_db(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return create_session_factory(test_engine)


# ==================== SERVICE FIXTURES ====================

@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at Monday 2026-03-02 10:00"""
    return FakeClock(FIXED_NOW)


@pytest.fixture
def notifier() -> LoggingNotificationScheduler:
    return LoggingNotificationScheduler()


@pytest.fixture
def services(session_factory, clock, notifier) -> ServiceContainer:
    """Fully wired service container on the test database"""
    return build_services(session_factory, get_settings(), notifier, clock)


@pytest.fixture
def calendar_store(services):
    return services.calendar_store


@pytest.fixture
def source_store(services):
    return services.source_store


@pytest.fixture
def history_store(services):
    return services.history_store


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def test_profile(services):
    """Create the primary test profile"""
    return services.profile_store.create("Test User", is_primary=True)


@pytest.fixture
def test_medication(services, test_profile, clock):
    """Metformin twice daily, 30 tablets"""
    return services.source_store.create(
        SourceKind.MEDICATION,
        test_profile.id,
        "Metformin",
        dosage="500mg",
        form="tablet",
        time_of_day=["08:00", "20:00"],
        frequency_rule=Daily(),
        current_quantity=30,
        created_at=clock.now - timedelta(days=30),
    )


@pytest.fixture
def test_supplement(services, test_profile, clock):
    """Vitamin D3 once daily, 60 capsules"""
    return services.source_store.create(
        SourceKind.SUPPLEMENT,
        test_profile.id,
        "Vitamin D3",
        dosage="2000 IU",
        form="capsule",
        time_of_day=["09:00"],
        frequency_rule=Daily(),
        current_quantity=60,
        created_at=clock.now - timedelta(days=30),
    )


@pytest.fixture
def add_event(calendar_store) -> Callable:
    """
    Insert one calendar event for a source directly.

    Reconcile never writes before now, so tests use this to build past
    obligations.
    """
    def _add(source, scheduled_time: datetime, status=CalendarEventStatus.PENDING):
        status = CalendarEventStatus(status)
        return calendar_store.insert(
            profile_id=source.profile_id,
            source_id=source.id,
            event_type=source.event_type,
            title=source.display_title,
            scheduled_time=scheduled_time,
            status=status,
            completed_time=scheduled_time if status is CalendarEventStatus.COMPLETED else None,
        )

    return _add


# ==================== API CLIENT FIXTURES ====================

@pytest.fixture(scope="function")
def client(services, test_engine) -> Generator[TestClient, None, None]:
    """Create a test client wired to the test services"""
    app.state.services = services
    app.state.db_engine = test_engine

    with TestClient(app) as test_client:
        yield test_client

    app.state.services = None
    app.state.db_engine = None


# ==================== PYTEST CONFIGURATION ====================

def pytest_configure(config):
    """Configure pytest markers"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
    config.addinivalue_line("markers", "api: API endpoint tests")
    config.addinivalue_line("markers", "database: Tests that require database")
