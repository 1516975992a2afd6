"""
Follo Test Suite
================

This package contains all tests for the Follo scheduling engine.

Test Structure:
- test_tools/: Recurrence expansion and notification scheduler tests
- test_services/: Store, event generation and adherence tests
- test_actions/: Take/skip and alarm resolution tests
- test_api/: API endpoint tests for FastAPI routes
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_services/

    # Run only marked tests
    pytest -m "unit"
    pytest -m "database"
"""

# Test configuration
TEST_DATABASE_URL = "sqlite:///:memory:"

# Monday 2026-03-02 10:00, local wall-clock time
FIXED_NOW_ISO = "2026-03-02T10:00:00"

# Common test data
SAMPLE_MEDICATIONS = [
    {"name": "Metformin", "dosage": "500mg", "form": "tablet", "time_of_day": ["08:00", "20:00"]},
    {"name": "Lisinopril", "dosage": "10mg", "form": "tablet", "time_of_day": ["08:00"]},
]

SAMPLE_SUPPLEMENTS = [
    {"name": "Vitamin D3", "dosage": "2000 IU", "form": "capsule", "time_of_day": ["09:00"]},
]

__all__ = [
    "TEST_DATABASE_URL",
    "FIXED_NOW_ISO",
    "SAMPLE_MEDICATIONS",
    "SAMPLE_SUPPLEMENTS",
]
