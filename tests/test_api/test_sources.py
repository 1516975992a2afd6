"""
Tests for Sources API
=====================

Tests medication / supplement CRUD and the calendar reconciliation each change triggers.
"""

import pytest
from datetime import datetime
from fastapi import status
from fastapi.testclient import TestClient


# ==================== FIXTURES ====================

@pytest.fixture
def medication_create_data(test_profile):
    """Sample data for creating a medication"""
    return {
        "profile_id": test_profile.id,
        "name": "Metformin",
        "dosage": "500mg",
        "form": "tablet",
        "time_of_day": ["20:00", "08:00"],
        "frequency_rule": {"frequency": "daily"},
        "current_quantity": 30,
    }


# ==================== CREATE TESTS ====================

class TestCreateSource:
    """Tests for source creation endpoint"""

    @pytest.mark.api
    def test_create_medication_fills_horizon(self, client: TestClient, medication_create_data):
        response = client.post("/api/v1/sources/medication", json=medication_create_data)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["source"]["kind"] == "medication"
        assert data["source"]["time_of_day"] == ["08:00", "20:00"]
        assert data["source"]["refill_threshold"] == 7
        assert data["reconcile"] == {"inserted": 60, "deleted": 0}

    @pytest.mark.api
    def test_create_weekly_supplement(self, client: TestClient, test_profile):
        response = client.post("/api/v1/sources/supplement", json={
            "name": "Vitamin B12",
            "time_of_day": ["09:00"],
            "frequency_rule": {"frequency": "weekly", "days_of_week": [1]},
        })

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["source"]["refill_threshold"] == 10
        assert data["source"]["frequency_rule"] == {"frequency": "weekly", "days_of_week": [1]}
        # Mondays 9, 16, 23 and 30 March; this morning's dose is already past
        assert data["reconcile"]["inserted"] == 4

    @pytest.mark.api
    def test_malformed_time_rejected(self, client: TestClient, medication_create_data):
        medication_create_data["time_of_day"] = ["breakfast"]

        response = client.post("/api/v1/sources/medication", json=medication_create_data)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        data = response.json()
        assert data["error"] is True
        assert "breakfast" in data["message"]

    @pytest.mark.api
    def test_unknown_frequency_rejected(self, client: TestClient, medication_create_data):
        medication_create_data["frequency_rule"] = {"frequency": "hourly"}

        response = client.post("/api/v1/sources/medication", json=medication_create_data)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_unknown_kind(self, client: TestClient, medication_create_data):
        response = client.post("/api/v1/sources/vitamin", json=medication_create_data)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_no_profile_yet(self, client: TestClient):
        response = client.post("/api/v1/sources/medication", json={"name": "Metformin"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] is True


# ==================== READ TESTS ====================

class TestReadSources:
    """Tests for source listing and lookup"""

    @pytest.mark.api
    def test_list_by_kind(self, client: TestClient, test_medication, test_supplement):
        response = client.get("/api/v1/sources/medication")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 1
        assert data["sources"][0]["id"] == test_medication.id

    @pytest.mark.api
    def test_get_source(self, client: TestClient, test_supplement):
        response = client.get(f"/api/v1/sources/supplement/{test_supplement.id}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["name"] == "Vitamin D3"

    @pytest.mark.api
    def test_get_with_wrong_kind(self, client: TestClient, test_supplement):
        response = client.get(f"/api/v1/sources/medication/{test_supplement.id}")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.api
    def test_refills(self, client: TestClient, source_store, test_medication, test_supplement):
        source_store.update("supplement", test_supplement.id, {"current_quantity": 4})

        response = client.get("/api/v1/sources/refills")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["needs_refill_count"] == 1
        assert data["sources"][0]["id"] == test_supplement.id
        assert data["sources"][0]["needs_refill"] is True


# ==================== UPDATE TESTS ====================

class TestUpdateSource:
    """Tests for source updates and deactivation"""

    @pytest.mark.api
    def test_time_change_reconciles(self, client: TestClient, test_medication):
        client.post("/api/v1/events/regenerate", json={})

        response = client.patch(
            f"/api/v1/sources/medication/{test_medication.id}",
            json={"time_of_day": ["09:00", "20:00"]}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["reconcile"] == {"inserted": 30, "deleted": 30}

    @pytest.mark.api
    def test_name_change_does_not_reconcile(self, client: TestClient, test_medication):
        response = client.patch(
            f"/api/v1/sources/medication/{test_medication.id}",
            json={"name": "Glucophage"}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["source"]["name"] == "Glucophage"
        assert data["reconcile"] == {"inserted": 0, "deleted": 0}

    @pytest.mark.api
    def test_deactivate(self, client: TestClient, calendar_store, add_event, test_medication):
        done = add_event(test_medication, datetime(2026, 3, 1, 8, 0), "completed")
        client.post("/api/v1/events/regenerate", json={})

        response = client.post(f"/api/v1/sources/medication/{test_medication.id}/deactivate")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["source"]["is_active"] is False
        assert data["reconcile"] == {"inserted": 0, "deleted": 60}
        assert [e.id for e in calendar_store.get_by_source(test_medication.id)] == [done.id]

    @pytest.mark.api
    def test_update_missing_source(self, client: TestClient, test_profile):
        response = client.patch("/api/v1/sources/medication/missing", json={"name": "x"})

        assert response.status_code == status.HTTP_404_NOT_FOUND


# ==================== HISTORY TESTS ====================

class TestSourceHistory:
    """Tests for the per-source history endpoint"""

    @pytest.mark.api
    def test_history_newest_first(self, client: TestClient, test_medication):
        for hour in (8, 20):
            client.post("/api/v1/events/take", json={
                "source_id": test_medication.id,
                "scheduled_time": datetime(2026, 3, 1, hour, 0).isoformat(),
            })

        response = client.get(f"/api/v1/sources/medication/{test_medication.id}/history")

        assert response.status_code == status.HTTP_200_OK
        entries = response.json()["entries"]
        assert [e["scheduled_time"] for e in entries] == ["2026-03-01T20:00:00", "2026-03-01T08:00:00"]
        assert all(e["status"] == "taken" for e in entries)
