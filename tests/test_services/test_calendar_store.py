"""
Tests for Calendar Event Store
Tests uniqueness, guarded transitions, pending-only deletes and status queries
"""

import pytest
from datetime import datetime, timedelta

from database import create_db_engine, create_session_factory
from domain import AppointmentMetadata, MedicationDueMetadata
from exceptions import ConflictError, ConcurrencyConflict, NotFoundError, StorageError, ValidationError
from models import CalendarEventStatus, CalendarEventType
from services.calendar_store import CalendarEventStore, classify_status


# ==================== INSERT ====================

@pytest.mark.database
class TestInsert:
    """Tests for inserting events"""

    def test_insert_and_lookup(self, calendar_store, test_medication, clock):
        when = clock.now + timedelta(hours=2)
        event = calendar_store.insert(
            profile_id=test_medication.profile_id,
            source_id=test_medication.id,
            event_type=CalendarEventType.MEDICATION_DUE,
            title="Metformin",
            scheduled_time=when,
            metadata=MedicationDueMetadata(dosage="500mg", form="tablet"),
        )

        found = calendar_store.get_by_source_and_time(test_medication.id, when)
        assert found.id == event.id
        assert found.status == CalendarEventStatus.PENDING.value
        assert found.payload == MedicationDueMetadata(dosage="500mg", form="tablet")

    def test_duplicate_source_time_conflicts(self, calendar_store, add_event, test_medication, clock):
        when = clock.now + timedelta(hours=2)
        first = add_event(test_medication, when)

        with pytest.raises(ConflictError) as exc_info:
            add_event(test_medication, when)

        assert exc_info.value.detail["event_id"] == first.id
        assert len(calendar_store.get_by_source(test_medication.id)) == 1

    def test_batch_insert_conflict(self, calendar_store, add_event, test_medication, clock):
        when = clock.now + timedelta(hours=2)
        add_event(test_medication, when)

        with pytest.raises(ConflictError):
            calendar_store.insert_many([{
                "profile_id": test_medication.profile_id,
                "source_id": test_medication.id,
                "event_type": CalendarEventType.MEDICATION_DUE,
                "title": "Metformin",
                "scheduled_time": when,
            }])

    def test_metadata_must_match_event_type(self, calendar_store, test_medication, clock):
        with pytest.raises(ValidationError):
            calendar_store.insert(
                profile_id=test_medication.profile_id,
                source_id=test_medication.id,
                event_type=CalendarEventType.MEDICATION_DUE,
                title="Metformin",
                scheduled_time=clock.now,
                metadata=AppointmentMetadata(doctor_name="Dr. Smith"),
            )

    def test_empty_batch(self, calendar_store):
        assert calendar_store.insert_many([]) == []


# ==================== TRANSITIONS ====================

@pytest.mark.database
class TestTransitions:
    """Tests for the guarded pending -> completed/skipped updates"""

    def test_mark_completed(self, calendar_store, add_event, test_medication, clock):
        event = add_event(test_medication, clock.now - timedelta(hours=2))

        updated = calendar_store.mark_completed(event.id, clock.now)

        assert updated.status == CalendarEventStatus.COMPLETED.value
        assert updated.completed_time == clock.now

    def test_mark_skipped(self, calendar_store, add_event, test_medication, clock):
        event = add_event(test_medication, clock.now - timedelta(hours=2))

        updated = calendar_store.mark_skipped(event.id)

        assert updated.status == CalendarEventStatus.SKIPPED.value
        assert updated.completed_time is None

    def test_second_transition_conflicts(self, calendar_store, add_event, test_medication, clock):
        event = add_event(test_medication, clock.now - timedelta(hours=2))
        calendar_store.mark_completed(event.id, clock.now)

        with pytest.raises(ConcurrencyConflict) as exc_info:
            calendar_store.mark_skipped(event.id)

        assert exc_info.value.detail == {"event_id": event.id, "status": "completed"}
        assert calendar_store.get_by_id(event.id).status == CalendarEventStatus.COMPLETED.value

    def test_unknown_event(self, calendar_store, clock):
        with pytest.raises(NotFoundError):
            calendar_store.mark_completed("does-not-exist", clock.now)


# ==================== DELETES ====================

@pytest.mark.database
class TestDeletes:
    """Only pending rows are ever deleted"""

    def test_delete_by_source_keeps_settled_rows(self, calendar_store, add_event, test_medication, clock):
        base = clock.now + timedelta(days=1)
        pending = add_event(test_medication, base)
        completed = add_event(test_medication, base + timedelta(hours=1), CalendarEventStatus.COMPLETED)
        skipped = add_event(test_medication, base + timedelta(hours=2), CalendarEventStatus.SKIPPED)

        deleted = calendar_store.delete_by_source(test_medication.id)

        assert deleted == [pending.id]
        remaining = {e.id for e in calendar_store.get_by_source(test_medication.id)}
        assert remaining == {completed.id, skipped.id}

    def test_delete_by_source_after(self, calendar_store, add_event, test_medication, clock):
        past = add_event(test_medication, clock.now - timedelta(hours=2))
        future = add_event(test_medication, clock.now + timedelta(hours=2))

        deleted = calendar_store.delete_by_source(test_medication.id, after=clock.now)

        assert deleted == [future.id]
        assert calendar_store.get_by_id(past.id) is not None

    def test_delete_pending_not_in(self, calendar_store, add_event, test_medication, clock):
        keep_time = clock.now + timedelta(hours=1)
        kept = add_event(test_medication, keep_time)
        dropped = add_event(test_medication, clock.now + timedelta(hours=2))
        settled = add_event(test_medication, clock.now + timedelta(hours=3), CalendarEventStatus.COMPLETED)

        deleted = calendar_store.delete_pending_not_in(
            test_medication.id, [keep_time], clock.now, clock.now + timedelta(days=1)
        )

        assert deleted == [dropped.id]
        assert calendar_store.get_by_id(kept.id) is not None
        assert calendar_store.get_by_id(settled.id) is not None

    def test_delete_pending_not_in_respects_window(self, calendar_store, add_event, test_medication, clock):
        past = add_event(test_medication, clock.now - timedelta(hours=2))

        deleted = calendar_store.delete_pending_not_in(
            test_medication.id, [], clock.now, clock.now + timedelta(days=1)
        )

        assert deleted == []
        assert calendar_store.get_by_id(past.id) is not None


# ==================== QUERIES ====================

@pytest.mark.database
class TestQueries:
    """Tests for overdue / upcoming / range / stats queries"""

    def test_overdue_oldest_first(self, calendar_store, add_event, test_medication, clock):
        later = add_event(test_medication, clock.now - timedelta(hours=1))
        earlier = add_event(test_medication, clock.now - timedelta(hours=5))
        add_event(test_medication, clock.now - timedelta(hours=3), CalendarEventStatus.COMPLETED)
        add_event(test_medication, clock.now + timedelta(hours=1))

        overdue = calendar_store.get_overdue(test_medication.profile_id, clock.now)

        assert [e.id for e in overdue] == [earlier.id, later.id]

    def test_upcoming_soonest_first_with_limit(self, calendar_store, add_event, test_medication, clock):
        add_event(test_medication, clock.now - timedelta(hours=1))
        first = add_event(test_medication, clock.now + timedelta(hours=1))
        add_event(test_medication, clock.now + timedelta(hours=3))

        upcoming = calendar_store.get_upcoming(test_medication.profile_id, 1, clock.now)

        assert [e.id for e in upcoming] == [first.id]

    def test_upcoming_until_and_type(self, calendar_store, add_event, test_medication, test_supplement, clock):
        add_event(test_medication, clock.now + timedelta(hours=1))
        supplement_event = add_event(test_supplement, clock.now + timedelta(hours=2))
        add_event(test_supplement, clock.now + timedelta(hours=10))

        upcoming = calendar_store.get_upcoming(
            test_medication.profile_id, None, clock.now,
            until=clock.now + timedelta(hours=4),
            event_type=CalendarEventType.SUPPLEMENT_DUE,
        )

        assert [e.id for e in upcoming] == [supplement_event.id]

    def test_occupied_times_includes_every_status(self, calendar_store, add_event, test_medication, clock):
        pending_time = clock.now + timedelta(hours=1)
        completed_time = clock.now + timedelta(hours=2)
        add_event(test_medication, pending_time)
        add_event(test_medication, completed_time, CalendarEventStatus.COMPLETED)

        occupied = calendar_store.occupied_times(test_medication.id, clock.now, clock.now + timedelta(days=1))

        assert occupied == {pending_time: "pending", completed_time: "completed"}

    def test_timestamps_in_window_pending_only(self, calendar_store, add_event, test_medication, clock):
        pending_time = clock.now + timedelta(hours=1)
        add_event(test_medication, pending_time)
        add_event(test_medication, clock.now + timedelta(hours=2), CalendarEventStatus.SKIPPED)

        times = calendar_store.timestamps_in_window(
            test_medication.id, clock.now, clock.now + timedelta(days=1)
        )

        assert times == [pending_time]

    def test_get_in_range_filters_types(self, calendar_store, add_event, test_medication, clock):
        add_event(test_medication, clock.now + timedelta(hours=1))
        calendar_store.insert(
            profile_id=test_medication.profile_id,
            source_id="appointment-1",
            event_type=CalendarEventType.APPOINTMENT,
            title="Cardiology",
            scheduled_time=clock.now + timedelta(hours=2),
        )

        everything = calendar_store.get_in_range(
            test_medication.profile_id, clock.now, clock.now + timedelta(days=1)
        )
        doses = calendar_store.get_in_range(
            test_medication.profile_id, clock.now, clock.now + timedelta(days=1),
            event_types=[CalendarEventType.MEDICATION_DUE],
        )

        assert len(everything) == 2
        assert len(doses) == 1

    def test_first_scheduled_time(self, calendar_store, add_event, test_medication, clock):
        assert calendar_store.get_first_scheduled_time(test_medication.profile_id) is None

        add_event(test_medication, clock.now + timedelta(hours=1))
        add_event(test_medication, clock.now - timedelta(days=3))

        assert calendar_store.get_first_scheduled_time(test_medication.profile_id) == clock.now - timedelta(days=3)

    def test_stats_report_overdue_pending_as_missed(self, calendar_store, add_event, test_medication, clock):
        add_event(test_medication, clock.now - timedelta(hours=5), CalendarEventStatus.COMPLETED)
        add_event(test_medication, clock.now - timedelta(hours=4), CalendarEventStatus.SKIPPED)
        add_event(test_medication, clock.now - timedelta(hours=3))
        add_event(test_medication, clock.now + timedelta(hours=3))

        stats = calendar_store.get_stats(
            test_medication.profile_id,
            clock.now - timedelta(days=1),
            clock.now + timedelta(days=1),
            clock.now,
        )

        assert stats == {"total": 4, "completed": 1, "skipped": 1, "missed": 1, "pending": 1}

    def test_stats_and_upcoming_filter_event_types(self, calendar_store, add_event, test_medication, clock):
        add_event(test_medication, clock.now - timedelta(hours=3), CalendarEventStatus.COMPLETED)
        add_event(test_medication, clock.now + timedelta(hours=2))
        for hours, source_id in ((-2, "appointment-1"), (1, "appointment-2")):
            calendar_store.insert(
                profile_id=test_medication.profile_id,
                source_id=source_id,
                event_type=CalendarEventType.APPOINTMENT,
                title="Cardiology",
                scheduled_time=clock.now + timedelta(hours=hours),
            )
        doses = [CalendarEventType.MEDICATION_DUE, CalendarEventType.SUPPLEMENT_DUE]

        stats = calendar_store.get_stats(
            test_medication.profile_id,
            clock.now - timedelta(days=1),
            clock.now + timedelta(days=1),
            clock.now,
            event_types=doses,
        )
        upcoming = calendar_store.get_upcoming(
            test_medication.profile_id, None, clock.now, event_types=doses
        )

        assert stats == {"total": 2, "completed": 1, "skipped": 0, "missed": 0, "pending": 1}
        assert [e.source_id for e in upcoming] == [test_medication.id]


# ==================== STATUS CLASSIFICATION ====================

@pytest.mark.database
class TestClassifyStatus:
    """A pending row whose time has passed is missed"""

    def test_past_pending_is_missed(self, add_event, test_medication, clock):
        event = add_event(test_medication, clock.now - timedelta(minutes=1))
        assert classify_status(event, clock.now) is CalendarEventStatus.MISSED

    def test_future_pending_stays_pending(self, add_event, test_medication, clock):
        event = add_event(test_medication, clock.now + timedelta(minutes=1))
        assert classify_status(event, clock.now) is CalendarEventStatus.PENDING

    def test_pending_exactly_now_is_not_missed(self, add_event, test_medication, clock):
        event = add_event(test_medication, clock.now)
        assert classify_status(event, clock.now) is CalendarEventStatus.PENDING

    def test_settled_rows_keep_their_status(self, add_event, test_medication, clock):
        event = add_event(test_medication, clock.now - timedelta(days=1), CalendarEventStatus.COMPLETED)
        assert classify_status(event, clock.now) is CalendarEventStatus.COMPLETED


# ==================== STORAGE FAILURES ====================

@pytest.mark.database
class TestStorageErrors:
    """Driver errors surface as StorageError"""

    def test_missing_tables(self):
        engine = create_db_engine("sqlite:///:memory:")
        store = CalendarEventStore(create_session_factory(engine))

        try:
            with pytest.raises(StorageError):
                store.get_overdue("profile-1", datetime(2026, 3, 2, 10, 0))
        finally:
            engine.dispose()
