"""
Tests for Source Store
Tests medication / supplement persistence and the atomic inventory decrement
"""

import pytest

from domain import Weekly
from exceptions import NotFoundError, ValidationError
from models import Medication, SourceKind, Supplement


@pytest.mark.database
class TestCreate:
    """Tests for creating sources"""

    def test_create_medication_defaults(self, source_store, test_profile):
        med = source_store.create(SourceKind.MEDICATION, test_profile.id, "Lisinopril", time_of_day=["08:00"])

        assert isinstance(med, Medication)
        assert med.refill_threshold == 7
        assert med.frequency_rule == {"frequency": "daily"}
        assert med.is_active is True
        assert med.current_quantity is None

    def test_create_supplement_defaults(self, source_store, test_profile):
        supp = source_store.create("supplement", test_profile.id, "Magnesium", time_of_day=["21:00"], hide_name=True)

        assert isinstance(supp, Supplement)
        assert supp.refill_threshold == 10
        assert supp.display_title == "Magnesium"

    def test_times_are_canonicalized(self, source_store, test_profile):
        med = source_store.create(
            SourceKind.MEDICATION, test_profile.id, "Metformin", time_of_day=["20:00", "8:00", "08:00"]
        )

        assert med.time_of_day == ["08:00", "20:00"]

    def test_rule_alias_and_dump(self, source_store, test_profile):
        med = source_store.create(
            SourceKind.MEDICATION, test_profile.id, "Methotrexate",
            time_of_day=["09:00"], rule=Weekly(days_of_week=frozenset({5})),
        )

        assert med.frequency_rule == {"frequency": "weekly", "days_of_week": [5]}
        assert med.rule == Weekly(days_of_week=frozenset({5}))

    def test_malformed_time_rejected(self, source_store, test_profile):
        with pytest.raises(ValidationError):
            source_store.create(SourceKind.MEDICATION, test_profile.id, "Bad", time_of_day=["8 o'clock"])

    def test_malformed_rule_rejected(self, source_store, test_profile):
        with pytest.raises(ValidationError):
            source_store.create(
                SourceKind.MEDICATION, test_profile.id, "Bad",
                time_of_day=["08:00"], frequency_rule={"frequency": "fortnightly"},
            )

    def test_negative_quantity_rejected(self, source_store, test_profile):
        with pytest.raises(ValidationError):
            source_store.create(SourceKind.MEDICATION, test_profile.id, "Bad", current_quantity=-1)

    def test_hidden_medication_title(self, source_store, test_profile):
        med = source_store.create(SourceKind.MEDICATION, test_profile.id, "Sertraline", hide_name=True)
        assert med.display_title == "Medication"


@pytest.mark.database
class TestQueries:
    """Tests for reading sources"""

    def test_get_finds_either_kind(self, source_store, test_medication, test_supplement):
        assert source_store.get(test_medication.id).kind is SourceKind.MEDICATION
        assert source_store.get(test_supplement.id).kind is SourceKind.SUPPLEMENT
        assert source_store.get("missing") is None

    def test_get_required_raises(self, source_store):
        with pytest.raises(NotFoundError):
            source_store.get_required("missing")

    def test_list_by_profile(self, source_store, test_profile, test_medication, test_supplement):
        source_store.update(SourceKind.SUPPLEMENT, test_supplement.id, {"is_active": False})

        active = source_store.list_by_profile(test_profile.id)
        everything = source_store.list_by_profile(test_profile.id, active_only=False)
        supplements = source_store.list_by_profile(test_profile.id, active_only=False, kind=SourceKind.SUPPLEMENT)

        assert [s.id for s in active] == [test_medication.id]
        assert {s.id for s in everything} == {test_medication.id, test_supplement.id}
        assert [s.id for s in supplements] == [test_supplement.id]

    def test_needing_refill(self, source_store, test_profile, test_medication, test_supplement):
        source_store.update(SourceKind.MEDICATION, test_medication.id, {"current_quantity": 7})
        source_store.update(SourceKind.SUPPLEMENT, test_supplement.id, {"current_quantity": 3})

        needing = source_store.get_needing_refill(test_profile.id)

        assert [s.id for s in needing] == [test_supplement.id, test_medication.id]


@pytest.mark.database
class TestUpdate:
    """schedule_changed tells the caller to reconcile"""

    def test_name_change_is_not_schedule_change(self, source_store, test_medication):
        source, changed = source_store.update(SourceKind.MEDICATION, test_medication.id, {"name": "Glucophage"})

        assert source.name == "Glucophage"
        assert changed is False

    def test_time_change_is_schedule_change(self, source_store, test_medication):
        source, changed = source_store.update(
            SourceKind.MEDICATION, test_medication.id, {"time_of_day": ["09:00", "21:00"]}
        )

        assert source.time_of_day == ["09:00", "21:00"]
        assert changed is True

    def test_same_times_in_other_order_is_not_a_change(self, source_store, test_medication):
        _, changed = source_store.update(
            SourceKind.MEDICATION, test_medication.id, {"time_of_day": ["20:00", "08:00"]}
        )
        assert changed is False

    def test_rule_and_active_changes(self, source_store, test_medication):
        _, rule_changed = source_store.update(
            SourceKind.MEDICATION, test_medication.id, {"frequency_rule": {"frequency": "custom", "interval": 2}}
        )
        _, active_changed = source_store.update(SourceKind.MEDICATION, test_medication.id, {"is_active": False})

        assert rule_changed is True
        assert active_changed is True

    def test_unknown_fields_ignored(self, source_store, test_medication):
        source, changed = source_store.update(
            SourceKind.MEDICATION, test_medication.id, {"profile_id": "someone-else"}
        )

        assert source.profile_id == test_medication.profile_id
        assert changed is False

    def test_wrong_kind_not_found(self, source_store, test_medication):
        with pytest.raises(NotFoundError):
            source_store.update(SourceKind.SUPPLEMENT, test_medication.id, {"name": "x"})


@pytest.mark.database
class TestDecrementQuantity:
    """Inventory decrement is one atomic UPDATE floored at zero"""

    def test_decrement(self, source_store, test_medication):
        assert source_store.decrement_quantity(test_medication.id) == 29
        assert source_store.get(test_medication.id).current_quantity == 29

    def test_floor_at_zero(self, source_store, test_medication):
        source_store.update(SourceKind.MEDICATION, test_medication.id, {"current_quantity": 1})

        assert source_store.decrement_quantity(test_medication.id) == 0
        assert source_store.decrement_quantity(test_medication.id) == 0

    def test_untracked_stays_null(self, source_store, test_profile):
        med = source_store.create(SourceKind.MEDICATION, test_profile.id, "Untracked", time_of_day=["08:00"])

        assert source_store.decrement_quantity(med.id) is None

    def test_unknown_source(self, source_store):
        with pytest.raises(NotFoundError):
            source_store.decrement_quantity("missing")

    def test_repeated_decrements_never_go_negative(self, source_store, test_supplement):
        source_store.update(SourceKind.SUPPLEMENT, test_supplement.id, {"current_quantity": 3})

        results = [source_store.decrement_quantity(test_supplement.id) for _ in range(5)]

        assert results == [2, 1, 0, 0, 0]
