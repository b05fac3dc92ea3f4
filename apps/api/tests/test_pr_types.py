"""
Tests for PR value objects: contract validation and Concept2 parsing.
"""
from datetime import datetime

import pytest

from core.exceptions import PRContractError
from services.pr_catalog import DEFAULT_PR_DEFINITIONS, active_definitions, default_definitions
from services.pr_types import MetricType, PRDefinition, PREventKey, Sport, WorkoutResult


class TestPRDefinitionContract:
    def test_time_definition_requires_target_distance(self):
        with pytest.raises(PRContractError):
            PRDefinition(activity_key="2k_row", sport="rower", metric_type="time", target_time=420)

    def test_distance_definition_requires_target_time(self):
        with pytest.raises(PRContractError):
            PRDefinition(activity_key="30min_row", sport="rower", metric_type="distance", target_distance=7000)

    def test_both_targets_rejected(self):
        with pytest.raises(PRContractError) as exc:
            PRDefinition(
                activity_key="x", sport="rower", metric_type="time", target_distance=2000, target_time=420
            )
        assert exc.value.error_code == "CONTRACT_VIOLATION_TARGET_DISTANCE"

    def test_unknown_sport_rejected(self):
        with pytest.raises(PRContractError) as exc:
            PRDefinition(activity_key="x", sport="kayak", metric_type="time", target_distance=2000)
        assert exc.value.field == "sport"

    def test_from_dict_parses_enums(self):
        d = PRDefinition.from_dict(DEFAULT_PR_DEFINITIONS[3])
        assert d.activity_key == "2k_row"
        assert d.sport is Sport.ROWER
        assert d.metric_type is MetricType.TIME


class TestWorkoutResult:
    def test_numeric_id_normalized_to_string(self):
        result = WorkoutResult(id=12345, sport="rower", distance=2000, time=420, date=datetime(2024, 1, 1))
        assert result.id == "12345"

    @pytest.mark.parametrize("missing", ["id", "sport", "distance", "time", "date"])
    def test_missing_required_field_is_contract_violation(self, missing):
        fields = {"id": 1, "sport": "rower", "distance": 2000, "time": 420, "date": datetime(2024, 1, 1)}
        fields[missing] = None
        with pytest.raises(PRContractError):
            WorkoutResult(**fields)

    def test_from_concept2_converts_tenths_and_sport(self):
        result = WorkoutResult.from_concept2(
            {
                "id": 987654,
                "type": "bikeerg",
                "distance": 4000,
                "time": 4215,
                "date": "2024-11-02 07:45:00",
                "timezone": "Europe/London",
            }
        )
        assert result.id == "987654"
        assert result.sport is Sport.BIKE
        assert result.time == 421.5
        assert result.date == datetime(2024, 11, 2, 7, 45)

    def test_from_concept2_unparseable_date(self):
        with pytest.raises(PRContractError) as exc:
            WorkoutResult.from_concept2(
                {"id": 1, "type": "rower", "distance": 2000, "time": 4200, "date": "not a date"}
            )
        assert exc.value.field == "date"


class TestPREventKey:
    def test_numeric_and_string_result_ids_are_the_same_key(self):
        assert PREventKey(42, "2k_row") == PREventKey("42", "2k_row")
        assert len({PREventKey(42, "2k_row"), PREventKey("42", "2k_row")}) == 1

    def test_doc_id(self):
        assert PREventKey("42", "2k_row").doc_id == "42_2k_row"


class TestCatalog:
    def test_default_catalog_is_valid_and_unique(self):
        defaults = default_definitions()
        keys = [d.activity_key for d in defaults]
        assert len(keys) == len(set(keys)) == 18
        assert all(d.is_active for d in defaults)

    def test_active_definitions_sorted_and_filtered(self, two_k_row, thirty_min_row):
        inactive = PRDefinition(
            activity_key="500m_row", sport="rower", metric_type="time",
            target_distance=500, is_active=False, display_order=0,
        )
        ordered = active_definitions([thirty_min_row, inactive, two_k_row])
        assert [d.activity_key for d in ordered] == ["2k_row", "30min_row"]
