"""
Tests for PR scope assignment.

Scope invariants checked here:
- each label is held by at most one event per activity
- earliest-achieved event keeps a tied record
- direction: lower time wins, higher distance wins
- every event gets a scope list, [] when it holds nothing
"""
import random
from datetime import datetime

import pytest

from services.pr_events import synthesize_pr_events
from services.pr_scopes import (
    assign_scopes_for_activity,
    best_by_partition,
    chronological,
    compute_scopes,
    is_better_fn,
    result_id_order,
    unscoped_activities,
)
from services.pr_types import MetricType, PREventKey


def _events(user_id, results, definition):
    return synthesize_pr_events(user_id, results, [definition])


def _label_holders(scopes):
    holders = {}
    for key, labels in scopes.items():
        for label in labels:
            holders.setdefault(label, []).append(key)
    return holders


class TestComputeScopes:
    def test_season_and_year_scenario(self, user_id, scenario_results, two_k_row):
        scopes = compute_scopes(_events(user_id, scenario_results, two_k_row))

        assert scopes[PREventKey("2", "2k_row")] == ["all-time", "season-2025", "year-2024"]
        # 450 in Jan 2024 is the best of season 2024, but 430 in June beats it for year 2024
        assert scopes[PREventKey("1", "2k_row")] == ["season-2024"]
        # 440 loses season 2025 to 430, but is the only 2025 result
        assert scopes[PREventKey("3", "2k_row")] == ["year-2025"]

    def test_each_label_held_once(self, user_id, make_result, two_k_row):
        rng = random.Random(7)
        results = [
            make_result(i, rng.randint(400, 480), datetime(2022 + rng.randint(0, 3), rng.randint(1, 12), rng.randint(1, 28)))
            for i in range(60)
        ]
        scopes = compute_scopes(_events(user_id, results, two_k_row))

        assert len(scopes) == 60
        for label, keys in _label_holders(scopes).items():
            assert len(keys) == 1, label

    def test_tie_goes_to_earliest_event(self, user_id, make_result, two_k_row):
        later = make_result(10, 430, "2024-03-01T08:00:00")
        earlier = make_result(11, 430, "2024-02-01T08:00:00")
        scopes = compute_scopes(_events(user_id, [later, earlier], two_k_row))

        assert scopes[PREventKey("11", "2k_row")] == ["all-time", "season-2024", "year-2024"]
        assert scopes[PREventKey("10", "2k_row")] == []

    def test_distance_metric_higher_wins(self, user_id, make_result, thirty_min_row):
        results = [
            make_result(1, 1800, "2024-02-01T08:00:00", distance=7200),
            make_result(2, 1800, "2024-03-01T08:00:00", distance=7600),
            make_result(3, 1800, "2024-04-01T08:00:00", distance=7400),
        ]
        scopes = compute_scopes(_events(user_id, results, thirty_min_row))

        assert scopes[PREventKey("2", "30min_row")] == ["all-time", "season-2024", "year-2024"]
        assert scopes[PREventKey("1", "30min_row")] == []
        assert scopes[PREventKey("3", "30min_row")] == []

    def test_independent_of_input_order(self, user_id, make_result, two_k_row):
        results = [make_result(i, 400 + (i * 7) % 30, datetime(2024, 1 + i % 12, 1 + i % 28)) for i in range(24)]
        events = _events(user_id, results, two_k_row)
        expected = compute_scopes(events)

        shuffled = list(events)
        random.Random(3).shuffle(shuffled)
        assert compute_scopes(shuffled) == expected

    def test_idempotent(self, user_id, scenario_results, two_k_row):
        events = _events(user_id, scenario_results, two_k_row)
        assert compute_scopes(events) == compute_scopes(events)

    def test_empty_input(self):
        assert compute_scopes([]) == {}

    def test_rejects_mixed_activities(self, user_id, make_result, two_k_row, thirty_min_row):
        events = _events(user_id, [make_result(1, 420, "2024-01-01T00:00:00")], two_k_row)
        events += _events(user_id, [make_result(2, 1800, "2024-01-01T00:00:00", distance=7000)], thirty_min_row)
        with pytest.raises(ValueError):
            compute_scopes(events)

    def test_single_event_holds_everything(self, user_id, make_result, two_k_row):
        scopes = compute_scopes(_events(user_id, [make_result(5, 420, "2023-09-09T00:00:00")], two_k_row))
        assert scopes == {PREventKey("5", "2k_row"): ["all-time", "season-2024", "year-2023"]}


class TestBestByPartition:
    def test_strict_improvement_only(self, user_id, make_result, two_k_row):
        events = chronological(_events(user_id, [
            make_result(1, 430, "2024-01-01T00:00:00"),
            make_result(2, 430, "2024-01-02T00:00:00"),
            make_result(3, 429, "2024-01-03T00:00:00"),
        ], two_k_row))
        winners = best_by_partition(events, lambda e: "all", is_better_fn(MetricType.TIME))
        assert winners["all"].results_id == "3"

    def test_chronological_breaks_timestamp_ties_by_result_id(self, user_id, make_result, two_k_row):
        same_time = "2024-01-01T08:00:00"
        events = _events(user_id, [make_result(9, 430, same_time), make_result(4, 430, same_time)], two_k_row)
        assert [e.results_id for e in chronological(events)] == ["4", "9"]

    def test_numeric_result_ids_tie_break_by_value(self, user_id, make_result, two_k_row):
        same_time = "2024-01-01T08:00:00"
        events = _events(user_id, [make_result(10, 430, same_time), make_result(9, 430, same_time)], two_k_row)

        assert [e.results_id for e in chronological(events)] == ["9", "10"]
        scopes = compute_scopes(events)
        assert scopes[PREventKey("9", "2k_row")] == ["all-time", "season-2024", "year-2024"]
        assert scopes[PREventKey("10", "2k_row")] == []

    def test_result_id_order(self):
        ids = ["abc", "100", "9", "10", "a1"]
        assert sorted(ids, key=result_id_order) == ["9", "10", "100", "a1", "abc"]


class TestUnscopedActivities:
    def test_finds_activities_without_all_time_holder(self, repo, user_id, two_k_row, thirty_min_row, make_result):
        repo.upsert_events(_events(user_id, [make_result(1, 420, "2024-01-01T00:00:00")], two_k_row))
        repo.upsert_events(
            _events(user_id, [make_result(2, 1800, "2024-01-01T00:00:00", distance=7000)], thirty_min_row)
        )
        assign_scopes_for_activity(repo, user_id, "2k_row")

        assert unscoped_activities(repo, user_id, ["2k_row", "30min_row", "5k_row"]) == ["30min_row"]
