"""
Tests for log formatting and the structured context the PR engine attaches.
"""
import json
import logging
import sys

from core.logging import ContextTextFormatter, JSONFormatter, record_fields
from services.pr_processing import process_results_for_prs


def _record(msg="hello", extra_fields=None, exc_info=None):
    record = logging.LogRecord(
        name="services.pr_processing",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    if extra_fields is not None:
        record.extra_fields = extra_fields
    return record


class TestJSONFormatter:
    def test_context_fields_at_top_level(self):
        out = json.loads(JSONFormatter().format(
            _record(extra_fields={"user_id": "u1", "activity_key": "2k_row", "events": 3})
        ))

        assert out["message"] == "hello"
        assert out["level"] == "INFO"
        assert out["user_id"] == "u1"
        assert out["activity_key"] == "2k_row"
        assert out["events"] == 3

    def test_reserved_names_do_not_overwrite_record(self):
        out = json.loads(JSONFormatter().format(_record(extra_fields={"message": "spoofed", "user_id": "u1"})))

        assert out["message"] == "hello"
        assert out["context"] == {"message": "spoofed"}
        assert out["user_id"] == "u1"

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record(exc_info=sys.exc_info())

        out = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in out["exception"]


class TestContextTextFormatter:
    def test_appends_sorted_fields(self):
        line = ContextTextFormatter().format(_record(extra_fields={"user_id": "u1", "activity_key": "2k_row"}))
        assert line.endswith("hello [activity_key=2k_row user_id=u1]")

    def test_plain_when_no_fields(self):
        line = ContextTextFormatter().format(_record())
        assert line.endswith("hello")

    def test_record_fields_ignores_non_dict(self):
        assert record_fields(_record(extra_fields="nope")) == {}


class TestEngineContext:
    def test_pipeline_logs_counts_with_user_and_activity(self, caplog, repo, user_id, two_k_row, scenario_results):
        repo.add_definitions(user_id, [two_k_row])

        with caplog.at_level(logging.INFO):
            process_results_for_prs(repo, user_id, scenario_results)

        fields = [record_fields(r) for r in caplog.records if record_fields(r)]
        assert {"user_id": user_id, "activity_key": "2k_row", "events": 3, "record_holders": 3} in fields
        completed = [f for f in fields if "events_created" in f]
        assert completed == [{
            "user_id": user_id,
            "events_created": 3,
            "activities_recomputed": 1,
            "results_considered": 3,
            "results_skipped": 0,
        }]
