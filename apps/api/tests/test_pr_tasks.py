"""
Celery PR task tests.

Tasks are executed in-process (no broker); the database session is swapped for
the sqlite test session.
"""
from unittest.mock import patch

import pytest

from core.exceptions import PRProcessingLocked
from models import WorkoutResultRecord
from tasks.pr_tasks import (
    process_new_results_task,
    process_unprocessed_results_task,
    recalculate_pr_scopes_task,
)


@pytest.fixture
def task_db(db_session, session_factory):
    with patch("tasks.pr_tasks.get_db_sync", return_value=db_session), \
            patch("tasks.pr_tasks.SessionLocal", session_factory):
        yield db_session


@pytest.fixture
def stored_results(task_db, user_id, scenario_results):
    for r in scenario_results:
        task_db.add(WorkoutResultRecord(
            user_id=user_id, id=r.id, sport=r.sport.value,
            distance=r.distance, time_seconds=r.time, date=r.date,
        ))
    task_db.commit()
    return scenario_results


class TestPRTasks:
    def test_process_new_results(self, task_db, stored_results, user_id):
        out = process_new_results_task(user_id, ["1", "2", "3"])

        assert out["status"] == "success"
        assert out["user_id"] == user_id
        assert out["events_created"] == 3
        assert out["activities_recomputed"] == 1

    def test_process_unprocessed_then_recalculate(self, task_db, stored_results, user_id):
        first = process_unprocessed_results_task(user_id)
        assert first["events_created"] == 3

        out = recalculate_pr_scopes_task(user_id)
        assert out["status"] == "success"
        assert out["activities_recomputed"] == 1

    def test_locked_reports_status(self, task_db, user_id):
        with patch(
            "services.pr_processing.process_unprocessed_results",
            side_effect=PRProcessingLocked(user_id),
        ):
            out = process_unprocessed_results_task(user_id)
        assert out["status"] == "locked"

    def test_error_reports_status(self, task_db, user_id):
        with patch(
            "services.pr_processing.recalculate_all_scopes",
            side_effect=RuntimeError("store unavailable"),
        ):
            out = recalculate_pr_scopes_task(user_id)
        assert out == {"status": "error", "user_id": user_id, "error": "store unavailable"}
