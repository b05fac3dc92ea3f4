"""
Celery tasks for PR processing.

Enqueued by the Concept2 sync after new results are stored. Each task owns its
own database session and returns a plain status dict; errors are logged and
reported in the return value, and the task can be re-queued safely because the
pipeline is idempotent.
"""
import logging
from typing import Dict, List, Optional

from celery import Task
from sqlalchemy.orm import Session

from core.database import SessionLocal, get_db_sync
from core.exceptions import PRProcessingLocked
from tasks import celery_app

logger = logging.getLogger(__name__)


def _repository(db: Session):
    from services.pr_repository import SqlAlchemyPRRepository
    return SqlAlchemyPRRepository(db, session_factory=SessionLocal)


def _run(task_name: str, user_id: str, fn) -> Dict:
    db: Session = get_db_sync()
    try:
        summary = fn(_repository(db))
        return {"status": "success", "user_id": user_id, **summary.to_dict()}
    except PRProcessingLocked as e:
        logger.info(
            f"{task_name} skipped: {e}",
            extra={"extra_fields": {"task": task_name, "user_id": user_id, "status": "locked"}},
        )
        return {"status": "locked", "user_id": user_id, "error": str(e)}
    except Exception as e:
        db.rollback()
        logger.exception(
            f"{task_name} failed for user {user_id}: {e}",
            extra={"extra_fields": {"task": task_name, "user_id": user_id, "status": "error"}},
        )
        return {"status": "error", "user_id": user_id, "error": str(e)}
    finally:
        db.close()


@celery_app.task(name="tasks.process_new_pr_results", bind=True)
def process_new_results_task(self: Task, user_id: str, result_ids: List[str]) -> Dict:
    """
    Process just-synced results for PRs.

    Args:
        user_id: Owner of the results
        result_ids: Concept2 result ids stored by the sync

    Returns:
        Dictionary with status and processing counts
    """
    from services.pr_processing import process_result_ids

    return _run(
        "process_new_pr_results",
        user_id,
        lambda repo: process_result_ids(repo, user_id, result_ids),
    )


@celery_app.task(name="tasks.process_unprocessed_pr_results", bind=True)
def process_unprocessed_results_task(self: Task, user_id: str) -> Dict:
    """Process every stored result that has no PR event yet (catch-up after missed syncs)."""
    from services.pr_processing import process_unprocessed_results

    return _run(
        "process_unprocessed_pr_results",
        user_id,
        lambda repo: process_unprocessed_results(repo, user_id),
    )


@celery_app.task(name="tasks.recalculate_pr_scopes", bind=True)
def recalculate_pr_scopes_task(self: Task, user_id: str, lock: Optional[bool] = None) -> Dict:
    """Recompute scopes for every activity. No new events, no external calls."""
    from services.pr_processing import recalculate_all_scopes

    return _run(
        "recalculate_pr_scopes",
        user_id,
        lambda repo: recalculate_all_scopes(repo, user_id, lock=lock),
    )
