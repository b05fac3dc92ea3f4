"""
Celery tasks for background processing.

Tasks are defined here and imported by both the sync service (to enqueue) and
the worker (to execute).
"""
from celery import Celery
from celery.signals import setup_logging as celery_setup_logging
from core.config import settings

# Create Celery app instance
celery_app = Celery(
    "pr_tracker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes max per task
    task_soft_time_limit=25 * 60,  # 25 minutes soft limit
)


@celery_setup_logging.connect
def _configure_worker_logging(**kwargs):
    """Use our structured logging instead of Celery's default handlers."""
    from core.logging import setup_logging
    setup_logging()


# Import tasks to register them
from . import pr_tasks  # noqa: E402

__all__ = ["celery_app"]
