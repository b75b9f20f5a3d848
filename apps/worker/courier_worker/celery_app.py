"""Celery application configuration."""

from celery import Celery

from courier_api.settings import get_settings

settings = get_settings()

celery_app = Celery(
    "courier_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    beat_schedule={
        "reconciliation-sweep": {
            "task": "courier_worker.tasks.run_reconciliation_sweep",
            "schedule": settings.cleanup_interval_minutes * 60,
        },
    },
)

# Import tasks to register them with Celery
# This must be done after celery_app is created
from courier_worker import tasks  # noqa: F401, E402
