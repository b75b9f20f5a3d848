"""Celery tasks for the reconciliation sweep."""

import logging
from typing import Optional

from celery import Task
from sqlalchemy.orm import Session

from courier_api.cleanup.lock import sweep_lock
from courier_api.cleanup.sweeper import run_cleanup
from courier_api.db.session import SessionLocal
from courier_worker.celery_app import celery_app

logger = logging.getLogger(__name__)


class DatabaseTask(Task):
    """Task with database session."""

    _db: Optional[Session] = None

    @property
    def db(self) -> Session:
        """Get database session."""
        if self._db is None:
            self._db = SessionLocal()
        return self._db

    def after_return(self, *args, **kwargs):
        """Close database session after task."""
        if self._db:
            self._db.close()
            self._db = None


@celery_app.task(base=DatabaseTask, bind=True)
def run_reconciliation_sweep(self, dry_run: Optional[bool] = None):
    """Run one sweep unless another worker is already sweeping."""
    lock = sweep_lock()
    if not lock.acquire(blocking=False):
        logger.info("Reconciliation sweep already running, skipping")
        return {"skipped": True}

    log_extra = {"task": "run_reconciliation_sweep", "task_id": self.request.id}
    try:
        result = run_cleanup(self.db, dry_run=dry_run)
        logger.info("Reconciliation sweep finished", extra={**log_extra, **result.as_dict()})
        return {"skipped": False, **result.as_dict()}
    except Exception as e:
        logger.error(f"Reconciliation sweep failed: {e}", exc_info=True, extra=log_extra)
        raise
    finally:
        lock.release()
