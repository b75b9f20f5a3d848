"""Tests for the Celery reconciliation sweep task."""

from unittest.mock import MagicMock, patch

import pytest

from courier_api.cleanup.sweeper import SweepResult
from courier_worker import tasks


@pytest.fixture
def redis_lock():
    lock = MagicMock()
    with patch.object(tasks, "sweep_lock", return_value=lock):
        yield lock


def test_sweep_skipped_when_lock_held(redis_lock):
    redis_lock.acquire.return_value = False

    with patch.object(tasks, "run_cleanup") as run_cleanup:
        result = tasks.run_reconciliation_sweep(dry_run=True)

    assert result == {"skipped": True}
    run_cleanup.assert_not_called()
    redis_lock.release.assert_not_called()


def test_sweep_runs_and_releases_lock(redis_lock):
    redis_lock.acquire.return_value = True

    with patch.object(tasks, "run_cleanup", return_value=SweepResult(checked=4, confirmed=3, orphaned=1)) as run_cleanup:
        result = tasks.run_reconciliation_sweep(dry_run=False)

    assert result["skipped"] is False
    assert result["checked"] == 4
    assert result["orphaned"] == 1
    assert run_cleanup.call_args.kwargs == {"dry_run": False}
    redis_lock.release.assert_called_once()


def test_sweep_failure_releases_lock(redis_lock):
    redis_lock.acquire.return_value = True

    with patch.object(tasks, "run_cleanup", side_effect=RuntimeError("database gone")):
        with pytest.raises(RuntimeError):
            tasks.run_reconciliation_sweep()

    redis_lock.release.assert_called_once()


def test_beat_schedule_uses_cleanup_interval():
    from courier_worker.celery_app import celery_app, settings

    entry = celery_app.conf.beat_schedule["reconciliation-sweep"]

    assert entry["task"] == "courier_worker.tasks.run_reconciliation_sweep"
    assert entry["schedule"] == settings.cleanup_interval_minutes * 60
