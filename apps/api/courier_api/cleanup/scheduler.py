"""Periodic background runner for the reconciliation sweep."""

import logging
import threading
from typing import Any, Callable, Optional

from courier_api.cleanup.sweeper import SweepResult

logger = logging.getLogger(__name__)


class SweepScheduler:
    """Runs ``job`` every ``interval_seconds`` on one background thread.

    Sweeps never overlap: ``run_once`` returns ``None`` without running when a
    sweep (scheduled or manually triggered) is already in progress. With a
    ``lock_factory`` the same holds across processes: the returned lock is
    taken without blocking around every run.
    """

    def __init__(
        self,
        job: Callable[..., SweepResult],
        interval_seconds: float,
        startup_delay_seconds: float = 0,
        lock_factory: Optional[Callable[[], Any]] = None,
    ):
        self.job = job
        self.lock_factory = lock_factory
        self.interval_seconds = interval_seconds
        self.startup_delay_seconds = startup_delay_seconds
        self._running = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_result: Optional[SweepResult] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="reconciliation-sweeper", daemon=True
        )
        self._thread.start()
        logger.info(f"Starting cleanup scheduler (every {self.interval_seconds / 60:g} minutes)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Cleanup scheduler stopped")

    def run_once(self, **kwargs) -> Optional[SweepResult]:
        """Run a sweep now unless one is already running."""
        if not self._running.acquire(blocking=False):
            logger.info("Cleanup sweep already running, skipping")
            return None
        try:
            shared = self.lock_factory() if self.lock_factory else None
            if shared is not None and not shared.acquire(blocking=False):
                logger.info("Cleanup sweep running in another process, skipping")
                return None
            try:
                self.last_result = self.job(**kwargs)
                return self.last_result
            finally:
                if shared is not None:
                    shared.release()
        finally:
            self._running.release()

    def _loop(self) -> None:
        if self._stop.wait(self.startup_delay_seconds):
            return
        while True:
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Cleanup sweep failed: {e}", exc_info=True)
            if self._stop.wait(self.interval_seconds):
                return
