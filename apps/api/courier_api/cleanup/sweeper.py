"""Reconciliation sweeper for writes that were never confirmed on-chain."""

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from courier_api.cleanup.tracker import OrphanTracker
from courier_api.ledger.client import LedgerClient, get_ledger_client
from courier_api.settings import get_settings
from courier_api.storage.service import ObjectStore, get_object_store
from courier_api.utils.metrics import sweep_duration, sweep_entries

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Counts from one sweep."""

    checked: int = 0
    confirmed: int = 0
    orphaned: int = 0
    unpinned: int = 0
    errors: int = 0
    dry_run: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


class ReconciliationSweeper:
    """Promotes or demotes stale pending writes, then reclaims orphans.

    A sweep only reclaims writes that were already orphaned when it started,
    and only after all of its ledger checks are done. A write orphaned by this
    sweep is reclaimed by the next one. Failures are isolated per entry: the
    entry keeps its state and is retried next sweep.
    """

    def __init__(
        self,
        tracker: OrphanTracker,
        ledger: LedgerClient,
        store: ObjectStore,
        grace_window: timedelta = timedelta(minutes=15),
        dry_run: bool = False,
    ):
        self.tracker = tracker
        self.ledger = ledger
        self.store = store
        self.grace_window = grace_window
        self.dry_run = dry_run

    def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """Run one full sweep."""
        started = time.monotonic()
        result = SweepResult(dry_run=self.dry_run)
        logger.info(
            f"Running cleanup sweep (grace window {self.grace_window}, dry run {self.dry_run})"
        )

        orphans = [(row.cid, row.object_key) for row in self.tracker.orphaned_entries()]
        self._check_stale(result, now)
        self._reclaim_orphans(result, orphans)

        sweep_duration.observe(time.monotonic() - started)
        logger.info(
            "Cleanup sweep complete",
            extra={**result.as_dict(), "stats": self.tracker.stats()},
        )
        return result

    def _check_stale(self, result: SweepResult, now: Optional[datetime]) -> None:
        stale = [
            (row.cid, row.thread_id, row.sender, row.message_index)
            for row in self.tracker.stale_entries(self.grace_window, now=now)
        ]
        logger.info(f"Found {len(stale)} stale uploads to check")

        for cid, thread_id, sender, message_index in stale:
            result.checked += 1
            try:
                confirmed_count = self.ledger.confirmed_count(thread_id, sender)
                if confirmed_count > message_index:
                    if self.tracker.confirm(cid):
                        result.confirmed += 1
                        sweep_entries.labels(outcome="confirmed").inc()
                        logger.info(f"Confirmed: {cid}")
                else:
                    if self.tracker.mark_orphaned(cid):
                        result.orphaned += 1
                        sweep_entries.labels(outcome="orphaned").inc()
                        logger.warning(
                            f"Orphaned: {cid} (thread: {thread_id}, index: {message_index})",
                            extra={"cid": cid, "thread_id": thread_id, "index": message_index},
                        )
            except Exception as e:
                result.errors += 1
                sweep_entries.labels(outcome="error").inc()
                self.tracker.reset()
                logger.error(f"Error checking {cid}: {e}", exc_info=True)

    def _reclaim_orphans(self, result: SweepResult, orphans: list[tuple[str, str]]) -> None:
        if self.dry_run:
            for cid, object_key in orphans:
                logger.info(f"[DRY RUN] Would unpin: {cid} ({object_key})")
            return

        for cid, object_key in orphans:
            try:
                removed = self.store.delete(object_key, cid)
                if removed == 0:
                    logger.info(f"{cid} not found under {object_key}, already reclaimed")
                if self.tracker.mark_unpinned(cid):
                    result.unpinned += 1
                    sweep_entries.labels(outcome="unpinned").inc()
                    logger.info(f"Unpinned: {cid} ({removed} object versions removed)")
            except Exception as e:
                result.errors += 1
                sweep_entries.labels(outcome="error").inc()
                self.tracker.reset()
                logger.error(f"Failed to unpin {cid}: {e}", exc_info=True)


def run_cleanup(
    db: Session,
    dry_run: Optional[bool] = None,
    grace_window_minutes: Optional[int] = None,
    ledger: Optional[LedgerClient] = None,
    store: Optional[ObjectStore] = None,
) -> SweepResult:
    """Run one sweep with collaborators and defaults taken from settings."""
    settings = get_settings()
    sweeper = ReconciliationSweeper(
        OrphanTracker(db),
        ledger or get_ledger_client(),
        store or get_object_store(),
        grace_window=timedelta(
            minutes=grace_window_minutes or settings.cleanup_grace_window_minutes
        ),
        dry_run=settings.cleanup_dry_run if dry_run is None else dry_run,
    )
    return sweeper.sweep()
