"""Signed manual reclamation of a single tracked write."""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Optional

from courier_api.cleanup.tracker import OrphanTracker
from courier_api.errors import AlreadyConfirmed, PermissionDenied, RequestExpired, WriteNotTracked
from courier_api.ledger.client import LedgerClient
from courier_api.ledger.signatures import SignatureVerifier
from courier_api.models.tracking import CONFIRMED, PENDING, UNPINNED
from courier_api.storage.service import ObjectStore
from courier_api.utils.metrics import manual_unpins

logger = logging.getLogger(__name__)


def unpin_message(cid: str, timestamp: int, nonce: str) -> str:
    """Text the writer signs to reclaim ``cid``."""
    return f"Unpin {cid}\nTimestamp: {timestamp}\nNonce: {nonce}"


@dataclass
class UnpinResult:
    cid: str
    removed: int = 0
    already_unpinned: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


class ManualReclaimer:
    """Lets the writer of an unconfirmed thread log version reclaim it early.

    The request must be signed by the address that made the write, within
    ``max_skew_seconds`` of the server clock. The write goes through the same
    lifecycle as in a sweep: a pending write is checked against the ledger
    and becomes confirmed or orphaned, and only an orphaned write has its
    object version deleted and is marked unpinned.
    """

    def __init__(
        self,
        tracker: OrphanTracker,
        ledger: LedgerClient,
        store: ObjectStore,
        verifier: Optional[SignatureVerifier] = None,
        max_skew_seconds: int = 300,
    ):
        self.tracker = tracker
        self.ledger = ledger
        self.store = store
        self.verifier = verifier or SignatureVerifier()
        self.max_skew_seconds = max_skew_seconds

    def reclaim(
        self,
        cid: str,
        requester: str,
        signature: str,
        timestamp: int,
        nonce: str,
        now_ms: Optional[int] = None,
    ) -> UnpinResult:
        """Verify the signed request, then reclaim ``cid``.

        ``timestamp`` is in milliseconds since the epoch.
        """
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        if abs(now_ms - timestamp) > self.max_skew_seconds * 1000:
            manual_unpins.labels(outcome="rejected").inc()
            raise RequestExpired(
                "Unpin request timestamp is outside the accepted window",
                timestamp=timestamp,
                max_skew_seconds=self.max_skew_seconds,
            )
        try:
            self.verifier.verify(unpin_message(cid, timestamp, nonce), signature, requester)
        except Exception:
            manual_unpins.labels(outcome="rejected").inc()
            raise

        row = self.tracker.get(cid)
        if row is None:
            raise WriteNotTracked(f"No tracked write for {cid}", cid=cid)
        if row.sender != requester.lower():
            manual_unpins.labels(outcome="rejected").inc()
            raise PermissionDenied(
                "Only the writer can unpin a thread log version",
                cid=cid,
                sender=row.sender,
            )

        cid, object_key = row.cid, row.object_key
        if row.status == UNPINNED:
            return UnpinResult(cid=cid, already_unpinned=True)
        if row.status == CONFIRMED:
            raise AlreadyConfirmed(f"{cid} is confirmed on-chain", cid=cid)
        if row.status == PENDING:
            self._settle_pending(cid, row.thread_id, row.sender, row.message_index)

        removed = self.store.delete(object_key, cid)
        self.tracker.mark_unpinned(cid)
        manual_unpins.labels(outcome="unpinned").inc()
        logger.info(
            f"Manually unpinned {cid} ({removed} object versions removed)",
            extra={"cid": cid, "object_key": object_key, "requester": requester.lower()},
        )
        return UnpinResult(cid=cid, removed=removed)

    def _settle_pending(self, cid: str, thread_id: str, sender: str, message_index: int) -> None:
        """Resolve a pending write against the ledger before reclaiming it."""
        if self.ledger.confirmed_count(thread_id, sender) > message_index:
            self.tracker.confirm(cid)
            raise AlreadyConfirmed(f"{cid} is confirmed on-chain", cid=cid)
        # A concurrent sweep may have settled it first
        if not self.tracker.mark_orphaned(cid) and self.tracker.get(cid).status == CONFIRMED:
            raise AlreadyConfirmed(f"{cid} is confirmed on-chain", cid=cid)
