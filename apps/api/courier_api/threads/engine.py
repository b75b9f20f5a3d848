"""Thread append engine: ledger-reconciled, hash-chained appends.

The ledger's confirmed count is the only serialization point between
writers. Every append re-reads it, truncates whatever the stored log holds
beyond it, and accepts exactly one entry at that position:

    index    == confirmed_count
    prevHash == ZERO_HASH                              (confirmed_count == 0)
    prevHash == messages[confirmed_count - 1].hash     (otherwise)

Two writers racing on the same thread both see the same count and may both
write; the ledger can confirm at most one of them and the other write is
reclaimed later by the cleanup sweeper.
"""

import logging
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from courier_api.cleanup.tracker import OrphanTracker
from courier_api.errors import (
    ChainBroken,
    CorruptThreadLog,
    HashMismatch,
    IndexMismatch,
    NotAParticipant,
    ThreadIdMismatch,
    ThreadNotFound,
)
from courier_api.ledger.client import LedgerClient
from courier_api.ledger.signatures import SignatureVerifier
from courier_api.storage.service import ObjectStore, content_id, thread_key
from courier_api.threads import codec
from courier_api.threads.codec import MessageEntry, ThreadLog
from courier_api.threads.identity import (
    ZERO_HASH,
    canonical_participants,
    compute_entry_hash,
    compute_thread_id,
    same_hex,
    signing_message,
)
from courier_api.utils.metrics import thread_appends, thread_truncations

logger = logging.getLogger(__name__)


@dataclass
class AppendResult:
    """Outcome of a successful append."""

    object_id: str
    thread_log: ThreadLog
    object_key: str
    truncated: int = 0


class ThreadAppendEngine:
    """Read-reconcile-validate-write for shared thread logs."""

    def __init__(
        self,
        store: ObjectStore,
        ledger: LedgerClient,
        tracker: OrphanTracker,
        verifier: Optional[SignatureVerifier] = None,
        verify_signatures: bool = True,
        verify_entry_hash: bool = True,
    ):
        """Initialize engine with its collaborators."""
        self.store = store
        self.ledger = ledger
        self.tracker = tracker
        self.verifier = verifier or SignatureVerifier()
        self.verify_signatures = verify_signatures
        self.verify_entry_hash = verify_entry_hash

    def append(
        self, thread_id: str, participants: Iterable[str], entry: MessageEntry
    ) -> AppendResult:
        """Append ``entry`` at the next confirmed position of ``thread_id``.

        Raises:
            ValidationError: entry rejected (never retryable)
            TransientIOError: ledger or object store unreachable
        """
        thread_id = thread_id.lower()
        try:
            participants = self._check_identity(thread_id, participants, entry)
            self._check_authenticity(thread_id, entry)

            confirmed_count = self.ledger.confirmed_count(thread_id, entry.sender)
            log, truncated = self._reconcile(thread_id, participants, confirmed_count)
            self._check_link(log, confirmed_count, entry)
        except Exception as e:
            thread_appends.labels(outcome=getattr(e, "error_code", "error")).inc()
            raise

        log.messages.append(entry)
        log.version += 1
        log.last_updated = int(time.time() * 1000)

        data = codec.encode(log)
        cid = content_id(data)
        key = thread_key(thread_id)

        # Tracked before the write: a crash in between leaves a row pointing at
        # nothing, which reclamation treats as already reclaimed.
        self.tracker.track(cid, thread_id, entry.index, entry.sender, key)
        stored_cid = self.store.put(
            key, data, metadata={"thread-id": thread_id, "version": str(log.version)}
        )
        if stored_cid != cid:
            logger.warning(
                f"Object store returned content id {stored_cid}, expected {cid}",
                extra={"thread_id": thread_id},
            )

        thread_appends.labels(outcome="accepted").inc()
        logger.info(
            f"Appended message {entry.index} to thread {thread_id}",
            extra={
                "thread_id": thread_id,
                "cid": cid,
                "index": entry.index,
                "version": log.version,
                "message_count": len(log.messages),
            },
        )
        return AppendResult(object_id=cid, thread_log=log, object_key=key, truncated=truncated)

    def get_thread(self, thread_id: str) -> tuple[ThreadLog, Optional[str]]:
        """Stored log for ``thread_id`` and its content id."""
        key = thread_key(thread_id)
        try:
            data, metadata = self.store.read(key)
        except FileNotFoundError:
            raise ThreadNotFound(f"Thread not found: {thread_id}", thread_id=thread_id.lower())
        return codec.decode(data), metadata.get("cid")

    def _check_identity(
        self, thread_id: str, participants: Iterable[str], entry: MessageEntry
    ) -> list[str]:
        participants = canonical_participants(participants)
        derived = compute_thread_id(participants)
        if derived != thread_id:
            raise ThreadIdMismatch(
                "Thread id does not match participant set",
                expected=derived,
                actual=thread_id,
            )
        if entry.sender.lower() not in participants:
            raise NotAParticipant(
                f"Sender {entry.sender} is not a participant of thread {thread_id}",
                sender=entry.sender.lower(),
            )
        return participants

    def _check_authenticity(self, thread_id: str, entry: MessageEntry) -> None:
        if self.verify_entry_hash:
            expected = compute_entry_hash(thread_id, entry)
            if not same_hex(expected, entry.hash):
                raise HashMismatch(
                    "Entry hash does not match entry content",
                    expected=expected,
                    actual=entry.hash,
                )
        if self.verify_signatures:
            self.verifier.verify(signing_message(thread_id, entry), entry.signature, entry.sender)

    def _reconcile(
        self, thread_id: str, participants: list[str], confirmed_count: int
    ) -> tuple[ThreadLog, int]:
        """Local log cut down to exactly what the ledger confirms."""
        if confirmed_count == 0:
            # Nothing confirmed: whatever is stored is unconfirmed and disposable
            logger.debug(f"Thread {thread_id} has no confirmed messages, starting fresh")
            return ThreadLog(thread_id=thread_id, participants=participants), 0

        try:
            log = codec.decode(self.store.get(thread_key(thread_id)))
        except FileNotFoundError:
            raise ChainBroken(
                f"Ledger confirms {confirmed_count} messages but no thread log is stored",
                expected=None,
                actual=None,
            )

        truncated = log.truncate(confirmed_count)
        if truncated:
            thread_truncations.inc()
            logger.warning(
                f"Thread {thread_id} holds {truncated} unconfirmed messages, "
                f"truncating to {confirmed_count}",
                extra={"thread_id": thread_id, "confirmed_count": confirmed_count},
            )
        if len(log.messages) < confirmed_count:
            raise ChainBroken(
                f"Cannot find confirmed message at index {confirmed_count - 1}",
                expected=None,
                actual=None,
            )
        self._verify_stored(thread_id, participants, log)
        return log, truncated

    def _verify_stored(self, thread_id: str, participants: list[str], log: ThreadLog) -> None:
        """Re-check the confirmed prefix read back from the store.

        The store is not trusted: its thread id, participant set and hash chain
        must match what the engine would have written.
        """
        if not same_hex(log.thread_id, thread_id):
            raise CorruptThreadLog(
                f"Stored log belongs to thread {log.thread_id}, expected {thread_id}",
                thread_id=thread_id,
            )
        if sorted(p.lower() for p in log.participants) != participants:
            raise CorruptThreadLog(
                "Stored participant set does not match the thread", thread_id=thread_id
            )

        prev_hash = ZERO_HASH
        for position, message in enumerate(log.messages):
            if message.index != position:
                raise ChainBroken(
                    f"Stored message at position {position} has index {message.index}",
                    expected=str(position),
                    actual=str(message.index),
                )
            if not same_hex(message.prev_hash, prev_hash):
                raise ChainBroken(
                    f"Stored message {position} does not link to its predecessor",
                    expected=prev_hash,
                    actual=message.prev_hash,
                )
            if self.verify_entry_hash:
                expected = compute_entry_hash(thread_id, message)
                if not same_hex(expected, message.hash):
                    raise ChainBroken(
                        f"Stored message {position} hash does not match its content",
                        expected=expected,
                        actual=message.hash,
                    )
            prev_hash = message.hash

    @staticmethod
    def _check_link(log: ThreadLog, confirmed_count: int, entry: MessageEntry) -> None:
        if entry.index != confirmed_count:
            raise IndexMismatch(expected=confirmed_count, actual=entry.index)

        if confirmed_count == 0:
            if not same_hex(entry.prev_hash, ZERO_HASH):
                raise ChainBroken(
                    "First message must have zero prevHash",
                    expected=ZERO_HASH,
                    actual=entry.prev_hash,
                )
            return

        last_confirmed = log.messages[confirmed_count - 1]
        if not same_hex(entry.prev_hash, last_confirmed.hash):
            raise ChainBroken(
                f"Chain broken: prevHash {entry.prev_hash} does not match last "
                f"confirmed message hash {last_confirmed.hash}",
                expected=last_confirmed.hash,
                actual=entry.prev_hash,
            )
