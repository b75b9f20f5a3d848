"""Orphan tracking store: lifecycle of every thread log write."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from courier_api.models import TrackedWrite
from courier_api.models.tracking import CONFIRMED, ORPHANED, PENDING, STATUSES, UNPINNED

logger = logging.getLogger(__name__)


class OrphanTracker:
    """Tracks written content ids until they are confirmed or reclaimed.

    Every mutation is a single-row statement keyed by ``cid``. Transitions are
    guarded by the expected prior status, so concurrent callers only ever
    race idempotently and a transition from the wrong state is a no-op.
    """

    def __init__(self, db: Session):
        """Initialize tracker."""
        self.db = db

    def track(
        self,
        cid: str,
        thread_id: str,
        message_index: int,
        sender: str,
        object_key: str,
    ) -> TrackedWrite:
        """Register a write as pending. Idempotent on ``cid``."""
        now = datetime.utcnow()
        existing = self.get(cid)
        if existing is None:
            row = TrackedWrite(
                cid=cid,
                thread_id=thread_id.lower(),
                message_index=message_index,
                sender=sender.lower(),
                object_key=object_key,
                created_at=now,
                status=PENDING,
            )
            self.db.add(row)
            try:
                self.db.commit()
                logger.info(
                    f"Tracking upload {cid} for thread {thread_id}",
                    extra={"cid": cid, "thread_id": thread_id, "index": message_index},
                )
                return row
            except IntegrityError:
                # Another writer inserted the same content id first
                self.db.rollback()

        self.db.query(TrackedWrite).filter(
            TrackedWrite.cid == cid,
            TrackedWrite.status == PENDING,
        ).update(
            {
                TrackedWrite.thread_id: thread_id.lower(),
                TrackedWrite.message_index: message_index,
                TrackedWrite.sender: sender.lower(),
                TrackedWrite.object_key: object_key,
                TrackedWrite.created_at: now,
            },
            synchronize_session=False,
        )
        self.db.commit()
        row = self.get(cid)
        if row.status != PENDING:
            logger.info(f"Re-tracked {cid} is already {row.status}, status unchanged")
        return row

    def _transition(self, cid: str, from_status: str, values: dict) -> bool:
        updated = (
            self.db.query(TrackedWrite)
            .filter(TrackedWrite.cid == cid, TrackedWrite.status == from_status)
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        return updated == 1

    def confirm(self, cid: str) -> bool:
        """pending -> confirmed."""
        return self._transition(
            cid,
            PENDING,
            {TrackedWrite.status: CONFIRMED, TrackedWrite.confirmed_at: datetime.utcnow()},
        )

    def mark_orphaned(self, cid: str) -> bool:
        """pending -> orphaned."""
        return self._transition(cid, PENDING, {TrackedWrite.status: ORPHANED})

    def mark_unpinned(self, cid: str) -> bool:
        """orphaned -> unpinned."""
        return self._transition(cid, ORPHANED, {TrackedWrite.status: UNPINNED})

    def get(self, cid: str) -> Optional[TrackedWrite]:
        return self.db.query(TrackedWrite).filter(TrackedWrite.cid == cid).first()

    def stale_entries(
        self, max_age: timedelta, now: Optional[datetime] = None
    ) -> list[TrackedWrite]:
        """Pending writes created more than ``max_age`` ago."""
        cutoff = (now or datetime.utcnow()) - max_age
        return (
            self.db.query(TrackedWrite)
            .filter(TrackedWrite.status == PENDING, TrackedWrite.created_at < cutoff)
            .order_by(TrackedWrite.created_at.asc())
            .all()
        )

    def orphaned_entries(self) -> list[TrackedWrite]:
        return (
            self.db.query(TrackedWrite)
            .filter(TrackedWrite.status == ORPHANED)
            .order_by(TrackedWrite.created_at.asc())
            .all()
        )

    def stats(self) -> dict[str, int]:
        """Row count per status."""
        counts = dict.fromkeys(STATUSES, 0)
        rows = (
            self.db.query(TrackedWrite.status, func.count(TrackedWrite.id))
            .group_by(TrackedWrite.status)
            .all()
        )
        for status, count in rows:
            counts[status] = count
        return counts

    def reset(self) -> None:
        """Discard a failed transaction so the session can keep working."""
        self.db.rollback()
