"""Orphan tracking models."""

from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String

from courier_api.db.base import Base

PENDING = "pending"
CONFIRMED = "confirmed"
ORPHANED = "orphaned"
UNPINNED = "unpinned"

STATUSES = (PENDING, CONFIRMED, ORPHANED, UNPINNED)


class TrackedWrite(Base):
    """Audit row for every thread log written to object storage.

    Rows are never deleted; only ``status`` moves forward:
    pending -> confirmed, pending -> orphaned, orphaned -> unpinned.
    """

    __tablename__ = "tracked_writes"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'orphaned', 'unpinned')",
            name="ck_tracked_writes_status",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    cid = Column(String(255), nullable=False, unique=True, index=True)
    thread_id = Column(String(66), nullable=False, index=True)
    message_index = Column(Integer, nullable=False)
    sender = Column(String(42), nullable=False)
    object_key = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    confirmed_at = Column(DateTime, nullable=True)
    status = Column(String(20), default=PENDING, nullable=False, index=True)

    def __repr__(self) -> str:
        return (
            f"<TrackedWrite cid={self.cid} thread={self.thread_id} "
            f"index={self.message_index} status={self.status}>"
        )
