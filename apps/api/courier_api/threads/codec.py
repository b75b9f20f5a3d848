"""Thread log data structures and their canonical byte encoding.

Encoding is canonical JSON: sorted keys, compact separators, UTF-8. Encoding
an unchanged log always yields identical bytes, which the content id and the
entry hashes depend on.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from courier_api.errors import CorruptThreadLog

ENTRY_FIELDS = ("messageId", "sender", "index", "prevHash", "hash", "signature", "payload")


def canonical_json(value: Any) -> bytes:
    """Deterministic JSON encoding used for storage, hashing and signing."""
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


@dataclass(frozen=True)
class MessageEntry:
    """One signed entry of a thread. Immutable once appended."""

    message_id: Any
    sender: str
    index: int
    prev_hash: str
    hash: str
    signature: str
    payload: Any = None
    # Extra wire fields (timestamps, client metadata) kept verbatim
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "MessageEntry":
        if not isinstance(data, dict):
            raise CorruptThreadLog("Message entry must be an object")
        missing = [name for name in ENTRY_FIELDS if name not in data and name != "payload"]
        if missing:
            raise CorruptThreadLog(f"Message entry missing fields: {', '.join(missing)}")
        index = data["index"]
        if not isinstance(index, int) or isinstance(index, bool) or index < 0:
            raise CorruptThreadLog(f"Message index must be a non-negative integer, got {index!r}")
        for name in ("sender", "prevHash", "hash", "signature"):
            if not isinstance(data[name], str):
                raise CorruptThreadLog(f"Message field {name} must be a string")
        return cls(
            message_id=data["messageId"],
            sender=data["sender"],
            index=index,
            prev_hash=data["prevHash"],
            hash=data["hash"],
            signature=data["signature"],
            payload=data.get("payload"),
            extra={k: v for k, v in data.items() if k not in ENTRY_FIELDS},
        )

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update(
            {
                "messageId": self.message_id,
                "sender": self.sender,
                "index": self.index,
                "prevHash": self.prev_hash,
                "hash": self.hash,
                "signature": self.signature,
                "payload": self.payload,
            }
        )
        return data


@dataclass
class ThreadLog:
    """Append-only message log of one thread."""

    thread_id: str
    participants: list[str]
    version: int = 0
    last_updated: int = 0  # epoch milliseconds
    messages: list[MessageEntry] = field(default_factory=list)

    def truncate(self, length: int) -> int:
        """Drop entries beyond ``length``; return how many were dropped."""
        dropped = max(0, len(self.messages) - length)
        if dropped:
            del self.messages[length:]
        return dropped

    def to_dict(self) -> dict:
        return {
            "threadId": self.thread_id,
            "participants": list(self.participants),
            "version": self.version,
            "lastUpdated": self.last_updated,
            "messages": [entry.to_dict() for entry in self.messages],
        }


def encode(log: ThreadLog) -> bytes:
    """Serialize a thread log to its stored byte form."""
    return canonical_json(log.to_dict())


def decode(data: bytes) -> ThreadLog:
    """Parse stored bytes back into a thread log."""
    try:
        raw = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptThreadLog(f"Thread log is not valid JSON: {e}")

    if not isinstance(raw, dict):
        raise CorruptThreadLog("Thread log must be a JSON object")
    for name in ("threadId", "participants", "messages"):
        if name not in raw:
            raise CorruptThreadLog(f"Thread log missing field: {name}")
    if not isinstance(raw["messages"], list) or not isinstance(raw["participants"], list):
        raise CorruptThreadLog("Thread log participants and messages must be lists")

    return ThreadLog(
        thread_id=raw["threadId"],
        participants=list(raw["participants"]),
        version=int(raw.get("version", 0)),
        last_updated=int(raw.get("lastUpdated", 0)),
        messages=[MessageEntry.from_dict(item) for item in raw["messages"]],
    )
