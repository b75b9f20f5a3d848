"""Tests for the thread log codec."""

import json

import pytest

from courier_api.errors import CorruptThreadLog
from courier_api.threads import codec
from courier_api.threads.codec import MessageEntry, ThreadLog
from courier_api.threads.identity import ZERO_HASH


def _log() -> ThreadLog:
    return ThreadLog(
        thread_id="0x" + "ab" * 32,
        participants=["0x" + "01" * 20, "0x" + "02" * 20],
        version=2,
        last_updated=1700000000000,
        messages=[
            MessageEntry(
                message_id=1,
                sender="0x" + "01" * 20,
                index=0,
                prev_hash=ZERO_HASH,
                hash="0x" + "cd" * 32,
                signature="0xsig",
                payload={"encryptedContent": "abc", "encryptedMetadata": "def"},
                extra={"timestamp": 1700000000000},
            )
        ],
    )


def test_reencoding_unchanged_log_is_byte_identical():
    """Encode -> decode -> encode yields the same bytes."""
    first = codec.encode(_log())
    second = codec.encode(codec.decode(first))
    assert first == second


def test_encoding_is_canonical():
    """Keys are sorted and separators compact."""
    data = codec.encode(_log())
    parsed = json.loads(data)
    assert data == json.dumps(parsed, sort_keys=True, separators=(",", ":")).encode()
    assert list(parsed) == sorted(parsed)
    assert set(parsed) == {"threadId", "participants", "version", "lastUpdated", "messages"}


def test_extra_entry_fields_survive_decoding():
    """Client fields outside the core wire format are kept verbatim."""
    decoded = codec.decode(codec.encode(_log()))
    assert decoded.messages[0].extra == {"timestamp": 1700000000000}
    assert decoded.messages[0].to_dict()["timestamp"] == 1700000000000
    assert decoded.messages[0].prev_hash == ZERO_HASH


def test_invalid_json_is_rejected():
    with pytest.raises(CorruptThreadLog):
        codec.decode(b"{not json")


def test_missing_fields_are_rejected():
    with pytest.raises(CorruptThreadLog, match="messages"):
        codec.decode(b'{"threadId": "0x1", "participants": []}')


@pytest.mark.parametrize("index", [-1, "0", True, 1.5])
def test_bad_entry_index_is_rejected(index):
    entry = _log().messages[0].to_dict()
    entry["index"] = index
    raw = {"threadId": "0x1", "participants": [], "messages": [entry]}
    with pytest.raises(CorruptThreadLog):
        codec.decode(json.dumps(raw).encode())


def test_truncate_reports_dropped_count():
    log = _log()
    log.messages = log.messages * 3
    assert log.truncate(1) == 2
    assert len(log.messages) == 1
    assert log.truncate(5) == 0
