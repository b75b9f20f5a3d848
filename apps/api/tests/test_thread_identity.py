"""Tests for thread ids, entry hashes and signed messages."""

import dataclasses
import json

import pytest

from courier_api.errors import ValidationError
from courier_api.threads.identity import (
    ZERO_HASH,
    canonical_participants,
    compute_entry_hash,
    compute_thread_id,
    signing_message,
)


def test_zero_hash_is_32_zero_bytes():
    assert ZERO_HASH == "0x" + "0" * 64


def test_thread_id_ignores_order_and_case(alice, bob):
    a = compute_thread_id([alice.address, bob.address])
    b = compute_thread_id([bob.address.lower(), alice.address.upper().replace("0X", "0x")])
    assert a == b
    assert a.startswith("0x") and len(a) == 66


def test_thread_id_depends_on_participant_set(alice, bob, carol):
    pair = compute_thread_id([alice.address, bob.address])
    group = compute_thread_id([alice.address, bob.address, carol.address])
    assert pair != group


def test_canonical_participants_sorted_lowercase(alice, bob):
    result = canonical_participants([bob.address, alice.address, bob.address])
    assert result == sorted({alice.address.lower(), bob.address.lower()})


def test_invalid_participant_rejected():
    with pytest.raises(ValidationError):
        canonical_participants(["not-an-address"])


def test_empty_participants_rejected():
    with pytest.raises(ValidationError):
        canonical_participants([])


def test_entry_hash_commits_to_payload(alice, thread_id, make_entry):
    entry = make_entry(alice, thread_id, 0)
    assert compute_entry_hash(thread_id, entry) == entry.hash

    tampered = dataclasses.replace(entry, payload={"encryptedContent": "other"})
    assert compute_entry_hash(thread_id, tampered) != entry.hash


def test_entry_hash_commits_to_thread(alice, bob, carol, thread_id, make_entry):
    entry = make_entry(alice, thread_id, 0)
    other_thread = compute_thread_id([alice.address, carol.address])
    assert compute_entry_hash(other_thread, entry) != entry.hash


def test_signing_message_is_canonical_json(alice, thread_id, make_entry):
    entry = make_entry(alice, thread_id, 0)
    message = signing_message(thread_id, entry)
    assert json.loads(message) == {
        "threadId": thread_id,
        "hash": entry.hash.lower(),
        "index": 0,
        "prevHash": ZERO_HASH,
    }
    assert " " not in message
