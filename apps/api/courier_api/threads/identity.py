"""Thread ids, entry digests and the canonical text senders sign."""

from typing import Iterable

from web3 import Web3

from courier_api.errors import ValidationError
from courier_api.threads.codec import MessageEntry, canonical_json

ZERO_HASH = "0x" + "00" * 32


def canonical_participants(participants: Iterable[str]) -> list[str]:
    """Lower-case, de-duplicate and sort participant addresses."""
    normalized = sorted({p.lower() for p in participants})
    if not normalized:
        raise ValidationError("A thread needs at least one participant")
    for address in normalized:
        if not Web3.is_address(address):
            raise ValidationError(f"Invalid participant address: {address}", participant=address)
    return normalized


def compute_thread_id(participants: Iterable[str]) -> str:
    """keccak-256 over the packed 20-byte addresses of the sorted participant set."""
    packed = b"".join(bytes.fromhex(address[2:]) for address in canonical_participants(participants))
    return Web3.to_hex(Web3.keccak(packed))


def compute_entry_hash(thread_id: str, entry: MessageEntry) -> str:
    """Digest of the content an entry commits to."""
    content = {
        "threadId": thread_id.lower(),
        "messageId": entry.message_id,
        "sender": entry.sender.lower(),
        "index": entry.index,
        "prevHash": entry.prev_hash.lower(),
        "payload": entry.payload,
    }
    return Web3.to_hex(Web3.keccak(canonical_json(content)))


def signing_message(thread_id: str, entry: MessageEntry) -> str:
    """Text the sender signs with a personal (EIP-191) signature."""
    return canonical_json(
        {
            "threadId": thread_id.lower(),
            "hash": entry.hash.lower(),
            "index": entry.index,
            "prevHash": entry.prev_hash.lower(),
        }
    ).decode("utf-8")


def same_hex(a: str, b: str) -> bool:
    return a.lower() == b.lower()
