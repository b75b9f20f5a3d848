"""Pytest configuration and fixtures."""

import os

# Settings are read at import time by the app modules
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_PROVIDER", "memory")
os.environ.setdefault("LEDGER_PROVIDER", "static")
os.environ.setdefault("CLEANUP_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

import dataclasses

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from web3 import Web3

import courier_api.models  # noqa: F401
from courier_api.cleanup.tracker import OrphanTracker
from courier_api.db.base import Base
from courier_api.ledger.client import StaticLedgerClient
from courier_api.storage.service import InMemoryObjectStore
from courier_api.threads.codec import MessageEntry
from courier_api.threads.engine import ThreadAppendEngine
from courier_api.threads.identity import (
    ZERO_HASH,
    compute_entry_hash,
    compute_thread_id,
    signing_message,
)

ALICE = Account.from_key("0x" + "11" * 32)
BOB = Account.from_key("0x" + "22" * 32)
CAROL = Account.from_key("0x" + "33" * 32)


@pytest.fixture(scope="function")
def db():
    """SQLite in-memory session with all tables."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def tracker(db: Session) -> OrphanTracker:
    return OrphanTracker(db)


@pytest.fixture
def store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def ledger() -> StaticLedgerClient:
    return StaticLedgerClient()


@pytest.fixture
def engine(store, ledger, tracker) -> ThreadAppendEngine:
    return ThreadAppendEngine(store, ledger, tracker)


@pytest.fixture
def participants() -> list[str]:
    return [ALICE.address, BOB.address]


@pytest.fixture
def thread_id(participants) -> str:
    return compute_thread_id(participants)


def sign_entry(
    account,
    thread_id: str,
    index: int,
    prev_hash: str = ZERO_HASH,
    payload=None,
    message_id=None,
    **extra,
) -> MessageEntry:
    """Build a correctly hashed and signed entry."""
    entry = MessageEntry(
        message_id=message_id if message_id is not None else index + 1,
        sender=account.address,
        index=index,
        prev_hash=prev_hash,
        hash="",
        signature="",
        payload=payload if payload is not None else {"encryptedContent": f"ciphertext-{index}"},
        extra=extra,
    )
    entry = dataclasses.replace(entry, hash=compute_entry_hash(thread_id, entry))
    signed = Account.sign_message(
        encode_defunct(text=signing_message(thread_id, entry)), private_key=account.key
    )
    return dataclasses.replace(entry, signature=Web3.to_hex(signed.signature))


@pytest.fixture
def make_entry():
    """Factory for signed entries: make_entry(account, thread_id, index, prev_hash, ...)."""
    return sign_entry


@pytest.fixture
def alice():
    return ALICE


@pytest.fixture
def bob():
    return BOB


@pytest.fixture
def carol():
    return CAROL
