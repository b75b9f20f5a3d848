"""FastAPI dependencies wiring request handlers to their collaborators."""

from fastapi import Depends
from sqlalchemy.orm import Session

from courier_api.cleanup.reclaim import ManualReclaimer
from courier_api.cleanup.tracker import OrphanTracker
from courier_api.db.session import get_db
from courier_api.ledger.client import LedgerClient, get_ledger_client
from courier_api.settings import get_settings
from courier_api.storage.service import ObjectStore, get_object_store
from courier_api.threads.engine import ThreadAppendEngine


def get_tracker(db: Session = Depends(get_db)) -> OrphanTracker:
    return OrphanTracker(db)


def get_engine(
    tracker: OrphanTracker = Depends(get_tracker),
    store: ObjectStore = Depends(get_object_store),
    ledger: LedgerClient = Depends(get_ledger_client),
) -> ThreadAppendEngine:
    settings = get_settings()
    return ThreadAppendEngine(
        store,
        ledger,
        tracker,
        verify_signatures=settings.verify_signatures,
        verify_entry_hash=settings.verify_entry_hash,
    )


def get_reclaimer(
    tracker: OrphanTracker = Depends(get_tracker),
    store: ObjectStore = Depends(get_object_store),
    ledger: LedgerClient = Depends(get_ledger_client),
) -> ManualReclaimer:
    return ManualReclaimer(
        tracker,
        ledger,
        store,
        max_skew_seconds=get_settings().unpin_max_skew_seconds,
    )
