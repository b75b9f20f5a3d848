"""Cleanup monitoring, manual sweep and signed unpin endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from courier_api.cleanup.reclaim import ManualReclaimer
from courier_api.cleanup.tracker import OrphanTracker
from courier_api.dependencies import get_reclaimer, get_tracker

router = APIRouter(prefix="/v1/cleanup", tags=["cleanup"])


class UnpinRequest(BaseModel):
    """Writer-signed request to reclaim one unconfirmed thread log version.

    The signed text is ``Unpin {cid}\\nTimestamp: {timestamp}\\nNonce: {nonce}``
    with ``timestamp`` in milliseconds.
    """

    model_config = ConfigDict(populate_by_name=True)

    cid: str = Field(..., min_length=1)
    user_address: str = Field(..., alias="userAddress")
    signature: str
    timestamp: int
    nonce: str = Field(..., min_length=1)


@router.get("/stats")
def cleanup_stats(tracker: OrphanTracker = Depends(get_tracker)):
    """Tracked write counts per lifecycle status."""
    return {"success": True, "stats": tracker.stats()}


@router.post("/run")
def run_cleanup_now(request: Request, dry_run: Optional[bool] = None):
    """Trigger a sweep now; skipped if one is already running."""
    scheduler = request.app.state.sweep_scheduler
    result = scheduler.run_once(dry_run=dry_run)
    if result is None:
        return JSONResponse(
            status_code=409,
            content={"success": False, "status": "skipped", "message": "Sweep already running"},
        )
    return {"success": True, "result": result.as_dict()}


@router.post("/unpin")
def unpin(body: UnpinRequest, reclaimer: ManualReclaimer = Depends(get_reclaimer)):
    """Reclaim a write its author abandoned, without waiting for the sweep."""
    result = reclaimer.reclaim(
        body.cid,
        body.user_address,
        body.signature,
        body.timestamp,
        body.nonce,
    )
    return {
        "success": True,
        "cid": result.cid,
        "removed": result.removed,
        "alreadyUnpinned": result.already_unpinned,
    }
