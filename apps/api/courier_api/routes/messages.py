"""Shared thread message endpoints."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from courier_api.dependencies import get_engine
from courier_api.threads.codec import MessageEntry
from courier_api.threads.engine import ThreadAppendEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["messages"])


class SignedMessage(BaseModel):
    """Signed thread entry as produced by the client.

    Only the entry fields are stored, plus the client's ``timestamp``, which
    the entry hash does not cover and is therefore advisory. Any other field
    is dropped.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message_id: Any = Field(..., alias="messageId")
    sender: str
    index: int = Field(..., ge=0)
    prev_hash: str = Field(..., alias="prevHash")
    hash: str
    signature: str
    payload: Any = None
    timestamp: Optional[int] = None
    participants: list[str] = Field(..., min_length=1)


class SendMessageRequest(BaseModel):
    """Append request."""

    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(..., alias="threadId")
    signed_message: SignedMessage = Field(..., alias="signedMessage")


class SendMessageResponse(BaseModel):
    """Append response: the caller records ``threadCID`` on-chain next."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message_id: Any = Field(..., alias="messageId")
    thread_cid: str = Field(..., alias="threadCID")
    message_index: int = Field(..., alias="messageIndex")
    thread_message_count: int = Field(..., alias="threadMessageCount")
    version: int
    truncated: int = 0


class ThreadResponse(BaseModel):
    """Stored thread log."""

    success: bool = True
    data: dict
    cid: Optional[str] = None


@router.post(
    "/messages/send",
    response_model=SendMessageResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_200_OK,
)
def send_message(
    request_data: SendMessageRequest,
    engine: ThreadAppendEngine = Depends(get_engine),
):
    """Append a signed message to its shared thread log."""
    signed = request_data.signed_message
    logger.info(
        "Message send request",
        extra={
            "thread_id": request_data.thread_id,
            "sender": signed.sender,
            "index": signed.index,
        },
    )
    entry = MessageEntry.from_dict(
        signed.model_dump(by_alias=True, exclude={"participants"}, exclude_unset=True)
    )
    result = engine.append(request_data.thread_id, signed.participants, entry)

    return SendMessageResponse(
        message_id=entry.message_id,
        thread_cid=result.object_id,
        message_index=entry.index,
        thread_message_count=len(result.thread_log.messages),
        version=result.thread_log.version,
        truncated=result.truncated,
    )


@router.get("/threads/{thread_id}", response_model=ThreadResponse)
def get_thread(thread_id: str, engine: ThreadAppendEngine = Depends(get_engine)):
    """Fetch a stored thread log with its content id."""
    log, cid = engine.get_thread(thread_id)
    return ThreadResponse(data=log.to_dict(), cid=cid)
