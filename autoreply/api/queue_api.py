"""
Operational endpoints for the work queue: health, stats, dead-letter
inspection and test-message injection.
"""

import json
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from autoreply.domain.event import EventType, IncomingEvent
from autoreply.infrastructure.database import get_session
from autoreply.infrastructure.repositories import get_active_channel
from autoreply.infrastructure.work_queue import WorkQueue
from autoreply.utils.time import epoch_millis

logger = logging.getLogger(__name__)
router = APIRouter()


class TestMessageRequest(BaseModel):
    """Schema for injecting a test message."""
    channel_id: int
    message: str = Field(..., min_length=1, max_length=2000)
    sender_id: str = "test_user"
    sender_name: Optional[str] = None


def get_work_queue(request: Request) -> WorkQueue:
    """Work queue created during application startup."""
    queue = getattr(request.app.state, "work_queue", None)
    if queue is None:
        raise HTTPException(status_code=503, detail="Work queue not initialized")
    return queue


@router.get("/health")
async def health_check(queue: WorkQueue = Depends(get_work_queue)):
    """Health check endpoint."""
    try:
        store_ok = await queue.store.ping()
    except Exception as e:
        logger.error(f"Store ping failed: {e}")
        store_ok = False

    return {
        "status": "healthy" if store_ok else "degraded",
        "service": "autoreply-worker",
        "store": "up" if store_ok else "down",
    }


@router.get("/queue/stats")
async def queue_stats(queue: WorkQueue = Depends(get_work_queue)):
    """Lengths of the main, retry and dead-letter queues."""
    return await queue.stats()


@router.get("/queue/failed")
async def list_failed(
    limit: int = Query(default=50, ge=1, le=500),
    queue: WorkQueue = Depends(get_work_queue)
):
    """Most recent dead-lettered events, newest first."""
    entries = []
    for payload in await queue.peek_failed(limit):
        try:
            entries.append(json.loads(payload))
        except json.JSONDecodeError:
            entries.append({"raw": payload})
    return {"count": len(entries), "items": entries}


@router.post("/queue/test")
async def enqueue_test_message(
    body: TestMessageRequest,
    queue: WorkQueue = Depends(get_work_queue),
    session: AsyncSession = Depends(get_session)
):
    """Queue a test message for one of the user's active channels."""
    channel = await get_active_channel(session, body.channel_id)
    if channel is None:
        raise HTTPException(status_code=404, detail="Active channel not found")

    try:
        event = IncomingEvent(
            id=str(uuid.uuid4()),
            type=EventType.MESSAGE,
            channel=(channel.channel_type or "").lower(),
            user_id=channel.user_id,
            channel_id=channel.id,
            sender_id=body.sender_id,
            sender_name=body.sender_name,
            text=body.message,
            timestamp=epoch_millis(),
            is_test=True,
        )
    except ValidationError:
        raise HTTPException(status_code=400, detail=f"Unsupported channel type: {channel.channel_type}")

    await queue.push(event.to_payload())

    logger.info(f"Test message queued: eventId={event.id}, channelId={channel.id}")
    return {"message": "Test message queued", "event_id": event.id}
