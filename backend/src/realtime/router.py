"""Server-Sent Events endpoint for the document change feed.

Frames:
    event: insert|update|delete
    data: <ChangeEvent JSON>

Idle connections receive ``: keep-alive`` comments. When the subscriber
falls behind, a ``reset`` frame is sent and the stream ends.
"""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from auth.dependencies import CurrentUser
from config import settings
from database import get_db
from dependencies import get_change_feed
from documents.service import feed_scope_for
from .change_feed import ChangeFeed, FeedSubscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/realtime", tags=["Realtime"])

RESET_FRAME = 'event: reset\ndata: {"reason": "overflow"}\n\n'
KEEPALIVE_FRAME = ": keep-alive\n\n"


async def event_stream(
    subscription: FeedSubscription,
    keepalive_seconds: float,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[str]:
    """Render a subscription as SSE frames; closes it when the stream stops."""
    try:
        yield ": connected\n\n"
        while True:
            try:
                event = await asyncio.wait_for(subscription.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                if is_disconnected is not None and await is_disconnected():
                    return
                yield KEEPALIVE_FRAME
                continue

            if event is None:
                if subscription.overflowed:
                    yield RESET_FRAME
                return
            yield event.to_sse()
    finally:
        subscription.close()


@router.get("/documents")
async def stream_document_changes(
    request: Request,
    current_user: CurrentUser,
    student_id: Optional[UUID] = Query(None, description="Only this student's documents"),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Follow insert/update/delete events for the documents the caller can see."""
    scope = feed_scope_for(db, current_user, student_id)
    subscription = feed.subscribe(scope)
    logger.info(
        "Realtime subscription opened",
        extra={"user_id": current_user.id, "student_id": student_id},
    )

    return StreamingResponse(
        event_stream(subscription, settings.REALTIME_KEEPALIVE_SECONDS, request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
