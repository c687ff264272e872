"""In-process publish/subscribe feed of document changes.

Publishers call ChangeFeed.publish from request handlers, which may run in
worker threads. Each subscription owns a bounded asyncio.Queue on the event
loop it was created on; events are handed over with call_soon_threadsafe.
A subscription whose queue fills up is closed so its consumer notices the
gap and re-synchronizes instead of silently missing events.
"""

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional, Set
from uuid import UUID

from observability.metrics import (
    realtime_events_published_total,
    realtime_subscribers,
    realtime_subscriber_overflows_total,
)
from .events import ChangeEvent, ChangeType

logger = logging.getLogger(__name__)

_CLOSED = object()


@dataclass(frozen=True)
class FeedScope:
    """Which students' documents a subscriber may observe.

    ``student_ids=None`` means every student (admins).
    """
    student_ids: Optional[FrozenSet[UUID]] = None

    def allows(self, student_id: UUID) -> bool:
        return self.student_ids is None or student_id in self.student_ids

    def narrowed(self, student_id: UUID) -> "FeedScope":
        """Restrict to one student; stays empty if that student is out of scope."""
        if self.allows(student_id):
            return FeedScope(frozenset({student_id}))
        return FeedScope(frozenset())


class FeedSubscription:
    """One consumer's view of the feed.

    Iterate with ``async for event in subscription``; iteration ends when the
    subscription is closed, either by the consumer or on overflow.
    """

    def __init__(self, feed: "ChangeFeed", scope: FeedScope, loop: asyncio.AbstractEventLoop, maxsize: int):
        self.scope = scope
        self._feed = feed
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.overflowed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, event: ChangeEvent) -> None:
        """Hand an event over from any thread."""
        if self._closed:
            return
        self._call_in_loop(self._put, event)

    def _call_in_loop(self, callback, *args) -> None:
        if self._loop.is_closed():
            # Consumer's loop is gone; nothing left to deliver to
            self.close()
            return
        self._loop.call_soon_threadsafe(callback, *args)

    def _put(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        if self._queue.full():
            self.overflowed = True
            realtime_subscriber_overflows_total.inc()
            logger.warning(
                f"Realtime subscriber fell behind ({self._queue.maxsize} buffered events); closing stream"
            )
            self.close()
            return
        self._queue.put_nowait(event)

    def _wake(self) -> None:
        # A blocked get() only exists while the queue is empty
        if not self._queue.full():
            self._queue.put_nowait(_CLOSED)

    async def get(self) -> Optional[ChangeEvent]:
        """Next event, or None once the subscription is closed."""
        if self._closed:
            return None
        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            return None
        return item

    def close(self) -> None:
        """Stop delivery. Safe to call repeatedly and from any thread."""
        if self._closed:
            return
        self._closed = True
        self._feed._discard(self)
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._wake)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> "FeedSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChangeFeed:
    """Fan-out of document change events to scoped subscribers."""

    def __init__(self, queue_size: int = 1000):
        self.queue_size = queue_size
        self._subscribers: Set[FeedSubscription] = set()
        self._lock = threading.Lock()
        self._sequence = itertools.count(1)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, scope: FeedScope, loop: Optional[asyncio.AbstractEventLoop] = None) -> FeedSubscription:
        """Open a subscription bound to ``loop`` (default: the running loop).

        Only events published after this call are delivered.
        """
        if loop is None:
            loop = asyncio.get_running_loop()
        subscription = FeedSubscription(self, scope, loop, self.queue_size)
        with self._lock:
            self._subscribers.add(subscription)
            realtime_subscribers.set(len(self._subscribers))
        return subscription

    def publish(
        self,
        event: ChangeType,
        document_id: UUID,
        student_id: UUID,
        record: Optional[Dict[str, Any]] = None,
    ) -> ChangeEvent:
        """Assign the next sequence number and deliver to every subscriber in scope."""
        event = ChangeType(event)
        with self._lock:
            change = ChangeEvent(
                event=event,
                id=document_id,
                sequence=next(self._sequence),
                student_id=student_id,
                record=None if event is ChangeType.DELETE else record,
                occurred_at=datetime.now(timezone.utc),
            )
            targets = [s for s in self._subscribers if s.scope.allows(student_id)]

        realtime_events_published_total.labels(event=event.value).inc()
        for subscription in targets:
            subscription.offer(change)

        logger.debug(
            f"Published {event.value} #{change.sequence} to {len(targets)} subscriber(s)",
            extra={"document_id": document_id, "student_id": student_id},
        )
        return change

    def close(self) -> None:
        """Close every subscription (application shutdown)."""
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription.close()

    def _discard(self, subscription: FeedSubscription) -> None:
        with self._lock:
            self._subscribers.discard(subscription)
            realtime_subscribers.set(len(self._subscribers))
