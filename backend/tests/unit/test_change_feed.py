"""Unit tests for the realtime change feed and its SSE rendering"""

import asyncio
from uuid import uuid4

import pytest

from realtime.change_feed import ChangeFeed, FeedScope
from realtime.events import ChangeEvent, ChangeType
from realtime.router import KEEPALIVE_FRAME, RESET_FRAME, event_stream


class TestFeedScope:

    def test_unrestricted_scope_allows_everyone(self):
        assert FeedScope().allows(uuid4()) is True

    def test_restricted_scope(self):
        student = uuid4()
        scope = FeedScope(frozenset({student}))
        assert scope.allows(student) is True
        assert scope.allows(uuid4()) is False

    def test_narrowed_within_scope(self):
        a, b = uuid4(), uuid4()
        narrowed = FeedScope(frozenset({a, b})).narrowed(a)
        assert narrowed.allows(a) and not narrowed.allows(b)

    def test_narrowed_outside_scope_is_empty(self):
        a, outsider = uuid4(), uuid4()
        narrowed = FeedScope(frozenset({a})).narrowed(outsider)
        assert not narrowed.allows(outsider)
        assert not narrowed.allows(a)


class TestChangeFeed:

    @pytest.mark.asyncio
    async def test_delivers_only_events_in_scope(self):
        feed = ChangeFeed()
        mine, theirs = uuid4(), uuid4()
        subscription = feed.subscribe(FeedScope(frozenset({mine})))

        feed.publish(ChangeType.INSERT, document_id=uuid4(), student_id=theirs, record={"x": 1})
        published = feed.publish(ChangeType.INSERT, document_id=uuid4(), student_id=mine, record={"x": 2})

        received = await asyncio.wait_for(subscription.get(), timeout=1)
        assert received == published
        assert received.record == {"x": 2}
        subscription.close()

    @pytest.mark.asyncio
    async def test_sequence_numbers_increase(self):
        feed = ChangeFeed()
        student = uuid4()
        events = [
            feed.publish(ChangeType.UPDATE, document_id=uuid4(), student_id=student)
            for _ in range(3)
        ]
        sequences = [e.sequence for e in events]
        assert sequences == sorted(sequences)
        assert len(set(sequences)) == 3

    def test_delete_carries_no_record(self):
        feed = ChangeFeed()
        event = feed.publish(ChangeType.DELETE, document_id=uuid4(), student_id=uuid4(), record={"x": 1})
        assert event.record is None

    @pytest.mark.asyncio
    async def test_only_events_after_subscribe_are_delivered(self):
        feed = ChangeFeed()
        student = uuid4()
        feed.publish(ChangeType.INSERT, document_id=uuid4(), student_id=student)
        subscription = feed.subscribe(FeedScope())
        later = feed.publish(ChangeType.INSERT, document_id=uuid4(), student_id=student)

        assert await asyncio.wait_for(subscription.get(), timeout=1) == later
        subscription.close()

    @pytest.mark.asyncio
    async def test_close_ends_iteration_and_unregisters(self):
        feed = ChangeFeed()
        subscription = feed.subscribe(FeedScope())
        assert feed.subscriber_count == 1

        subscription.close()
        received = [event async for event in subscription]

        assert received == []
        assert feed.subscriber_count == 0
        feed.publish(ChangeType.INSERT, document_id=uuid4(), student_id=uuid4())
        assert await subscription.get() is None

    @pytest.mark.asyncio
    async def test_blocked_consumer_wakes_on_close(self):
        feed = ChangeFeed()
        subscription = feed.subscribe(FeedScope())
        waiter = asyncio.create_task(subscription.get())
        await asyncio.sleep(0)

        subscription.close()

        assert await asyncio.wait_for(waiter, timeout=1) is None

    @pytest.mark.asyncio
    async def test_feed_close_closes_all_subscriptions(self):
        feed = ChangeFeed()
        subscriptions = [feed.subscribe(FeedScope()) for _ in range(3)]
        feed.close()
        assert all(s.closed for s in subscriptions)
        assert feed.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_overflow_closes_subscription(self):
        feed = ChangeFeed(queue_size=2)
        subscription = feed.subscribe(FeedScope())
        student = uuid4()
        for _ in range(3):
            feed.publish(ChangeType.UPDATE, document_id=uuid4(), student_id=student)
        await asyncio.sleep(0)

        assert subscription.overflowed is True
        assert subscription.closed is True
        assert feed.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_publish_from_worker_thread(self):
        feed = ChangeFeed()
        subscription = feed.subscribe(FeedScope())
        loop = asyncio.get_running_loop()
        student = uuid4()

        published = await loop.run_in_executor(
            None, lambda: feed.publish(ChangeType.INSERT, document_id=uuid4(), student_id=student)
        )

        assert await asyncio.wait_for(subscription.get(), timeout=1) == published
        subscription.close()


class TestEventStream:

    @pytest.mark.asyncio
    async def test_frames(self):
        feed = ChangeFeed()
        subscription = feed.subscribe(FeedScope())
        stream = event_stream(subscription, keepalive_seconds=0.05)

        assert await stream.__anext__() == ": connected\n\n"

        published = feed.publish(ChangeType.INSERT, document_id=uuid4(), student_id=uuid4(), record={"a": 1})
        frame = await stream.__anext__()
        lines = frame.strip().split("\n")
        assert lines[0] == "event: insert"
        assert ChangeEvent.model_validate_json(lines[1][len("data: "):]) == published

        assert await stream.__anext__() == KEEPALIVE_FRAME

        subscription.close()
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_overflow_sends_reset_and_ends(self):
        feed = ChangeFeed(queue_size=1)
        subscription = feed.subscribe(FeedScope())
        stream = event_stream(subscription, keepalive_seconds=1)
        await stream.__anext__()

        for _ in range(2):
            feed.publish(ChangeType.UPDATE, document_id=uuid4(), student_id=uuid4())
        await asyncio.sleep(0)

        assert await stream.__anext__() == RESET_FRAME
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_disconnected_client_ends_stream(self):
        feed = ChangeFeed()
        subscription = feed.subscribe(FeedScope())

        async def gone():
            return True

        stream = event_stream(subscription, keepalive_seconds=0.01, is_disconnected=gone)
        await stream.__anext__()
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert subscription.closed
