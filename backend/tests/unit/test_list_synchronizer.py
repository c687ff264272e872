"""Unit tests for ListSynchronizer

Uses an in-memory DocumentSource whose hydration fetches can be held back,
so concurrent and late hydrations can be ordered deterministically.
"""

import asyncio
from uuid import uuid4

import pytest

from fixtures.sync_fakes import END, FakeSource, Reporter, change
from sync.list_synchronizer import ListSynchronizer
from sync.records import ChangeType


async def settle(synchronizer: ListSynchronizer) -> None:
    for _ in range(5):
        await asyncio.sleep(0)
    await synchronizer.wait_idle()


def ids(synchronizer):
    return [r.id for r in synchronizer.records]


class TestCollectionOperations:

    def test_initialize_replaces_and_dedupes(self, make_record):
        a, b = make_record("a.pdf"), make_record("b.pdf")
        synchronizer = ListSynchronizer(FakeSource())
        synchronizer.initialize([make_record("old.pdf")])

        synchronizer.initialize([a, b, a])

        assert ids(synchronizer) == [a.id, b.id]

    def test_insert_goes_to_head(self, make_record):
        a, b = make_record("a.pdf"), make_record("b.pdf")
        synchronizer = ListSynchronizer(FakeSource())
        synchronizer.initialize([a])

        assert synchronizer.on_remote_insert(b) is True
        assert ids(synchronizer) == [b.id, a.id]

    def test_insert_with_existing_id_replaces_in_place(self, make_record):
        a, b = make_record("a.pdf"), make_record("b.pdf")
        synchronizer = ListSynchronizer(FakeSource())
        synchronizer.initialize([a, b])

        replacement = make_record("b_v2.pdf", id=b.id)
        synchronizer.on_remote_insert(replacement)

        assert len(synchronizer) == 2
        assert synchronizer.records[1].file_name == "b_v2.pdf"

    def test_update_replaces_in_place(self, make_record):
        a, b = make_record("a.pdf"), make_record("b.pdf")
        synchronizer = ListSynchronizer(FakeSource())
        synchronizer.initialize([a, b])

        assert synchronizer.on_remote_update(make_record("a.pdf", "approved", id=a.id)) is True
        assert ids(synchronizer) == [a.id, b.id]
        assert synchronizer.get(a.id).status.value == "approved"

    def test_update_for_unknown_id_is_dropped(self, make_record):
        a = make_record("a.pdf")
        synchronizer = ListSynchronizer(FakeSource())
        synchronizer.initialize([a])
        version = synchronizer.version

        assert synchronizer.on_remote_update(make_record("stranger.pdf")) is False
        assert ids(synchronizer) == [a.id]
        assert synchronizer.version == version

    def test_delete_of_absent_id_is_noop(self, make_record):
        a = make_record("a.pdf")
        synchronizer = ListSynchronizer(FakeSource())
        synchronizer.initialize([a])
        calls = []
        synchronizer.add_listener(calls.append)

        assert synchronizer.on_remote_delete(uuid4()) is False
        assert ids(synchronizer) == [a.id]
        assert calls == []

    def test_records_is_a_snapshot(self, make_record):
        synchronizer = ListSynchronizer(FakeSource())
        synchronizer.initialize([make_record()])
        snapshot = synchronizer.records
        synchronizer.on_remote_insert(make_record())
        assert len(snapshot) == 1


class TestListeners:

    def test_listener_receives_snapshot_after_change(self, make_record):
        synchronizer = ListSynchronizer(FakeSource())
        seen = []
        synchronizer.add_listener(seen.append)

        record = make_record()
        synchronizer.on_remote_insert(record)

        assert seen == [(record,)]

    def test_remove_listener(self, make_record):
        synchronizer = ListSynchronizer(FakeSource())
        seen = []
        remove = synchronizer.add_listener(seen.append)
        remove()
        remove()

        synchronizer.on_remote_insert(make_record())
        assert seen == []

    def test_failing_listener_is_reported_and_others_still_run(self, make_record):
        reporter = Reporter()
        synchronizer = ListSynchronizer(FakeSource(), error_reporter=reporter)
        seen = []

        def broken(records):
            raise RuntimeError("render failed")

        synchronizer.add_listener(broken)
        synchronizer.add_listener(seen.append)
        synchronizer.on_remote_insert(make_record())

        assert len(seen) == 1
        assert isinstance(reporter.errors[0], RuntimeError)


class TestEventHandling:

    @pytest.mark.asyncio
    async def test_insert_is_hydrated_before_applying(self, make_record):
        record = make_record("essay.pdf")
        source = FakeSource([record])
        synchronizer = ListSynchronizer(source)

        await synchronizer.handle_event(change(ChangeType.INSERT, record))

        assert synchronizer.records == (record,)
        assert synchronizer.records[0].category.name == "Project Report"

    @pytest.mark.asyncio
    async def test_last_event_per_identity_wins(self, make_record):
        a, b, c = make_record("a.pdf"), make_record("b.pdf"), make_record("c.pdf")
        source = FakeSource([a, b, c])
        synchronizer = ListSynchronizer(source)

        await synchronizer.handle_event(change(ChangeType.INSERT, a))
        await synchronizer.handle_event(change(ChangeType.INSERT, b))
        await synchronizer.handle_event(change(ChangeType.DELETE, a.id))
        await synchronizer.handle_event(change(ChangeType.INSERT, c))
        source.records[b.id] = make_record("b_v2.pdf", "approved", id=b.id, updated="2024-01-02T00:00:00")
        await synchronizer.handle_event(change(ChangeType.UPDATE, b))
        await synchronizer.handle_event(change(ChangeType.DELETE, c.id))

        assert ids(synchronizer) == [b.id]
        assert synchronizer.get(b.id).file_name == "b_v2.pdf"

    @pytest.mark.asyncio
    async def test_stale_hydration_does_not_overwrite_newer_state(self, make_record):
        original = make_record("a.pdf", id=uuid4())
        source = FakeSource([original])
        synchronizer = ListSynchronizer(source)
        synchronizer.initialize([original])

        older = make_record("a.pdf", "pending", id=original.id, description="first edit")
        newer = make_record("a.pdf", "approved", id=original.id, feedback="ok")
        slow = source.hold(original.id, older)
        fast = source.hold(original.id, newer)

        first = asyncio.create_task(synchronizer.handle_event(change(ChangeType.UPDATE, original, sequence=10)))
        second = asyncio.create_task(synchronizer.handle_event(change(ChangeType.UPDATE, original, sequence=11)))
        await asyncio.sleep(0)

        fast.set()
        await second
        slow.set()
        await first

        assert synchronizer.get(original.id).status.value == "approved"
        assert synchronizer.get(original.id).feedback == "ok"

    @pytest.mark.asyncio
    async def test_hydration_older_than_local_copy_is_discarded(self, make_record):
        current = make_record("a.pdf", "approved", updated="2024-01-05T00:00:00")
        synchronizer = ListSynchronizer(FakeSource([
            make_record("a.pdf", "pending", id=current.id, updated="2024-01-03T00:00:00"),
        ]))
        synchronizer.initialize([current])

        await synchronizer.handle_event(change(ChangeType.UPDATE, current))

        assert synchronizer.get(current.id).status.value == "approved"

    @pytest.mark.asyncio
    async def test_delete_while_insert_hydrates_is_not_resurrected(self, make_record):
        record = make_record("a.pdf")
        source = FakeSource()
        synchronizer = ListSynchronizer(source)
        gate = source.hold(record.id, record)

        insert = asyncio.create_task(synchronizer.handle_event(change(ChangeType.INSERT, record, sequence=20)))
        await asyncio.sleep(0)
        await synchronizer.handle_event(change(ChangeType.DELETE, record.id, sequence=21))
        gate.set()
        await insert

        assert len(synchronizer) == 0

    @pytest.mark.asyncio
    async def test_missing_document_is_reported(self, make_record):
        reporter = Reporter()
        synchronizer = ListSynchronizer(FakeSource(), error_reporter=reporter)

        await synchronizer.handle_event(change(ChangeType.INSERT, make_record()))

        assert len(synchronizer) == 0
        assert "not available" in reporter.messages[0]

    @pytest.mark.asyncio
    async def test_failed_hydration_is_reported_and_state_unchanged(self, make_record):
        record = make_record()
        source = FakeSource([record])
        source.failures[record.id] = ConnectionError("offline")
        reporter = Reporter()
        synchronizer = ListSynchronizer(source, error_reporter=reporter)

        await synchronizer.handle_event(change(ChangeType.INSERT, record))

        assert len(synchronizer) == 0
        assert isinstance(reporter.errors[0], ConnectionError)

    @pytest.mark.asyncio
    async def test_update_for_document_never_seen_is_dropped(self, make_record):
        record = make_record()
        synchronizer = ListSynchronizer(FakeSource([record]))

        await synchronizer.handle_event(change(ChangeType.UPDATE, record))

        assert len(synchronizer) == 0

    @pytest.mark.asyncio
    async def test_update_hydrated_before_its_insert_is_not_lost(self, make_record):
        pending = make_record("a.pdf")
        approved = make_record("a.pdf", "approved", id=pending.id, updated="2024-01-02T00:00:00")
        source = FakeSource()
        synchronizer = ListSynchronizer(source)
        slow_insert = source.hold(pending.id, pending)
        fast_update = source.hold(pending.id, approved)

        insert = asyncio.create_task(synchronizer.handle_event(change(ChangeType.INSERT, pending, sequence=60)))
        update = asyncio.create_task(synchronizer.handle_event(change(ChangeType.UPDATE, pending, sequence=61)))
        await asyncio.sleep(0)

        fast_update.set()
        await update
        assert len(synchronizer) == 0

        slow_insert.set()
        await insert

        assert ids(synchronizer) == [pending.id]
        assert synchronizer.get(pending.id).status.value == "approved"

    @pytest.mark.asyncio
    async def test_initialize_skips_deleted_and_prunes_sequences(self, make_record):
        a, b, c = make_record("a.pdf"), make_record("b.pdf"), make_record("c.pdf")
        synchronizer = ListSynchronizer(FakeSource([a, b]))
        await synchronizer.handle_event(change(ChangeType.INSERT, a, sequence=1))
        await synchronizer.handle_event(change(ChangeType.INSERT, b, sequence=2))
        await synchronizer.handle_event(change(ChangeType.DELETE, b.id, sequence=3))

        synchronizer.initialize([c, b])

        assert ids(synchronizer) == [c.id]
        assert set(synchronizer._applied_sequence) == {b.id}


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_events_flow_through_subscription(self, make_record):
        a, b = make_record("a.pdf"), make_record("b.pdf")
        source = FakeSource([a, b])
        synchronizer = ListSynchronizer(source)

        async with synchronizer:
            assert synchronizer.active
            subscription = source.subscriptions[0]
            subscription.push(change(ChangeType.INSERT, a))
            subscription.push(change(ChangeType.INSERT, b))
            await settle(synchronizer)
            subscription.push(change(ChangeType.DELETE, a.id))
            await settle(synchronizer)

            assert ids(synchronizer) == [b.id]

        assert not synchronizer.active
        assert subscription.closed

    @pytest.mark.asyncio
    async def test_activate_twice_opens_one_subscription(self):
        source = FakeSource()
        synchronizer = ListSynchronizer(source)
        await synchronizer.activate()
        await synchronizer.activate()
        assert len(source.subscriptions) == 1
        await synchronizer.deactivate()
        await synchronizer.deactivate()

    @pytest.mark.asyncio
    async def test_hydration_finishing_after_teardown_is_discarded(self, make_record):
        record = make_record()
        source = FakeSource()
        synchronizer = ListSynchronizer(source)
        seen = []
        synchronizer.add_listener(seen.append)
        gate = source.hold(record.id, record)

        await synchronizer.activate()
        source.subscriptions[0].push(change(ChangeType.INSERT, record))
        for _ in range(5):
            await asyncio.sleep(0)
        await synchronizer.deactivate()

        gate.set()
        await synchronizer.wait_idle()

        assert len(synchronizer) == 0
        assert seen == []

    @pytest.mark.asyncio
    async def test_no_listener_fires_after_teardown(self, make_record):
        synchronizer = ListSynchronizer(FakeSource())
        seen = []
        synchronizer.add_listener(seen.append)
        await synchronizer.activate()
        await synchronizer.deactivate()

        synchronizer.on_remote_insert(make_record())

        assert seen == []

    @pytest.mark.asyncio
    async def test_broken_stream_is_reported(self):
        source = FakeSource()
        reporter = Reporter()
        synchronizer = ListSynchronizer(source, error_reporter=reporter)

        await synchronizer.activate()
        source.subscriptions[0].push(ConnectionResetError("stream dropped"))
        await settle(synchronizer)

        assert "failed" in reporter.messages[0]
        assert isinstance(reporter.errors[0], ConnectionResetError)
        await synchronizer.deactivate()

    @pytest.mark.asyncio
    async def test_stream_end_is_reported(self):
        source = FakeSource()
        reporter = Reporter()
        synchronizer = ListSynchronizer(source, error_reporter=reporter)

        await synchronizer.activate()
        source.subscriptions[0].push(END)
        await settle(synchronizer)

        assert "ended" in reporter.messages[0]
        await synchronizer.deactivate()
        assert len(reporter.messages) == 1

    @pytest.mark.asyncio
    async def test_refresh_fetches_for_narrowed_student(self, make_record):
        student_id = uuid4()
        older = make_record("a.pdf", created="2024-01-01T00:00:00")
        newer = make_record("b.pdf", created="2024-02-01T00:00:00")
        source = FakeSource([older, newer])
        synchronizer = ListSynchronizer(source, student_id=student_id)

        await synchronizer.refresh()

        assert source.fetch_calls == [student_id]
        assert ids(synchronizer) == [newer.id, older.id]


class TestRefreshDuringEvents:
    """Feed events that land while refresh() waits on its fetch."""

    @pytest.mark.asyncio
    async def test_delete_during_refresh_is_not_undone(self, make_record):
        record = make_record("a.pdf")
        source = FakeSource([record])
        synchronizer = ListSynchronizer(source)
        gate = source.hold_list()

        async with synchronizer:
            refresh = asyncio.create_task(synchronizer.refresh())
            await asyncio.sleep(0)
            del source.records[record.id]
            source.subscriptions[0].push(change(ChangeType.DELETE, record.id, sequence=50))
            await settle(synchronizer)

            gate.set()
            await refresh

            assert len(synchronizer) == 0

    @pytest.mark.asyncio
    async def test_insert_during_refresh_is_kept(self, make_record):
        older = make_record("a.pdf", created="2024-01-01T00:00:00")
        arrived = make_record("b.pdf", created="2024-02-01T00:00:00")
        source = FakeSource([older])
        synchronizer = ListSynchronizer(source)
        gate = source.hold_list()

        async with synchronizer:
            refresh = asyncio.create_task(synchronizer.refresh())
            await asyncio.sleep(0)
            source.records[arrived.id] = arrived
            source.subscriptions[0].push(change(ChangeType.INSERT, arrived))
            await settle(synchronizer)

            gate.set()
            await refresh

            assert ids(synchronizer) == [arrived.id, older.id]

    @pytest.mark.asyncio
    async def test_update_during_refresh_wins_over_fetched_copy(self, make_record):
        pending = make_record("a.pdf")
        source = FakeSource([pending])
        synchronizer = ListSynchronizer(source)
        gate = source.hold_list()

        async with synchronizer:
            refresh = asyncio.create_task(synchronizer.refresh())
            await asyncio.sleep(0)
            source.records[pending.id] = make_record(
                "a.pdf", "approved", id=pending.id, updated="2024-01-03T00:00:00"
            )
            source.subscriptions[0].push(change(ChangeType.UPDATE, pending))
            await settle(synchronizer)

            gate.set()
            await refresh

            assert ids(synchronizer) == [pending.id]
            assert synchronizer.get(pending.id).status.value == "approved"

    @pytest.mark.asyncio
    async def test_failed_refresh_leaves_collection(self, make_record):
        record = make_record("a.pdf")
        synchronizer = ListSynchronizer(FakeSource())
        synchronizer.initialize([record])

        async def offline(student_id=None):
            raise ConnectionError("offline")

        synchronizer._source.fetch_documents = offline
        with pytest.raises(ConnectionError):
            await synchronizer.refresh()

        assert synchronizer.records == (record,)
        assert synchronizer._refresh_changes == []
