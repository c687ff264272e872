"""Local document collection kept in step with the server's change feed.

The synchronizer owns one newest-first list of DocumentRecord. Insert and
update notifications only carry un-joined row fields, so each one triggers
a hydration fetch before it is applied. Hydrations run concurrently; every
applied change remembers the feed sequence that produced it and older
results for the same document are discarded, so a slow fetch can never
overwrite newer state or resurrect a deleted document. An update hydrated
before its insert has landed is parked and wins over the older insert
snapshot when that arrives.

Event handling never raises. Failures go to the error reporter and leave
the collection as it was.
"""

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from .ports import ChangeSubscription, DocumentSource
from .records import ChangeEvent, ChangeType, DocumentRecord

logger = logging.getLogger(__name__)

ErrorReporter = Callable[[str, Optional[BaseException]], None]
Listener = Callable[[Tuple[DocumentRecord, ...]], None]


def log_error(message: str, error: Optional[BaseException] = None) -> None:
    """Default error reporter."""
    logger.warning(message, exc_info=error)


class ListSynchronizer:
    """Keeps a local ordered collection of documents synchronized.

    Args:
        source: Where documents are fetched from and changes come from
        student_id: Narrow the subscription and refreshes to one student
        error_reporter: Receives (message, exception) for dropped notifications

    Usage:
        synchronizer = ListSynchronizer(client)
        async with synchronizer:          # opens the change feed
            await synchronizer.refresh()  # authoritative fetch
            ...
        # feed closed; late hydrations are discarded
    """

    def __init__(
        self,
        source: DocumentSource,
        student_id: Optional[UUID] = None,
        error_reporter: Optional[ErrorReporter] = None,
    ):
        self._source = source
        self._student_id = student_id
        self._report = error_reporter or log_error

        self._records: List[DocumentRecord] = []
        self._applied_sequence: Dict[UUID, int] = {}
        self._tombstones: Set[UUID] = set()
        # Updates hydrated before their insert landed: id -> (sequence, record)
        self._parked: Dict[UUID, Tuple[int, DocumentRecord]] = {}
        # One entry per refresh in flight: id -> record applied meanwhile, None once deleted
        self._refresh_changes: List[Dict[UUID, Optional[DocumentRecord]]] = []
        self._listeners: List[Listener] = []
        self.version = 0

        self._active = False
        self._torn_down = False
        self._generation = 0
        self._subscription: Optional[ChangeSubscription] = None
        self._pump: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    # -- collection ---------------------------------------------------------

    @property
    def records(self) -> Tuple[DocumentRecord, ...]:
        """Snapshot of the collection, newest first."""
        return tuple(self._records)

    @property
    def active(self) -> bool:
        return self._active

    def __len__(self) -> int:
        return len(self._records)

    def get(self, document_id: UUID) -> Optional[DocumentRecord]:
        index = self._index_of(document_id)
        return None if index is None else self._records[index]

    def _index_of(self, document_id: UUID) -> Optional[int]:
        for index, record in enumerate(self._records):
            if record.id == document_id:
                return index
        return None

    def initialize(self, seed: Iterable[DocumentRecord]) -> None:
        """Replace the collection wholesale with an authoritative fetch result.

        Documents already deleted through the change feed are left out, and
        a parked update newer than the seeded copy replaces it.
        """
        records: List[DocumentRecord] = []
        seen = set()
        for record in seed:
            if record.id in seen or record.id in self._tombstones:
                continue
            seen.add(record.id)
            parked = self._parked.pop(record.id, None)
            if parked is not None and parked[1].updated_at > record.updated_at:
                self._applied_sequence[record.id] = max(
                    parked[0], self._applied_sequence.get(record.id, 0)
                )
                record = parked[1]
            records.append(record)
        self._records = records
        self._applied_sequence = {
            document_id: sequence
            for document_id, sequence in self._applied_sequence.items()
            if document_id in seen or document_id in self._tombstones
        }
        self._changed()

    def on_remote_insert(self, record: DocumentRecord) -> bool:
        """Insert at the head; an existing entry with the same id is replaced in place."""
        index = self._index_of(record.id)
        if index is None:
            self._records.insert(0, record)
        else:
            self._records[index] = record
        self._changed()
        return True

    def on_remote_update(self, record: DocumentRecord) -> bool:
        """Replace in place. Updates for unknown documents are dropped."""
        index = self._index_of(record.id)
        if index is None:
            return False
        self._records[index] = record
        self._changed()
        return True

    def on_remote_delete(self, document_id: UUID) -> bool:
        """Remove the document; no-op if absent."""
        index = self._index_of(document_id)
        if index is None:
            return False
        del self._records[index]
        self._changed()
        return True

    # -- listeners ----------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(records)`` after every effective change.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _changed(self) -> None:
        self.version += 1
        if self._torn_down:
            return
        snapshot = self.records
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:
                self._report("Document list listener failed", exc)

    # -- subscription lifecycle ---------------------------------------------

    async def activate(self) -> None:
        """Open the change feed. Calling it on an active synchronizer does nothing."""
        if self._active:
            return
        self._generation += 1
        self._active = True
        self._torn_down = False
        self._subscription = self._source.subscribe(self._student_id)
        self._pump = asyncio.create_task(self._consume(self._subscription, self._generation))

    async def deactivate(self) -> None:
        """Close the change feed.

        In-flight hydrations keep running but their results are discarded and
        no listener fires afterwards.
        """
        if not self._active:
            return
        self._active = False
        self._torn_down = True
        self._generation += 1

        pump, self._pump = self._pump, None
        subscription, self._subscription = self._subscription, None

        if pump is not None:
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass
        if subscription is not None:
            try:
                await subscription.close()
            except Exception as exc:
                self._report("Closing the change feed failed", exc)

    async def __aenter__(self) -> "ListSynchronizer":
        await self.activate()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.deactivate()

    async def refresh(self) -> None:
        """Authoritative fetch followed by initialize().

        Changes applied from the feed while the fetch is in flight are merged
        into its result: deleted documents stay gone, newly inserted ones are
        kept at the head and newer copies win over fetched ones.

        Raises whatever the source raises; the collection is untouched then.
        """
        changes: Dict[UUID, Optional[DocumentRecord]] = {}
        self._refresh_changes.append(changes)
        try:
            fetched = await self._source.fetch_documents(self._student_id)
        finally:
            self._refresh_changes.remove(changes)

        merged: List[DocumentRecord] = []
        fetched_ids = set()
        for record in fetched:
            fetched_ids.add(record.id)
            if record.id in changes:
                applied = changes[record.id]
                if applied is None:
                    continue
                if applied.updated_at >= record.updated_at:
                    record = applied
            merged.append(record)
        arrived = [
            record for document_id, record in changes.items()
            if record is not None and document_id not in fetched_ids
        ]
        self.initialize(list(reversed(arrived)) + merged)

    async def wait_idle(self) -> None:
        """Wait for hydrations that are currently in flight."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _consume(self, subscription: ChangeSubscription, generation: int) -> None:
        try:
            async for event in subscription:
                if generation != self._generation:
                    return
                if event.event is ChangeType.DELETE:
                    await self.handle_event(event)
                    continue
                task = asyncio.create_task(self.handle_event(event))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if generation == self._generation:
                self._report("Realtime change feed failed; list may be stale until refreshed", exc)
            return

        if generation == self._generation:
            self._report("Realtime change feed ended; list may be stale until refreshed", None)

    # -- event handling -----------------------------------------------------

    async def handle_event(self, event: ChangeEvent) -> None:
        """Apply one change notification, hydrating inserts and updates first."""
        generation = self._generation

        if event.event is ChangeType.DELETE:
            self._applied_sequence[event.id] = max(
                event.sequence, self._applied_sequence.get(event.id, 0)
            )
            self._tombstones.add(event.id)
            self._parked.pop(event.id, None)
            self._note_refresh_change(event.id, None)
            self.on_remote_delete(event.id)
            return

        try:
            record = await self._source.fetch_document(event.id)
        except Exception as exc:
            self._report(f"Could not load document {event.id} after {event.event.value}", exc)
            return

        if generation != self._generation:
            logger.debug(f"Discarding hydration of {event.id} that finished after teardown")
            return

        if record is None:
            self._report(f"Document {event.id} was not available after {event.event.value}", None)
            return

        if event.id in self._tombstones:
            logger.debug(f"Discarding hydration of deleted document {event.id}")
            return

        if self._applied_sequence.get(event.id, 0) > event.sequence:
            logger.debug(f"Discarding stale hydration of {event.id} (sequence {event.sequence})")
            return

        sequence = event.sequence
        parked = self._parked.get(event.id)
        current = self.get(event.id)

        if current is None and event.event is ChangeType.UPDATE:
            # The insert for this document has not been applied yet
            if parked is None or parked[0] < sequence:
                self._parked[event.id] = (sequence, record)
                self._note_refresh_change(event.id, record)
            return

        if parked is not None:
            del self._parked[event.id]
            if parked[0] > sequence:
                sequence, record = parked

        if current is not None and record.updated_at < current.updated_at:
            logger.debug(f"Discarding hydration of {event.id} older than the local copy")
            return

        if current is None:
            self.on_remote_insert(record)
        else:
            self.on_remote_update(record)
        self._applied_sequence[event.id] = sequence
        self._note_refresh_change(event.id, record)

    def _note_refresh_change(self, document_id: UUID, record: Optional[DocumentRecord]) -> None:
        for changes in self._refresh_changes:
            changes[document_id] = record
