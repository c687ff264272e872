"""Interfaces the synchronizer needs from the remote side.

MentorLinkClient implements them over HTTP; tests use in-memory fakes.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from .records import ChangeEvent, DocumentRecord


class ChangeSubscription(ABC):
    """An open stream of change events, consumed with ``async for``.

    Iteration ends when the stream ends; a broken stream raises.
    """

    def __aiter__(self) -> "ChangeSubscription":
        return self

    @abstractmethod
    async def __anext__(self) -> ChangeEvent:
        """Wait for the next event."""

    @abstractmethod
    async def close(self) -> None:
        """Release the stream. Idempotent."""


class DocumentSource(ABC):
    """Authoritative store of documents visible to one viewer."""

    @abstractmethod
    async def fetch_documents(self, student_id: Optional[UUID] = None) -> List[DocumentRecord]:
        """All visible documents (optionally one student's), newest first."""

    @abstractmethod
    async def fetch_document(self, document_id: UUID) -> Optional[DocumentRecord]:
        """One hydrated document, or None if it is gone or not visible."""

    @abstractmethod
    def subscribe(self, student_id: Optional[UUID] = None) -> ChangeSubscription:
        """Open a change feed scoped to the viewer (optionally one student)."""
