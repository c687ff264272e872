"""Change event wire format shared by the server feed and the client."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ChangeType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """A single row change on the document table.

    ``record`` holds the un-joined row fields for insert and update and is
    absent for delete. ``sequence`` increases monotonically per feed, so a
    consumer can tell which of two events for the same document is newer.
    """
    event: ChangeType
    id: UUID
    sequence: int = Field(..., ge=1)
    student_id: UUID
    record: Optional[Dict[str, Any]] = None
    occurred_at: datetime

    class Config:
        frozen = True

    def to_sse(self) -> str:
        """Encode as one Server-Sent Events frame."""
        return f"event: {self.event.value}\ndata: {self.model_dump_json()}\n\n"
