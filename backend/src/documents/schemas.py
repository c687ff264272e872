"""Pydantic schemas for document endpoints.

DocumentRecord is the hydrated row (joined with category and submitter) that
the API returns and the sync client keeps in its local collection.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from domain.documents.document_status import DocumentStatus
from domain.documents.validation import ReviewAction, MAX_DESCRIPTION_LENGTH


class CategoryRef(BaseModel):
    """Category fields joined into a document record."""
    id: UUID
    name: str

    class Config:
        from_attributes = True
        frozen = True


class SubmitterRef(BaseModel):
    """Identity of the student who submitted a document."""
    id: UUID
    full_name: str
    email: str

    class Config:
        from_attributes = True
        frozen = True


class DocumentRecord(BaseModel):
    """One submitted file under review, hydrated with its joins.

    Records are immutable; a change on the server produces a new record
    with the same id.
    """
    id: UUID
    student_id: UUID
    category_id: Optional[UUID] = None
    file_name: str
    file_path: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    status: DocumentStatus
    description: Optional[str] = None
    feedback: Optional[str] = None
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    category: Optional[CategoryRef] = None
    submitter: Optional[SubmitterRef] = None

    class Config:
        from_attributes = True
        frozen = True

    @field_validator('created_at', 'updated_at', 'reviewed_at')
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Databases without timezone support hand back naive UTC values."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class DocumentListResponse(BaseModel):
    """Response schema for GET /documents (newest first)."""
    documents: list[DocumentRecord]
    total: int


class DocumentUpdate(BaseModel):
    """Student edit of a pending submission (PATCH /documents/{id}).

    Only fields present in the request body are changed; send
    ``"category_id": null`` to clear the category.
    """
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    category_id: Optional[UUID] = None


class ReviewRequest(BaseModel):
    """Reviewer decision (POST /documents/{id}/review)."""
    action: ReviewAction
    feedback: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "action": "reject",
                "feedback": "The scan is unreadable, please upload a clearer copy."
            }
        }


class DocumentStats(BaseModel):
    """Counts by review status."""
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0


class DownloadResponse(BaseModel):
    """Time-limited download link for a document file."""
    url: str
    expires_in: int
