"""Response schemas for the read-only audit log API."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AuditActor(BaseModel):
    """The user behind an entry, if the account still exists."""
    id: UUID
    email: str
    full_name: str
    role: str

    class Config:
        from_attributes = True


class AuditLogResponse(BaseModel):
    id: UUID
    action: str = Field(..., description="AuditAction name, e.g. DOCUMENT_REVIEWED")
    actor_id: Optional[UUID] = None
    actor: Optional[AuditActor] = None
    entity_type: Optional[str] = Field(None, description="user, category, assignment or document")
    entity_id: Optional[UUID] = None
    # The declarative base reserves `metadata`; the column is metadata_json
    metadata: Optional[dict] = Field(None, validation_alias="metadata_json")
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "action": "DOCUMENT_REVIEWED",
                "actor_id": "123e4567-e89b-12d3-a456-426614174000",
                "actor": {
                    "id": "123e4567-e89b-12d3-a456-426614174000",
                    "email": "mentor@example.edu",
                    "full_name": "Meera Iyer",
                    "role": "mentor",
                },
                "entity_type": "document",
                "entity_id": "abc12345-6789-0abc-def0-123456789012",
                "metadata": {"status": "rejected", "has_feedback": True},
                "ip_address": "192.168.1.100",
                "user_agent": "Mozilla/5.0",
                "created_at": "2025-01-04T12:00:00Z",
            }
        }


class AuditLogListResponse(BaseModel):
    """One page of entries, newest first."""
    entries: list[AuditLogResponse]
    total: int
    page: int
    per_page: int
