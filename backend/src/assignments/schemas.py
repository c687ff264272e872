"""Pydantic schemas for mentor-student assignments."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class AssignmentCreate(BaseModel):
    mentor_id: UUID
    student_id: UUID


class UserRef(BaseModel):
    """Public identity of the other side of an assignment."""
    id: UUID
    full_name: str
    email: str
    role: str

    class Config:
        from_attributes = True


class AssignmentResponse(BaseModel):
    id: UUID
    mentor: UserRef
    student: UserRef
    created_at: datetime

    class Config:
        from_attributes = True


class AssignmentListResponse(BaseModel):
    assignments: list[AssignmentResponse]
    total: int


class AssignedUsersResponse(BaseModel):
    """Mentors of the calling student, or students of the calling mentor."""
    users: list[UserRef]
