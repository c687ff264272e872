"""Pydantic schemas for User management endpoints.

Admin accounts are provisioned out of band (scripts/seed_admin.py); through
the API an admin creates and edits students and mentors only.
All schemas exclude password_hash.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from uuid import UUID
from datetime import datetime
from typing import Optional

from auth.password import validate_password_strength


class UserCreate(BaseModel):
    """Request schema for creating a new user (POST /users)."""
    email: EmailStr = Field(
        ...,
        description="User's email address (unique, case-insensitive)",
        examples=["asha@college.edu"]
    )
    full_name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="User's display name",
        examples=["Asha Rao"]
    )
    role: str = Field(
        ...,
        pattern="^(student|mentor)$",
        description="student or mentor",
        examples=["mentor"]
    )
    password: str = Field(
        ...,
        description="Password (8-128 chars, at least one letter and one digit)",
        examples=["mentor2024pass"]
    )

    @field_validator('full_name')
    @classmethod
    def strip_full_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Full name cannot be blank")
        return v

    @field_validator('password')
    @classmethod
    def check_password(cls, v: str) -> str:
        is_valid, error = validate_password_strength(v)
        if not is_valid:
            raise ValueError(error)
        return v


class UserUpdate(BaseModel):
    """Request schema for updating an existing user (PATCH /users/{id}).

    All fields are optional.
    """
    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    role: Optional[str] = Field(
        None,
        pattern="^(student|mentor)$",
        description="User's role (triggers USER_ROLE_CHANGED audit event)",
    )
    status: Optional[str] = Field(
        None,
        pattern="^(ACTIVE|DISABLED)$",
        description="User status (DISABLED blocks login, triggers USER_DISABLED audit event)",
    )

    @field_validator('full_name')
    @classmethod
    def check_not_empty(cls, v):
        if v is not None and v.strip() == "":
            raise ValueError("Field cannot be empty string")
        return v.strip() if v is not None else v


class UserResponse(BaseModel):
    id: UUID
    email: str
    full_name: str
    role: str
    status: str
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    users: list[UserResponse]
    total: int
