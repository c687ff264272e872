"""User management module (ADMIN only)."""

from .schemas import UserCreate, UserUpdate, UserResponse, UserListResponse
from .router import router

__all__ = [
    "UserCreate",
    "UserUpdate",
    "UserResponse",
    "UserListResponse",
    "router",
]
