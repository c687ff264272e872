"""SQLAlchemy Models for MentorLink"""

from .base import Base
from .user import User
from .category import Category, DEFAULT_CATEGORIES
from .assignment import Assignment
from .document import Document, DocumentStatus
from .audit_log import AuditLog

__all__ = [
    "Base",
    "User",
    "Category",
    "DEFAULT_CATEGORIES",
    "Assignment",
    "Document",
    "DocumentStatus",
    "AuditLog",
]
