"""User roles for MentorLink.

Roles are flat: there is no inheritance between them.

- STUDENT: submits documents, sees and edits their own pending submissions
- MENTOR: sees and reviews documents of assigned students
- ADMIN: manages users, categories and assignments; sees and reviews everything

Permission Matrix:
┌──────────────────────┬─────────┬────────┬───────┐
│ Action               │ STUDENT │ MENTOR │ ADMIN │
├──────────────────────┼─────────┼────────┼───────┤
│ Upload Documents     │    ✓    │        │       │
│ Edit Own Pending     │    ✓    │        │       │
│ Review Documents     │         │   ✓*   │   ✓   │
│ Delete Documents     │         │        │   ✓   │
│ Manage Users         │         │        │   ✓   │
│ Manage Categories    │         │        │   ✓   │
│ Manage Assignments   │         │        │   ✓   │
│ View Audit Log       │         │        │   ✓   │
└──────────────────────┴─────────┴────────┴───────┘
* only for students assigned to the mentor
"""

from enum import Enum
from typing import Iterable


class UserRole(str, Enum):
    """User roles. Values are stored as TEXT in the user table."""
    STUDENT = "student"
    MENTOR = "mentor"
    ADMIN = "admin"


# Roles an admin may hand out through the user management API
ASSIGNABLE_ROLES = {UserRole.STUDENT, UserRole.MENTOR}


def has_any_role(user_role: str, allowed: Iterable[UserRole]) -> bool:
    """Check role membership.

    Examples:
        >>> has_any_role("admin", [UserRole.ADMIN])
        True
        >>> has_any_role("mentor", [UserRole.STUDENT])
        False
    """
    try:
        role = UserRole(user_role)
    except ValueError:
        return False
    return role in set(allowed)
