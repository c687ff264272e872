"""DocumentStatus state machine for the document review lifecycle"""

from enum import Enum
from typing import Optional, Dict, List


class DocumentStatus(str, Enum):
    """Document review status enum

    State flow:
    PENDING → APPROVED or REJECTED
    Both review outcomes are terminal.
    """
    PENDING = "pending"      # Uploaded, waiting for a mentor
    APPROVED = "approved"    # Accepted by the reviewer (terminal)
    REJECTED = "rejected"    # Sent back with feedback (terminal)


# State transition rules
ALLOWED_TRANSITIONS: Dict[Optional[DocumentStatus], List[DocumentStatus]] = {
    None: [DocumentStatus.PENDING],
    DocumentStatus.PENDING: [DocumentStatus.APPROVED, DocumentStatus.REJECTED],
    DocumentStatus.APPROVED: [],
    DocumentStatus.REJECTED: [],
}


def can_transition(from_status: Optional[DocumentStatus], to_status: DocumentStatus) -> bool:
    """Validate if status transition is allowed

    Args:
        from_status: Current status (None for new documents)
        to_status: Target status

    Returns:
        True if transition is allowed, False otherwise

    Example:
        >>> can_transition(DocumentStatus.PENDING, DocumentStatus.APPROVED)
        True
        >>> can_transition(DocumentStatus.REJECTED, DocumentStatus.APPROVED)
        False
    """
    allowed = ALLOWED_TRANSITIONS.get(from_status, [])
    return to_status in allowed


def is_reviewed(status: DocumentStatus) -> bool:
    """True once a document has left the pending state."""
    return status != DocumentStatus.PENDING
