"""Audit trail for account, catalogue and review activity.

Entries are added to the caller's session and committed together with the
change they describe, so a rolled-back mutation leaves no audit entry.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from models.audit_log import AuditLog

# Longest User-Agent kept; some clients send kilobytes
MAX_USER_AGENT_LENGTH = 512


class AuditAction(str, Enum):
    # Authentication
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    USER_SIGNED_UP = "USER_SIGNED_UP"
    # User administration
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_ROLE_CHANGED = "USER_ROLE_CHANGED"
    USER_DISABLED = "USER_DISABLED"
    USER_DELETED = "USER_DELETED"
    # Categories and mentoring
    CATEGORY_CREATED = "CATEGORY_CREATED"
    CATEGORY_UPDATED = "CATEGORY_UPDATED"
    CATEGORY_DELETED = "CATEGORY_DELETED"
    ASSIGNMENT_CREATED = "ASSIGNMENT_CREATED"
    ASSIGNMENT_DELETED = "ASSIGNMENT_DELETED"
    # Documents
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    DOCUMENT_UPDATED = "DOCUMENT_UPDATED"
    DOCUMENT_REVIEWED = "DOCUMENT_REVIEWED"
    DOCUMENT_DELETED = "DOCUMENT_DELETED"


def get_client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop when behind a proxy, else the peer address."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else None


def log_audit_event(
    db: Session,
    action: Union[AuditAction, str],
    actor_id: Optional[UUID] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    """Stage an audit entry in ``db`` (flushed, not committed).

    Raises:
        ValueError: If ``action`` is not an AuditAction

    Example:
        log_audit_event(
            db=db,
            action=AuditAction.DOCUMENT_REVIEWED,
            actor_id=mentor.id,
            entity_type="document",
            entity_id=document.id,
            metadata={"status": "rejected"},
        )
    """
    entry = AuditLog(
        actor_id=actor_id,
        action=AuditAction(action).value,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=metadata,
        ip_address=ip_address,
        user_agent=user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None,
    )
    db.add(entry)
    db.flush()
    return entry


def log_from_request(
    db: Session,
    request: Request,
    action: Union[AuditAction, str],
    actor_id: Optional[UUID] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """log_audit_event with the client address and User-Agent of ``request``."""
    return log_audit_event(
        db=db,
        action=action,
        actor_id=actor_id,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata=metadata,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
