"""Admin read access to the audit trail.

There is no API for creating, changing or removing entries.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload

from auth.dependencies import CurrentAdmin
from database import get_db
from models.audit_log import AuditLog
from .schemas import AuditLogListResponse, AuditLogResponse
from .service import AuditAction

router = APIRouter(prefix="/audit", tags=["Audit Logs"])


@router.get("", response_model=AuditLogListResponse, summary="Query audit logs (admin only)")
def query_audit_logs(
    current_user: CurrentAdmin,
    db: Session = Depends(get_db),
    action: Optional[AuditAction] = Query(None),
    entity_type: Optional[str] = Query(None, description="user, category, assignment or document"),
    entity_id: Optional[UUID] = Query(None),
    actor_id: Optional[UUID] = Query(None),
    start_date: Optional[datetime] = Query(None, description="Entries at or after (ISO 8601)"),
    end_date: Optional[datetime] = Query(None, description="Entries at or before (ISO 8601)"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
) -> AuditLogListResponse:
    """Filtered, paginated entries, newest first.

    Example:
        GET /api/v1/audit?action=DOCUMENT_REVIEWED&entity_id=<document id>
    """
    filters = []
    if action:
        filters.append(AuditLog.action == action.value)
    if entity_type:
        filters.append(AuditLog.entity_type == entity_type)
    if entity_id:
        filters.append(AuditLog.entity_id == entity_id)
    if actor_id:
        filters.append(AuditLog.actor_id == actor_id)
    if start_date:
        filters.append(AuditLog.created_at >= start_date)
    if end_date:
        filters.append(AuditLog.created_at <= end_date)

    query = db.query(AuditLog).filter(*filters)
    total = query.count()
    entries = (
        query.options(joinedload(AuditLog.actor))
        .order_by(AuditLog.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return AuditLogListResponse(
        entries=[AuditLogResponse.model_validate(entry) for entry in entries],
        total=total,
        page=page,
        per_page=per_page,
    )
