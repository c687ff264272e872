"""User management endpoints (ADMIN only).

Admins create, list, inspect, update and remove student and mentor
accounts. Admin accounts themselves are read-only here. All mutations
trigger audit log events.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from audit.service import log_from_request
from auth.dependencies import CurrentAdmin
from auth.password import hash_password
from auth.roles import UserRole
from database import get_db
from dependencies import get_change_feed, get_storage_adapter
from domain.documents.ports.object_storage_port import ObjectStoragePort
from infrastructure.storage.s3_storage_adapter import StorageError
from models.document import Document
from models.user import User
from realtime.change_feed import ChangeFeed
from realtime.events import ChangeType
from .schemas import UserCreate, UserUpdate, UserResponse, UserListResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["User Management"])


def _get_user(db: Session, user_id: UUID) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


def _forbid_admin_target(user: User) -> None:
    if user.role == UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin accounts cannot be modified through this API"
        )


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a student or mentor (ADMIN only)",
)
def create_user(
    request: Request,
    data: UserCreate,
    admin: CurrentAdmin,
    db: Session = Depends(get_db),
) -> UserResponse:
    """Create a new user.

    Raises:
        409: Email already registered
    """
    email = data.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"User with email {data.email} already exists"
        )

    new_user = User(
        email=email,
        full_name=data.full_name,
        role=data.role,
        password_hash=hash_password(data.password),
        status="ACTIVE"
    )

    try:
        db.add(new_user)
        db.flush()

        log_from_request(
            db=db,
            request=request,
            action="USER_CREATED",
            actor_id=admin.id,
            entity_type="user",
            entity_id=new_user.id,
            metadata={"email": new_user.email, "role": new_user.role}
        )

        db.commit()
        db.refresh(new_user)

    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User creation failed due to constraint violation"
        )

    return new_user


@router.get("", response_model=UserListResponse, summary="List users (ADMIN only)")
def list_users(
    admin: CurrentAdmin,
    db: Session = Depends(get_db),
    role: Optional[str] = Query(None, pattern="^(student|mentor|admin)$"),
) -> UserListResponse:
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    users: List[User] = query.order_by(User.created_at.desc()).all()

    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in users],
        total=len(users)
    )


@router.get("/{user_id}", response_model=UserResponse, summary="Get user by ID (ADMIN only)")
def get_user(
    user_id: UUID,
    admin: CurrentAdmin,
    db: Session = Depends(get_db),
) -> UserResponse:
    return _get_user(db, user_id)


@router.patch("/{user_id}", response_model=UserResponse, summary="Update user (ADMIN only)")
def update_user(
    user_id: UUID,
    request: Request,
    data: UserUpdate,
    admin: CurrentAdmin,
    db: Session = Depends(get_db),
) -> UserResponse:
    """Update name, role or status of a student or mentor.

    Raises:
        403: Target is an admin account
        404: User not found
    """
    user = _get_user(db, user_id)
    _forbid_admin_target(user)

    # Track changes for audit logging
    changes = {}
    audit_events = []

    if data.full_name is not None and data.full_name != user.full_name:
        changes["full_name"] = {"old": user.full_name, "new": data.full_name}
        user.full_name = data.full_name

    if data.role is not None and data.role != user.role:
        old_role = user.role
        user.role = data.role
        changes["role"] = {"old": old_role, "new": data.role}
        audit_events.append({
            "action": "USER_ROLE_CHANGED",
            "metadata": {"old_role": old_role, "new_role": data.role}
        })

    if data.status is not None and data.status != user.status:
        old_status = user.status
        user.status = data.status
        changes["status"] = {"old": old_status, "new": data.status}
        if data.status == "DISABLED":
            audit_events.append({
                "action": "USER_DISABLED",
                "metadata": {"old_status": old_status, "new_status": data.status}
            })

    if not changes:
        return user

    log_from_request(
        db=db,
        request=request,
        action="USER_UPDATED",
        actor_id=admin.id,
        entity_type="user",
        entity_id=user.id,
        metadata=changes
    )
    for event in audit_events:
        log_from_request(
            db=db,
            request=request,
            action=event["action"],
            actor_id=admin.id,
            entity_type="user",
            entity_id=user.id,
            metadata=event["metadata"]
        )

    db.commit()
    db.refresh(user)
    return user


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a student or mentor (ADMIN only)",
)
async def delete_user(
    user_id: UUID,
    request: Request,
    admin: CurrentAdmin,
    db: Session = Depends(get_db),
    storage: ObjectStoragePort = Depends(get_storage_adapter),
    feed: ChangeFeed = Depends(get_change_feed),
) -> None:
    """Remove an account together with its documents and assignments.

    Stored files of the user's documents are removed first; a storage
    failure aborts the deletion. Each removed document is published as a
    delete event.

    Raises:
        403: Target is an admin account
        404: User not found
        500: Storage failure
    """
    user = _get_user(db, user_id)
    _forbid_admin_target(user)

    documents = db.query(Document).filter(Document.student_id == user.id).all()
    for document in documents:
        try:
            await storage.delete_file(document.file_path)
        except StorageError as e:
            logger.error(f"Storage error during user delete: {e}", extra={"user_id": user_id})
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to delete stored files"
            )

    removed = [(document.id, document.student_id) for document in documents]

    log_from_request(
        db=db,
        request=request,
        action="USER_DELETED",
        actor_id=admin.id,
        entity_type="user",
        entity_id=user.id,
        metadata={"email": user.email, "role": user.role, "documents_deleted": len(removed)}
    )
    db.delete(user)
    db.commit()

    for document_id, student_id in removed:
        feed.publish(ChangeType.DELETE, document_id=document_id, student_id=student_id)
