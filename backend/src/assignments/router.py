"""Mentor-student assignment endpoints.

Admins pair mentors with students; a mentor sees and reviews only the
documents of the students assigned to them. Scope changes take effect for
requests and realtime subscriptions opened afterwards.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from audit.service import log_from_request
from auth.dependencies import CurrentAdmin, CurrentUser
from auth.roles import UserRole
from database import get_db
from models.assignment import Assignment
from models.user import User
from .schemas import (
    AssignedUsersResponse,
    AssignmentCreate,
    AssignmentListResponse,
    AssignmentResponse,
    UserRef,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assignments", tags=["Assignments"])


def _require_user_with_role(db: Session, user_id: UUID, role: UserRole) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found"
        )
    if user.role != role.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"User {user_id} is not a {role.value}"
        )
    return user


@router.get("/mine", response_model=AssignedUsersResponse)
def my_assignments(current_user: CurrentUser, db: Session = Depends(get_db)):
    """Mentors of the calling student, or students of the calling mentor.

    Admins are not part of any assignment and get an empty list.
    """
    if current_user.role == UserRole.STUDENT.value:
        users = (
            db.query(User)
            .join(Assignment, Assignment.mentor_id == User.id)
            .filter(Assignment.student_id == current_user.id)
            .order_by(User.full_name)
            .all()
        )
    elif current_user.role == UserRole.MENTOR.value:
        users = (
            db.query(User)
            .join(Assignment, Assignment.student_id == User.id)
            .filter(Assignment.mentor_id == current_user.id)
            .order_by(User.full_name)
            .all()
        )
    else:
        users = []

    return AssignedUsersResponse(users=[UserRef.model_validate(u) for u in users])


@router.get("", response_model=AssignmentListResponse)
def list_assignments(
    admin: CurrentAdmin,
    db: Session = Depends(get_db),
    mentor_id: Optional[UUID] = Query(None),
    student_id: Optional[UUID] = Query(None),
):
    query = db.query(Assignment).options(
        joinedload(Assignment.mentor),
        joinedload(Assignment.student),
    )
    if mentor_id:
        query = query.filter(Assignment.mentor_id == mentor_id)
    if student_id:
        query = query.filter(Assignment.student_id == student_id)

    assignments = query.order_by(Assignment.created_at.desc()).all()
    return AssignmentListResponse(
        assignments=[AssignmentResponse.model_validate(a) for a in assignments],
        total=len(assignments),
    )


@router.post("", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
def create_assignment(
    data: AssignmentCreate,
    request: Request,
    admin: CurrentAdmin,
    db: Session = Depends(get_db),
):
    """Assign a mentor to a student.

    Raises:
        HTTPException 404: Unknown mentor or student
        HTTPException 400: Either user holds the wrong role
        HTTPException 409: The pair is already assigned
    """
    mentor = _require_user_with_role(db, data.mentor_id, UserRole.MENTOR)
    student = _require_user_with_role(db, data.student_id, UserRole.STUDENT)

    existing = db.query(Assignment).filter(
        Assignment.mentor_id == mentor.id,
        Assignment.student_id == student.id,
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Mentor is already assigned to this student"
        )

    assignment = Assignment(mentor_id=mentor.id, student_id=student.id)
    try:
        db.add(assignment)
        db.flush()
        log_from_request(
            db=db,
            request=request,
            action="ASSIGNMENT_CREATED",
            actor_id=admin.id,
            entity_type="assignment",
            entity_id=assignment.id,
            metadata={"mentor_id": str(mentor.id), "student_id": str(student.id)},
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Mentor is already assigned to this student"
        )

    db.refresh(assignment)
    logger.info("Mentor assigned", extra={"mentor_id": str(mentor.id), "student_id": str(student.id)})
    return assignment


@router.delete("/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    assignment_id: UUID,
    request: Request,
    admin: CurrentAdmin,
    db: Session = Depends(get_db),
):
    assignment = db.query(Assignment).filter(Assignment.id == assignment_id).first()
    if not assignment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Assignment not found"
        )

    log_from_request(
        db=db,
        request=request,
        action="ASSIGNMENT_DELETED",
        actor_id=admin.id,
        entity_type="assignment",
        entity_id=assignment.id,
        metadata={
            "mentor_id": str(assignment.mentor_id),
            "student_id": str(assignment.student_id),
        },
    )
    db.delete(assignment)
    db.commit()
