"""Mentor-student assignment SQLAlchemy model"""

from sqlalchemy import Column, ForeignKey, UniqueConstraint, Index, Uuid, DateTime
from sqlalchemy.orm import relationship
import uuid

from .base import Base, utcnow


class Assignment(Base):
    """Links a mentor to a student whose documents the mentor reviews.

    A (mentor, student) pair exists at most once. Mentors only see and review
    documents of students assigned to them.
    """
    __tablename__ = "mentor_student_assignment"
    __table_args__ = (
        UniqueConstraint("mentor_id", "student_id", name="uq_assignment_mentor_student"),
        Index("ix_assignment_mentor_id", "mentor_id"),
        Index("ix_assignment_student_id", "student_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    mentor_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    mentor = relationship("User", foreign_keys=[mentor_id])
    student = relationship("User", foreign_keys=[student_id])
