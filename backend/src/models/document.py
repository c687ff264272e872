"""Document SQLAlchemy model

Document represents a file a student submitted for review.
Tracks storage location, review status, reviewer feedback and file metadata.
"""

from sqlalchemy import Column, Text, ForeignKey, BigInteger, Enum as SQLEnum, Index, Uuid, DateTime
from sqlalchemy.orm import relationship
import enum
import uuid

from domain.documents.document_status import DocumentStatus

from .base import Base, utcnow


class Document(Base):
    """Document model representing a submission under review.

    Each document belongs to the student who uploaded it and optionally to a
    category. The file itself lives in object storage under ``file_path``.
    Status moves once from pending to approved or rejected; the reviewer and
    review time are recorded with that transition.
    """
    __tablename__ = "document"
    __table_args__ = (
        Index("ix_document_student_id", "student_id"),
        Index("ix_document_created_at", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(
        Uuid,
        ForeignKey("document_category.id", ondelete="SET NULL"),
        nullable=True
    )
    file_name = Column(Text, nullable=False)
    file_path = Column(Text, nullable=False)  # Object storage key
    mime_type = Column(Text, nullable=False)
    size_bytes = Column(BigInteger, nullable=False)
    sha256 = Column(Text, nullable=False)  # hex string
    status = Column(
        SQLEnum(
            DocumentStatus,
            name="document_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=DocumentStatus.PENDING,
    )
    description = Column(Text, nullable=True)
    feedback = Column(Text, nullable=True)
    reviewed_by = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    student = relationship("User", back_populates="documents", foreign_keys=[student_id])
    reviewer = relationship("User", foreign_keys=[reviewed_by])
    category = relationship("Category", back_populates="documents")

    @property
    def submitter(self):
        """The student who uploaded the document (joined into API records)."""
        return self.student

    def to_change_payload(self):
        """Un-joined row fields carried by realtime change events"""
        return {
            "id": str(self.id),
            "student_id": str(self.student_id),
            "category_id": str(self.category_id) if self.category_id else None,
            "file_name": self.file_name,
            "file_path": self.file_path,
            "status": self.status.value if isinstance(self.status, enum.Enum) else self.status,
            "description": self.description,
            "feedback": self.feedback,
            "reviewed_by": str(self.reviewed_by) if self.reviewed_by else None,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
