"""Category SQLAlchemy model"""

from sqlalchemy import Column, Text, Uuid, DateTime
from sqlalchemy.orm import relationship
import uuid

from .base import Base, utcnow


# Seeded on first start so students always have something to upload into
DEFAULT_CATEGORIES = [
    ("Attendance Log", "Monthly or semester attendance records"),
    ("Academic Transcript", "Grade reports and academic transcripts"),
    ("Internship Certificate", "Certificates from internships or work experience"),
    ("Sports Achievement", "Sports certificates and achievement records"),
    ("Cultural Activity", "Certificates from cultural events and activities"),
    ("Project Report", "Academic project reports and documentation"),
]


class Category(Base):
    """Document category chosen by the student at upload time.

    Category names are unique. Removing a category keeps its documents and
    only clears their category reference.
    """
    __tablename__ = "document_category"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    documents = relationship("Document", back_populates="category", passive_deletes=True)

    def to_dict(self):
        """Convert category to dictionary representation"""
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
