"""AuditLog SQLAlchemy model"""

import uuid

from sqlalchemy import Column, Text, ForeignKey, Index, Uuid, DateTime
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, utcnow


class AuditLog(Base):
    """Append-only record of who did what to which user, category or document.

    actor_id is nulled when the acting account is deleted; the entry itself
    stays. Failed logins for unknown emails have no actor at all.
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        Index("ix_audit_log_created_at", "created_at"),
        Index("ix_audit_log_entity", "entity_type", "entity_id"),
        Index("ix_audit_log_actor", "actor_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_id = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    action = Column(Text, nullable=False)
    entity_type = Column(Text, nullable=True)
    entity_id = Column(Uuid, nullable=True)
    metadata_json = Column(PortableJSONB, nullable=True)
    ip_address = Column(Text, nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    actor = relationship("User")

    def __repr__(self):
        return f"<AuditLog {self.action} entity={self.entity_type}:{self.entity_id}>"
