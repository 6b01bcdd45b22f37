from sqlalchemy import Column, String, Text, DateTime, UniqueConstraint, Index, CheckConstraint

from socialgraph.core.database import Base
from socialgraph.models.base import generate_uuid, utcnow


class Relationship(Base):
    """One directed edge. Every pair is stored twice, (A, B) and (B, A)."""

    __tablename__ = "relationships"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_email = Column(String(255), nullable=False)
    peer_email = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False)  # pending, received, accepted, rejected, blocked
    initiated_by = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)

    accepted_at = Column(DateTime(timezone=True), nullable=True)
    blocked_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Constraints
    __table_args__ = (
        UniqueConstraint("owner_email", "peer_email", name="uq_relationship_pair"),
        CheckConstraint("owner_email <> peer_email", name="ck_relationship_not_self"),
        Index("ix_relationship_owner_status", "owner_email", "status"),
        Index("ix_relationship_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Relationship {self.owner_email}->{self.peer_email} {self.status}>"
