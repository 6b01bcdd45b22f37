from sqlalchemy import Column, String, Text, Integer, DateTime, JSON, UniqueConstraint, Index

from socialgraph.core.database import Base
from socialgraph.models.base import generate_uuid, utcnow


class Suggestion(Base):
    __tablename__ = "suggestions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_email = Column(String(255), nullable=False)
    suggested_user_email = Column(String(255), nullable=False)
    source = Column(String(30), nullable=False)  # contact, facebook, line, mutual_friends, system
    status = Column(String(30), nullable=False, default="active")  # active, dismissed, friend_request_sent
    reason = Column(Text, nullable=True)
    mutual_friends_count = Column(Integer, nullable=False, default=0)
    priority = Column(Integer, nullable=False, default=5)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)
    dismissed_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_email", "suggested_user_email", name="uq_suggestion_pair"),
        Index("ix_suggestion_user_status", "user_email", "status"),
        Index("ix_suggestion_status_created", "status", "created_at"),
    )
