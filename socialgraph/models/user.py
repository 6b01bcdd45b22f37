from sqlalchemy import Column, String, DateTime, Boolean

from socialgraph.core.database import Base
from socialgraph.models.base import generate_uuid, utcnow


class User(Base):
    """Directory account. The social core only reads these rows."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), nullable=True)
    name = Column(String(255), nullable=True)
    avatar = Column(String(500), nullable=True)
    phone_number = Column(String(20), index=True, nullable=True)
    phone_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
