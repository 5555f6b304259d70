from sqlalchemy import Column, String, DateTime, Uuid, text
from sqlalchemy.orm import relationship
import uuid
from chitfund.db.base import Base


class User(Base):
    """Login identity. Member data lives on the 1:1 profile."""
    __tablename__ = "user"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    last_sign_in_at = Column(DateTime, nullable=True)

    # Relationships
    profile = relationship("Profile", back_populates="user", uselist=False, cascade="all, delete-orphan")
