from sqlalchemy import Column, String, ForeignKey, DateTime, Boolean, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import relationship
import uuid
from chitfund.db.base import Base


class Notification(Base):
    """In-app notification for one member."""
    __tablename__ = "notification"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profile.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    link = Column(String(255), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    dedupe_key = Column(String(200), nullable=True)  # Set by scheduled jobs only
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"), index=True)

    # Relationships
    member = relationship("Profile", back_populates="notifications")

    __table_args__ = (
        UniqueConstraint("user_id", "dedupe_key", name="uq_notification_user_dedupe"),
    )


class JobRun(Base):
    """Idempotency record for period-based jobs (e.g. monthly dues)."""
    __tablename__ = "job_run"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_name = Column(String(100), nullable=False)
    period_key = Column(String(50), nullable=False)
    result = Column(Text, nullable=True)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    __table_args__ = (
        UniqueConstraint("job_name", "period_key", name="uq_job_run_period"),
    )
