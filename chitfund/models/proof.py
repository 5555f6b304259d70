from sqlalchemy import Column, String, ForeignKey, DateTime, Date, Enum as SQLEnum, Text, Uuid, text
from sqlalchemy.orm import relationship
import uuid
from chitfund.db.base import Base
import enum


class PaymentProofStatus(str, enum.Enum):
    """Payment proof status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentProof(Base):
    """Member upload claiming a monthly contribution."""
    __tablename__ = "payment_proof"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profile.id"), nullable=False, index=True)
    user_full_name = Column(String(200), nullable=True)
    contribution_month = Column(Date, nullable=False, index=True)  # stored as YYYY-MM-01
    file_path = Column(String(500), nullable=False)  # file name inside PAYMENT_PROOFS_DIR
    status = Column(SQLEnum(PaymentProofStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=PaymentProofStatus.PENDING, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    processed_by = Column(Uuid(as_uuid=True), ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    # Relationships
    member = relationship("Profile", back_populates="payment_proofs")
