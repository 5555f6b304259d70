from sqlalchemy import Column, String, ForeignKey, DateTime, Date, Integer, Numeric, Enum as SQLEnum, Text, Uuid, text
from sqlalchemy.orm import relationship
import uuid
from chitfund.db.base import Base
import enum


class LoanStatus(str, enum.Enum):
    """Loan request status."""
    PENDING = "pending"
    APPROVED = "approved"
    IN_PROCESS = "in-process"
    REJECTED = "rejected"
    CLOSED = "closed"


class LoanTier(Base):
    """Reference data: the fixed loan amounts members may request."""
    __tablename__ = "loan_tier"

    id = Column(Integer, primary_key=True, autoincrement=True)
    amount = Column(Numeric(12, 2), nullable=False, unique=True, index=True)
    eligibility_months = Column(Integer, nullable=False, default=0)
    fine = Column(Numeric(12, 2), nullable=False)
    repayment_info = Column(String(255), nullable=True)  # Display text only
    repayment_months = Column(Integer, nullable=False)


class LoanRequest(Base):
    """One loan lifecycle instance."""
    __tablename__ = "loan_request"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profile.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    reason = Column(Text, nullable=True)
    guarantor_id = Column(Uuid(as_uuid=True), ForeignKey("profile.id"), nullable=True, index=True)
    guarantor_name = Column(String(200), nullable=True)
    guarantor_2_id = Column(Uuid(as_uuid=True), ForeignKey("profile.id"), nullable=True, index=True)
    guarantor_2_name = Column(String(200), nullable=True)
    status = Column(SQLEnum(LoanStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=LoanStatus.PENDING, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))  # Issue date
    due_date = Column(DateTime, nullable=True, index=True)
    processed_by = Column(Uuid(as_uuid=True), ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Relationships
    borrower = relationship("Profile", back_populates="loan_requests", foreign_keys=[user_id])
    guarantor = relationship("Profile", foreign_keys=[guarantor_id])
    guarantor_2 = relationship("Profile", foreign_keys=[guarantor_2_id])

    @property
    def guarantor_ids(self) -> list:
        return [g for g in (self.guarantor_id, self.guarantor_2_id) if g is not None]
