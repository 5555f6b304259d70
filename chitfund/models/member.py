from sqlalchemy import Column, String, ForeignKey, DateTime, Date, Numeric, Enum as SQLEnum, Uuid, text, func
from sqlalchemy.orm import relationship
from chitfund.db.base import Base
import enum
from decimal import Decimal


class ProfileRole(str, enum.Enum):
    """Member role."""
    MEMBER = "member"
    ADMIN = "admin"


class Profile(Base):
    """Member profile linked 1:1 to user (shares the user's id)."""
    __tablename__ = "profile"

    id = Column(Uuid(as_uuid=True), ForeignKey("user.id", ondelete="CASCADE"), primary_key=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    reference_name = Column(String(10), nullable=True, index=True)
    role = Column(SQLEnum(ProfileRole, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=ProfileRole.MEMBER, nullable=False)
    # Cached total owed to the fund; only the ledger service writes it
    outstanding_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    membership_start_date = Column(Date, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=True, onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="profile")
    loan_requests = relationship("LoanRequest", back_populates="borrower", foreign_keys="[LoanRequest.user_id]")
    transactions = relationship("Transaction", back_populates="member")
    payment_proofs = relationship("PaymentProof", back_populates="member")
    notifications = relationship("Notification", back_populates="member", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role == ProfileRole.ADMIN
