from sqlalchemy import Column, String, ForeignKey, DateTime, Integer, Numeric, Enum as SQLEnum, Index, Uuid, text, func
from sqlalchemy.orm import relationship
import uuid
from chitfund.db.base import Base
import enum
from decimal import Decimal


class TransactionType(str, enum.Enum):
    """Ledger entry direction."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DUE = "due"


class TransactionSource(str, enum.Enum):
    """What produced a ledger entry."""
    LOAN_DISBURSEMENT = "loan_disbursement"
    CONTRIBUTION = "contribution"
    MANUAL = "manual"
    MONTHLY_DUE = "monthly_due"
    BALANCE_ADJUSTMENT = "balance_adjustment"


class Transaction(Base):
    """Immutable ledger entry.

    ``user_id`` is NULL for public (shared account) entries. Each row keeps the
    exact deltas it applied to its owner's outstanding amount and to the main
    account, so balances can be re-derived or undone from the row alone.
    """
    __tablename__ = "ledger_transaction"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profile.id"), nullable=True, index=True)
    type = Column(SQLEnum(TransactionType, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(500), nullable=True)
    user_full_name = Column(String(200), nullable=True)
    source = Column(SQLEnum(TransactionSource, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), nullable=False, index=True)
    source_ref = Column(String(100), nullable=True, index=True)  # e.g. loan or proof id
    outstanding_effect = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    main_effect = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    created_by = Column(Uuid(as_uuid=True), ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"), index=True)

    # Relationships
    member = relationship("Profile", back_populates="transactions")

    # Index for monthly contribution queries
    __table_args__ = (
        Index("idx_ledger_transaction_type_date", "type", "created_at"),
    )


class MainAccount(Base):
    """Singleton row caching the shared pooled balance."""
    __tablename__ = "main_account"

    id = Column(Integer, primary_key=True, default=1)
    balance = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    updated_at = Column(DateTime, nullable=True, onupdate=func.now())
