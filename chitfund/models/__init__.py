from chitfund.db.base import Base

# Import all models so Alembic can detect them
from chitfund.models.user import User
from chitfund.models.member import Profile, ProfileRole
from chitfund.models.loan import LoanTier, LoanRequest, LoanStatus
from chitfund.models.ledger import (
    Transaction,
    TransactionType,
    TransactionSource,
    MainAccount,
)
from chitfund.models.proof import PaymentProof, PaymentProofStatus
from chitfund.models.system import Notification, JobRun

__all__ = [
    "Base",
    "User",
    "Profile",
    "ProfileRole",
    "LoanTier",
    "LoanRequest",
    "LoanStatus",
    "Transaction",
    "TransactionType",
    "TransactionSource",
    "MainAccount",
    "PaymentProof",
    "PaymentProofStatus",
    "Notification",
    "JobRun",
]
