from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal
from uuid import UUID
from chitfund.models.ledger import Transaction, TransactionType


class ManualTransactionCreate(BaseModel):
    user_id: UUID
    type: TransactionType
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None


class BulkContributionCreate(BaseModel):
    user_id: UUID
    start_year: int
    start_month: int = Field(..., ge=1, le=12)
    end_year: int
    end_month: int = Field(..., ge=1, le=12)


class MainBalanceUpdate(BaseModel):
    balance: Decimal


def transaction_to_dict(txn: Transaction) -> dict:
    return {
        "id": str(txn.id),
        "user_id": str(txn.user_id) if txn.user_id else None,
        "user_full_name": txn.user_full_name,
        "type": txn.type.value,
        "source": txn.source.value,
        "amount": float(txn.amount),
        "description": txn.description,
        "created_at": txn.created_at.isoformat() if txn.created_at else None,
    }
