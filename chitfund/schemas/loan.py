from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal
from datetime import date
from uuid import UUID
from chitfund.models.loan import LoanRequest, LoanStatus, LoanTier


class LoanRequestCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    reason: Optional[str] = None
    guarantor_id: Optional[UUID] = None
    guarantor_2_id: Optional[UUID] = None


class LoanDecision(BaseModel):
    status: LoanStatus
    rejection_reason: Optional[str] = None


class AdminLoanCreate(BaseModel):
    user_id: UUID
    amount: Decimal = Field(..., gt=0)
    status: LoanStatus
    issue_date: date
    due_date: Optional[date] = None
    reason: Optional[str] = None
    guarantor_id: Optional[UUID] = None
    guarantor_2_id: Optional[UUID] = None


class LoanEdit(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)
    reason: Optional[str] = None
    status: Optional[LoanStatus] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    guarantor_id: Optional[UUID] = None
    guarantor_2_id: Optional[UUID] = None


def tier_to_dict(tier: LoanTier) -> dict:
    return {
        "amount": float(tier.amount),
        "eligibility_months": tier.eligibility_months,
        "fine": float(tier.fine),
        "repayment_info": tier.repayment_info,
        "repayment_months": tier.repayment_months,
    }


def loan_to_dict(loan: LoanRequest) -> dict:
    borrower = loan.borrower
    return {
        "id": str(loan.id),
        "user_id": str(loan.user_id),
        "user_full_name": borrower.full_name if borrower else None,
        "amount": float(loan.amount),
        "reason": loan.reason,
        "guarantor_id": str(loan.guarantor_id) if loan.guarantor_id else None,
        "guarantor_name": loan.guarantor_name,
        "guarantor_2_id": str(loan.guarantor_2_id) if loan.guarantor_2_id else None,
        "guarantor_2_name": loan.guarantor_2_name,
        "status": loan.status.value,
        "created_at": loan.created_at.isoformat() if loan.created_at else None,
        "due_date": loan.due_date.isoformat() if loan.due_date else None,
        "processed_at": loan.processed_at.isoformat() if loan.processed_at else None,
        "rejection_reason": loan.rejection_reason,
    }
