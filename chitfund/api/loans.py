from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from chitfund.db.base import get_db
from chitfund.core.audit import audit_user_action
from chitfund.core.dependencies import require_admin
from chitfund.core.errors import ValidationError
from chitfund.models.loan import LoanStatus
from chitfund.models.user import User
from chitfund.schemas.loan import AdminLoanCreate, LoanDecision, LoanEdit, loan_to_dict
from chitfund.services.loan import (
    close_loan,
    create_loan,
    delete_loan_request,
    disburse_loan,
    edit_loan,
    list_loans,
    monthly_repayments,
    process_loan_request,
)

router = APIRouter(prefix="/api/admin/loans", tags=["admin-loans"])


@router.get("")
def get_loans(
    status: Optional[str] = "all",
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """All loans, optionally filtered by status ('all' for no filter)."""
    status_filter = None
    if status and status != "all":
        try:
            status_filter = LoanStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown loan status: {status}")
    return [loan_to_dict(loan) for loan in list_loans(db, status_filter)]


@router.post("")
def create_historical_loan(
    loan_data: AdminLoanCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Record a loan issued outside the system."""
    loan = create_loan(
        db,
        user_id=loan_data.user_id,
        amount=loan_data.amount,
        status=loan_data.status,
        issue_date=loan_data.issue_date,
        created_by=current_user.id,
        reason=loan_data.reason,
        guarantor_id=loan_data.guarantor_id,
        guarantor_2_id=loan_data.guarantor_2_id,
        due_date=loan_data.due_date,
    )
    audit_user_action(current_user, "Create Loan", f"loan_id={loan.id} status={loan.status.value}")
    return {"message": "Loan created successfully", "loan": loan_to_dict(loan)}


@router.get("/repayments/monthly")
def get_monthly_repayments(
    year: int,
    month: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Disbursed loans due in a month (month is 1-12)."""
    return {"repayment_list": monthly_repayments(db, year, month)}


@router.post("/{loan_id}/process")
def process_loan(
    loan_id: UUID,
    decision: LoanDecision,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    loan = process_loan_request(
        db, loan_id, decision.status, current_user.id,
        rejection_reason=decision.rejection_reason,
    )
    audit_user_action(current_user, "Process Loan", f"loan_id={loan_id} status={loan.status.value}")
    return {"message": f"Loan request successfully {loan.status.value}.", "loan": loan_to_dict(loan)}


@router.post("/{loan_id}/disburse")
def disburse(
    loan_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    loan = disburse_loan(db, loan_id, current_user.id)
    audit_user_action(current_user, "Disburse Loan", f"loan_id={loan_id} amount={loan.amount}")
    return {"message": "Loan successfully disbursed.", "loan": loan_to_dict(loan)}


@router.post("/{loan_id}/close")
def close(
    loan_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    loan = close_loan(db, loan_id, current_user.id)
    audit_user_action(current_user, "Close Loan", f"loan_id={loan_id}")
    return {"message": "Loan closed successfully.", "loan": loan_to_dict(loan)}


@router.put("/{loan_id}")
def update_loan(
    loan_id: UUID,
    changes: LoanEdit,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Corrective edit; balances are not touched."""
    updates = changes.model_dump(exclude_unset=True)
    loan = edit_loan(db, loan_id, updates, current_user.id)
    audit_user_action(current_user, "Edit Loan", f"loan_id={loan_id} fields={','.join(sorted(updates))}")
    return {"message": "Loan updated successfully", "loan": loan_to_dict(loan)}


@router.delete("/{loan_id}")
def delete_loan(
    loan_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    previous_status = delete_loan_request(db, loan_id)
    audit_user_action(current_user, "Delete Loan", f"loan_id={loan_id} status={previous_status.value}")
    return {
        "message": "Loan request deleted. Any balance changes it caused were not reversed.",
        "status": previous_status.value,
    }
