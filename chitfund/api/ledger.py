from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from chitfund.db.base import get_db
from chitfund.core.audit import audit_user_action
from chitfund.core.dependencies import require_admin
from chitfund.models.user import User
from chitfund.schemas.ledger import (
    BulkContributionCreate,
    MainBalanceUpdate,
    ManualTransactionCreate,
    transaction_to_dict,
)
from chitfund.services.accounting import get_main_account, reconcile_balances
from chitfund.services.transaction import (
    bulk_add_contributions,
    create_manual_transaction,
    delete_transaction,
    list_all_transactions,
    list_member_transactions,
    rebuild_balances,
    reverse_transaction,
    set_main_balance,
)

router = APIRouter(prefix="/api/admin/ledger", tags=["admin-ledger"])


def _changes_to_dict(changes: dict) -> dict:
    return {key: float(value) for key, value in changes.items()}


@router.get("/transactions")
def get_transactions(
    user_id: Optional[UUID] = None,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    if user_id is not None:
        transactions = list_member_transactions(db, user_id)
    else:
        transactions = list_all_transactions(db)
    return [transaction_to_dict(t) for t in transactions]


@router.post("/transactions")
def create_transaction(
    payload: ManualTransactionCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Manual deposit or withdrawal for a member."""
    txn = create_manual_transaction(
        db, payload.user_id, payload.type, payload.amount,
        created_by=current_user.id, description=payload.description,
    )
    audit_user_action(
        current_user, "Create Transaction",
        f"user_id={payload.user_id} type={payload.type.value} amount={payload.amount}",
    )
    return {"message": "Transaction created successfully", "transaction": transaction_to_dict(txn)}


@router.post("/transactions/{transaction_id}/reverse")
def reverse(
    transaction_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    changes = reverse_transaction(db, transaction_id, current_user.id)
    audit_user_action(current_user, "Reverse Transaction", f"transaction_id={transaction_id}")
    return {"message": "Transaction reversed", **_changes_to_dict(changes)}


@router.delete("/transactions/{transaction_id}")
def remove_transaction(
    transaction_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    changes = delete_transaction(db, transaction_id, current_user.id)
    audit_user_action(current_user, "Delete Transaction", f"transaction_id={transaction_id}")
    return {"message": "Transaction deleted", **_changes_to_dict(changes)}


@router.post("/contributions/bulk")
def add_bulk_contributions(
    payload: BulkContributionCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Backfill one contribution per month in an inclusive range (months 1-12)."""
    created = bulk_add_contributions(
        db,
        payload.user_id,
        payload.start_year,
        payload.start_month,
        payload.end_year,
        payload.end_month,
        created_by=current_user.id,
    )
    audit_user_action(
        current_user, "Bulk Add Contributions",
        f"user_id={payload.user_id} months={len(created)}",
    )
    return {"message": f"Successfully added {len(created)} contribution(s).", "count": len(created)}


@router.get("/main-account")
def get_main_account_balance(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    account = get_main_account(db)
    db.commit()
    return {"balance": float(account.balance or 0)}


@router.put("/main-account")
def update_main_account_balance(
    payload: MainBalanceUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    account = set_main_balance(db, payload.balance, current_user.id)
    audit_user_action(current_user, "Set Main Balance", f"balance={payload.balance}")
    return {"balance": float(account.balance)}


@router.get("/reconciliation")
def get_reconciliation(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Compare cached balances with the ledger totals."""
    report = reconcile_balances(db)
    db.commit()
    return report


@router.post("/reconciliation/rebuild")
def rebuild(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    report = rebuild_balances(db)
    audit_user_action(current_user, "Rebuild Balances", f"consistent_before={report['consistent']}")
    return report
