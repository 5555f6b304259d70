"""Admin ledger operations: manual entries, corrections and historical backfill."""
import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from chitfund.core.errors import NotFoundError, PreconditionError, ValidationError
from chitfund.db.base import atomic
from chitfund.models.ledger import MainAccount, Transaction, TransactionSource, TransactionType
from chitfund.models.member import Profile
from chitfund.services.accounting import (
    get_main_account,
    month_start,
    post_contribution,
    post_main_balance_adjustment,
    post_manual_transaction,
    reconcile_balances,
    to_decimal,
    unpost_transaction,
)

logger = logging.getLogger(__name__)

MAX_BACKFILL_MONTHS = 240
MAX_PUBLIC_LIMIT = 500


def _get_member_for_update(db: Session, user_id: UUID) -> Profile:
    member = db.query(Profile).filter(Profile.id == user_id).with_for_update().first()
    if not member:
        raise NotFoundError("Member not found")
    return member


def get_transaction(db: Session, transaction_id: UUID) -> Transaction:
    txn = db.query(Transaction).filter(Transaction.id == transaction_id).with_for_update().first()
    if not txn:
        raise NotFoundError("Transaction not found")
    return txn


def create_manual_transaction(
    db: Session,
    user_id: UUID,
    type: TransactionType,
    amount,
    created_by: UUID,
    description: str = None,
) -> Transaction:
    if to_decimal(amount) <= 0:
        raise ValidationError("Amount must be greater than zero")
    with atomic(db):
        member = _get_member_for_update(db, user_id)
        txn = post_manual_transaction(db, member, type, amount, description=description, created_by=created_by)
    db.refresh(txn)
    return txn


def reverse_transaction(db: Session, transaction_id: UUID, reversed_by: UUID) -> dict:
    """Undo a manual entry: inverse effects applied, row removed."""
    with atomic(db):
        txn = get_transaction(db, transaction_id)
        if txn.source != TransactionSource.MANUAL:
            raise PreconditionError("Only manual transactions can be reversed")
        changes = unpost_transaction(db, txn)
    logger.info(f"Transaction {transaction_id} reversed by {reversed_by}")
    return changes


def delete_transaction(db: Session, transaction_id: UUID, deleted_by: UUID) -> dict:
    """Remove any ledger row, keeping cached balances equal to the ledger."""
    with atomic(db):
        txn = get_transaction(db, transaction_id)
        source = txn.source
        changes = unpost_transaction(db, txn)
    logger.warning(f"Transaction {transaction_id} ({source.value}) deleted by {deleted_by}")
    return changes


def set_main_balance(db: Session, new_balance, updated_by: UUID) -> MainAccount:
    with atomic(db):
        post_main_balance_adjustment(db, new_balance, created_by=updated_by)
        account = get_main_account(db)
    db.refresh(account)
    return account


def iter_months(start: date, end: date) -> List[date]:
    """First-of-month dates from ``start`` to ``end`` inclusive."""
    months = []
    current = start.replace(day=1)
    last = end.replace(day=1)
    while current <= last:
        months.append(current)
        current = current + relativedelta(months=1)
    return months


def bulk_add_contributions(
    db: Session,
    user_id: UUID,
    start_year: int,
    start_month: int,
    end_year: int,
    end_month: int,
    created_by: UUID,
) -> List[Transaction]:
    """One contribution per month in the inclusive range; all or nothing."""
    start = month_start(start_year, start_month)
    end = month_start(end_year, end_month)
    if start > end:
        raise ValidationError("Start date cannot be after end date.")

    months = iter_months(start, end)
    if len(months) > MAX_BACKFILL_MONTHS:
        raise ValidationError(f"Cannot add more than {MAX_BACKFILL_MONTHS} months at once")

    with atomic(db):
        member = _get_member_for_update(db, user_id)
        created = [post_contribution(db, member, month, created_by=created_by) for month in months]

    logger.info(f"Backfilled {len(created)} contribution(s) for {user_id} ({start:%Y-%m} to {end:%Y-%m})")
    return created


def list_member_transactions(db: Session, user_id: UUID) -> List[Transaction]:
    return db.query(Transaction).filter(
        Transaction.user_id == user_id
    ).order_by(Transaction.created_at.desc()).all()


def list_public_transactions(db: Session, limit: Optional[int] = None) -> List[Transaction]:
    if limit is not None and not 1 <= limit <= MAX_PUBLIC_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_PUBLIC_LIMIT}")
    query = db.query(Transaction).filter(Transaction.user_id.is_(None)).order_by(Transaction.created_at.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def list_all_transactions(db: Session) -> List[Transaction]:
    return db.query(Transaction).order_by(Transaction.created_at.desc()).all()


def rebuild_balances(db: Session) -> dict:
    """Overwrite cached balances with the ledger-derived values."""
    with atomic(db):
        report = reconcile_balances(db, repair=True)
    logger.info(f"Balances rebuilt from ledger; consistent before rebuild: {report['consistent']}")
    return report
