"""Ledger postings and balance read model.

Every change to ``Profile.outstanding_amount`` or ``MainAccount.balance`` goes
through :func:`post_transaction` / :func:`unpost_transaction`, in the caller's
database transaction. The functions here only ``flush``; the calling service
owns the commit.
"""
import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from chitfund.core.config import settings
from chitfund.core.errors import ValidationError
from chitfund.models.ledger import MainAccount, Transaction, TransactionSource, TransactionType
from chitfund.models.loan import LoanRequest, LoanTier
from chitfund.models.member import Profile

logger = logging.getLogger(__name__)

MAIN_ACCOUNT_ID = 1
ZERO = Decimal("0.00")
CENT = Decimal("0.01")
MIN_YEAR = 1900
MAX_YEAR = 2999


def to_decimal(value) -> Decimal:
    """Normalise money input (int, float, str, Decimal) to 2 decimal places."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT)


def format_amount(value) -> str:
    return f"${to_decimal(value):,.2f}"


def month_start(year: int, month: int) -> date:
    """First day of a 1-based (year, month)."""
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationError("Year is out of range")
    return date(year, month, 1)


def get_main_account(db: Session, for_update: bool = False) -> MainAccount:
    """Return the singleton main account row, creating it on first use."""
    query = db.query(MainAccount).filter(MainAccount.id == MAIN_ACCOUNT_ID)
    if for_update:
        query = query.with_for_update()
    account = query.first()
    if account is None:
        account = MainAccount(id=MAIN_ACCOUNT_ID, balance=ZERO)
        db.add(account)
        db.flush()
    return account


def post_transaction(
    db: Session,
    *,
    type: TransactionType,
    amount,
    source: TransactionSource,
    member: Optional[Profile] = None,
    description: str = None,
    outstanding_effect=ZERO,
    main_effect=ZERO,
    user_full_name: str = None,
    source_ref: str = None,
    created_by=None,
    created_at: datetime = None,
) -> Transaction:
    """Insert one ledger row and apply its effects to the cached balances."""
    amount = to_decimal(amount)
    if amount <= ZERO:
        raise ValidationError("Transaction amount must be positive")

    outstanding_effect = to_decimal(outstanding_effect)
    main_effect = to_decimal(main_effect)

    if member is None and outstanding_effect != ZERO:
        raise ValidationError("A public entry cannot change a member's outstanding amount")

    if member is not None and outstanding_effect != ZERO:
        member.outstanding_amount = to_decimal(member.outstanding_amount) + outstanding_effect

    if main_effect != ZERO:
        account = get_main_account(db, for_update=True)
        account.balance = to_decimal(account.balance) + main_effect

    txn = Transaction(
        user_id=member.id if member is not None else None,
        type=type,
        amount=amount,
        description=description,
        user_full_name=user_full_name if user_full_name is not None else (member.full_name if member is not None else None),
        source=source,
        source_ref=source_ref,
        outstanding_effect=outstanding_effect,
        main_effect=main_effect,
        created_by=created_by,
    )
    if created_at is not None:
        txn.created_at = created_at
    db.add(txn)
    db.flush()

    logger.info(
        "Posted %s %s (%s) for %s: outstanding %s, main %s",
        type.value, amount, source.value,
        member.id if member is not None else "main account",
        outstanding_effect, main_effect,
    )
    return txn


def unpost_transaction(db: Session, txn: Transaction) -> Dict[str, Decimal]:
    """Apply the inverse of a row's stored effects and delete the row."""
    outstanding_effect = to_decimal(txn.outstanding_effect)
    main_effect = to_decimal(txn.main_effect)

    if txn.user_id is not None and outstanding_effect != ZERO:
        member = db.query(Profile).filter(Profile.id == txn.user_id).with_for_update().first()
        if member is not None:
            member.outstanding_amount = to_decimal(member.outstanding_amount) - outstanding_effect

    if main_effect != ZERO:
        account = get_main_account(db, for_update=True)
        account.balance = to_decimal(account.balance) - main_effect

    logger.info(
        "Unposted transaction %s (%s %s): outstanding %s, main %s",
        txn.id, txn.type.value, txn.amount, -outstanding_effect, -main_effect,
    )
    db.delete(txn)
    db.flush()
    return {"outstanding_change": -outstanding_effect, "main_balance_change": -main_effect}


# ---------------------------------------------------------------------------
# Domain postings
# ---------------------------------------------------------------------------

def post_contribution(
    db: Session,
    member: Profile,
    contribution_month: date,
    created_by=None,
    source_ref: str = None,
) -> Transaction:
    """Monthly contribution: pays down the member's dues and grows the pool."""
    amount = to_decimal(settings.MONTHLY_CONTRIBUTION_AMOUNT)
    month_start = contribution_month.replace(day=1)
    return post_transaction(
        db,
        type=TransactionType.DEPOSIT,
        amount=amount,
        source=TransactionSource.CONTRIBUTION,
        member=member,
        description=f"Monthly contribution for {month_start.strftime('%B %Y')}",
        outstanding_effect=-amount,
        main_effect=amount,
        source_ref=source_ref,
        created_by=created_by,
        created_at=datetime.combine(month_start, time.min),
    )


def post_loan_disbursement(
    db: Session,
    loan: LoanRequest,
    tier: LoanTier,
    member: Profile,
    created_by=None,
    posted_at: datetime = None,
) -> Tuple[Transaction, Transaction]:
    """Disburse a loan: member owes amount + fine, pool pays out amount.

    Writes one personal withdrawal (carrying the outstanding increase) and one
    public withdrawal (carrying the main account decrease).
    """
    amount = to_decimal(loan.amount)
    total_owed = amount + to_decimal(tier.fine)

    personal = post_transaction(
        db,
        type=TransactionType.WITHDRAWAL,
        amount=amount,
        source=TransactionSource.LOAN_DISBURSEMENT,
        member=member,
        description=f"Loan of {format_amount(amount)} disbursed. Total outstanding: {format_amount(total_owed)}.",
        outstanding_effect=total_owed,
        source_ref=str(loan.id),
        created_by=created_by,
        created_at=posted_at,
    )
    public = post_transaction(
        db,
        type=TransactionType.WITHDRAWAL,
        amount=amount,
        source=TransactionSource.LOAN_DISBURSEMENT,
        description="Loan",
        main_effect=-amount,
        user_full_name=member.full_name,
        source_ref=str(loan.id),
        created_by=created_by,
        created_at=posted_at,
    )
    return personal, public


def post_manual_transaction(
    db: Session,
    member: Profile,
    type: TransactionType,
    amount,
    description: str = None,
    created_by=None,
) -> Transaction:
    """Admin correction entry. A deposit is money paid in by the member."""
    amount = to_decimal(amount)
    if type == TransactionType.DEPOSIT:
        outstanding_effect, main_effect = -amount, amount
    elif type == TransactionType.WITHDRAWAL:
        outstanding_effect, main_effect = amount, -amount
    else:
        raise ValidationError("Manual transactions must be a deposit or a withdrawal")

    return post_transaction(
        db,
        type=type,
        amount=amount,
        source=TransactionSource.MANUAL,
        member=member,
        description=description or f"Manual {type.value}",
        outstanding_effect=outstanding_effect,
        main_effect=main_effect,
        created_by=created_by,
    )


def post_monthly_due(
    db: Session,
    member: Profile,
    amount,
    period: date,
    created_by=None,
) -> Transaction:
    amount = to_decimal(amount)
    return post_transaction(
        db,
        type=TransactionType.DUE,
        amount=amount,
        source=TransactionSource.MONTHLY_DUE,
        member=member,
        description=f"Monthly dues for {period.strftime('%B %Y')}",
        outstanding_effect=amount,
        source_ref=period.strftime("%Y-%m"),
        created_by=created_by,
    )


def post_outstanding_adjustment(
    db: Session,
    member: Profile,
    new_amount,
    created_by=None,
) -> Optional[Transaction]:
    """Move a member's outstanding amount to ``new_amount`` through the ledger."""
    current = to_decimal(member.outstanding_amount)
    target = to_decimal(new_amount)
    delta = target - current
    if delta == ZERO:
        return None

    return post_transaction(
        db,
        type=TransactionType.WITHDRAWAL if delta > ZERO else TransactionType.DEPOSIT,
        amount=abs(delta),
        source=TransactionSource.BALANCE_ADJUSTMENT,
        member=member,
        description=f"Outstanding amount adjusted from {format_amount(current)} to {format_amount(target)}",
        outstanding_effect=delta,
        created_by=created_by,
    )


def post_main_balance_adjustment(
    db: Session,
    new_balance,
    created_by=None,
) -> Optional[Transaction]:
    """Move the main account balance to ``new_balance`` through the ledger."""
    account = get_main_account(db, for_update=True)
    current = to_decimal(account.balance)
    target = to_decimal(new_balance)
    delta = target - current
    if delta == ZERO:
        return None

    return post_transaction(
        db,
        type=TransactionType.DEPOSIT if delta > ZERO else TransactionType.WITHDRAWAL,
        amount=abs(delta),
        source=TransactionSource.BALANCE_ADJUSTMENT,
        description=f"Main account balance adjusted from {format_amount(current)} to {format_amount(target)}",
        main_effect=delta,
        created_by=created_by,
    )


# ---------------------------------------------------------------------------
# Read model
# ---------------------------------------------------------------------------

def compute_member_outstanding(db: Session, user_id) -> Decimal:
    """Outstanding amount derived from the ledger alone."""
    total = db.query(func.sum(Transaction.outstanding_effect)).filter(
        Transaction.user_id == user_id
    ).scalar()
    return to_decimal(total)


def compute_main_balance(db: Session) -> Decimal:
    """Main account balance derived from the ledger alone."""
    total = db.query(func.sum(Transaction.main_effect)).scalar()
    return to_decimal(total)


def reconcile_balances(db: Session, repair: bool = False) -> Dict:
    """Compare cached balances with the ledger.

    With ``repair=True`` the caches are overwritten with the ledger values;
    the caller commits.
    """
    ledger_totals = dict(
        db.query(Transaction.user_id, func.sum(Transaction.outstanding_effect))
        .filter(Transaction.user_id.isnot(None))
        .group_by(Transaction.user_id)
        .all()
    )

    mismatches: List[Dict] = []
    for member in db.query(Profile).order_by(Profile.first_name, Profile.last_name).all():
        cached = to_decimal(member.outstanding_amount)
        derived = to_decimal(ledger_totals.get(member.id))
        if cached != derived:
            mismatches.append({
                "user_id": str(member.id),
                "name": member.full_name,
                "cached": float(cached),
                "ledger": float(derived),
                "difference": float(cached - derived),
            })
            if repair:
                member.outstanding_amount = derived

    account = get_main_account(db, for_update=repair)
    cached_main = to_decimal(account.balance)
    derived_main = compute_main_balance(db)
    if repair and cached_main != derived_main:
        account.balance = derived_main

    if mismatches or cached_main != derived_main:
        logger.warning(
            "Ledger reconciliation found %d member mismatch(es); main account cached=%s ledger=%s",
            len(mismatches), cached_main, derived_main,
        )
    if repair:
        db.flush()

    return {
        "consistent": not mismatches and cached_main == derived_main,
        "main_account": {
            "cached": float(cached_main),
            "ledger": float(derived_main),
            "difference": float(cached_main - derived_main),
        },
        "members": mismatches,
        "repaired": repair,
    }
