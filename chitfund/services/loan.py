"""Loan request lifecycle.

pending -> approved | rejected, approved -> in-process (disbursed),
in-process -> closed. Only disbursement touches balances.
"""
import logging
from datetime import date, datetime, time
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from dateutil.relativedelta import relativedelta
from sqlalchemy import func
from sqlalchemy.orm import Session

from chitfund.core.errors import NotFoundError, PreconditionError, ValidationError
from chitfund.db.base import atomic
from chitfund.models.loan import LoanRequest, LoanStatus, LoanTier
from chitfund.models.member import Profile
from chitfund.services.accounting import format_amount, month_start, post_loan_disbursement, to_decimal
from chitfund.services.member import membership_tenure_months
from chitfund.services.notification import create_notification

logger = logging.getLogger(__name__)

LOAN_LINK = "/loan-request"
DISBURSED_STATUSES = (LoanStatus.IN_PROCESS, LoanStatus.CLOSED)
APPROVED_STATUSES = (LoanStatus.APPROVED, LoanStatus.IN_PROCESS, LoanStatus.CLOSED)


# ---------------------------------------------------------------------------
# Tiers and eligibility
# ---------------------------------------------------------------------------

def get_loan_tiers(db: Session) -> List[LoanTier]:
    return db.query(LoanTier).order_by(LoanTier.amount.asc()).all()


def get_tier_for_amount(db: Session, amount) -> LoanTier:
    tier = db.query(LoanTier).filter(LoanTier.amount == to_decimal(amount)).first()
    if not tier:
        raise ValidationError(f"No loan tier exists for amount {format_amount(amount)}")
    return tier


def is_starter_tier(tier: LoanTier) -> bool:
    """Starter tier needs no membership history and no guarantor."""
    return tier.eligibility_months == 0


def is_top_tier(db: Session, tier: LoanTier) -> bool:
    """The largest tier needs two guarantors."""
    top_amount = db.query(func.max(LoanTier.amount)).scalar()
    return top_amount is not None and to_decimal(tier.amount) == to_decimal(top_amount)


def eligible_tiers(db: Session, member: Profile, today: date = None) -> List[LoanTier]:
    tenure = membership_tenure_months(member, today)
    return [t for t in get_loan_tiers(db) if t.eligibility_months <= tenure]


def compute_due_date(tier: LoanTier, start: datetime) -> datetime:
    return start + relativedelta(months=tier.repayment_months)


def _resolve_guarantors(
    db: Session,
    borrower_id: UUID,
    tier: LoanTier,
    guarantor_id: Optional[UUID],
    guarantor_2_id: Optional[UUID],
) -> Tuple[Optional[Profile], Optional[Profile]]:
    """Validate guarantors against the tier rules and return their profiles."""
    top_tier = is_top_tier(db, tier)
    if not is_starter_tier(tier) and guarantor_id is None:
        raise ValidationError("A guarantor is required for this loan amount")
    if top_tier and not is_starter_tier(tier) and guarantor_2_id is None:
        raise ValidationError("Two guarantors are required for this loan amount")
    if not top_tier:
        guarantor_2_id = None

    if guarantor_2_id is not None and guarantor_2_id == guarantor_id:
        raise ValidationError("The two guarantors must be different members")

    resolved = []
    for gid in (guarantor_id, guarantor_2_id):
        if gid is None:
            resolved.append(None)
            continue
        if gid == borrower_id:
            raise ValidationError("Borrower cannot be their own guarantor")
        profile = db.query(Profile).filter(Profile.id == gid).first()
        if not profile:
            raise ValidationError("Guarantor not found")
        resolved.append(profile)
    return resolved[0], resolved[1]


def _apply_guarantors(loan: LoanRequest, guarantor: Optional[Profile], guarantor_2: Optional[Profile]) -> None:
    loan.guarantor_id = guarantor.id if guarantor else None
    loan.guarantor_name = guarantor.full_name if guarantor else None
    loan.guarantor_2_id = guarantor_2.id if guarantor_2 else None
    loan.guarantor_2_name = guarantor_2.full_name if guarantor_2 else None


def get_loan(db: Session, loan_id: UUID, for_update: bool = False) -> LoanRequest:
    query = db.query(LoanRequest).filter(LoanRequest.id == loan_id)
    if for_update:
        query = query.with_for_update()
    loan = query.first()
    if not loan:
        raise NotFoundError("Loan request not found")
    return loan


def _require_status(loan: LoanRequest, expected: LoanStatus, message: str) -> None:
    if loan.status != expected:
        raise PreconditionError(message)


# ---------------------------------------------------------------------------
# Member operations
# ---------------------------------------------------------------------------

def create_loan_request(
    db: Session,
    member: Profile,
    amount,
    reason: str = None,
    guarantor_id: UUID = None,
    guarantor_2_id: UUID = None,
    today: date = None,
) -> LoanRequest:
    """Member applies for a tier amount. No balance effect."""
    tier = get_tier_for_amount(db, amount)

    tenure = membership_tenure_months(member, today)
    if tenure < tier.eligibility_months:
        raise ValidationError(
            f"You need at least {tier.eligibility_months} months of membership for a "
            f"{format_amount(tier.amount)} loan (you have {tenure})"
        )

    guarantor, guarantor_2 = _resolve_guarantors(db, member.id, tier, guarantor_id, guarantor_2_id)

    loan = LoanRequest(
        user_id=member.id,
        amount=to_decimal(tier.amount),
        reason=reason,
        status=LoanStatus.PENDING,
    )
    _apply_guarantors(loan, guarantor, guarantor_2)
    with atomic(db):
        db.add(loan)

    db.refresh(loan)
    logger.info(f"Loan request {loan.id} for {loan.amount} created by {member.id}")
    return loan


def list_member_loans(db: Session, user_id: UUID) -> List[LoanRequest]:
    return db.query(LoanRequest).filter(
        LoanRequest.user_id == user_id
    ).order_by(LoanRequest.created_at.desc()).all()


def list_guaranteed_loans(db: Session, user_id: UUID) -> List[LoanRequest]:
    return db.query(LoanRequest).filter(
        (LoanRequest.guarantor_id == user_id) | (LoanRequest.guarantor_2_id == user_id)
    ).order_by(LoanRequest.created_at.desc()).all()


# ---------------------------------------------------------------------------
# Admin transitions
# ---------------------------------------------------------------------------

def process_loan_request(
    db: Session,
    loan_id: UUID,
    status: LoanStatus,
    processed_by: UUID,
    rejection_reason: str = None,
    now: datetime = None,
) -> LoanRequest:
    """Approve or reject a pending request. No balance effect."""
    if status not in (LoanStatus.APPROVED, LoanStatus.REJECTED):
        raise ValidationError("Status must be 'approved' or 'rejected'")
    rejection_reason = (rejection_reason or "").strip() or None
    if status == LoanStatus.REJECTED and not rejection_reason:
        raise ValidationError("Rejection reason is required.")

    now = now or datetime.utcnow()
    with atomic(db):
        loan = get_loan(db, loan_id, for_update=True)
        _require_status(loan, LoanStatus.PENDING, "This loan request has already been processed.")

        if status == LoanStatus.APPROVED:
            tier = get_tier_for_amount(db, loan.amount)
            loan.due_date = compute_due_date(tier, now)
            create_notification(
                db,
                loan.user_id,
                "Loan Approved",
                f"Your loan request of {format_amount(loan.amount)} has been approved. "
                f"It is due on {loan.due_date:%d %B %Y}.",
                link=LOAN_LINK,
            )
        else:
            loan.rejection_reason = rejection_reason
            create_notification(
                db,
                loan.user_id,
                "Loan Rejected",
                f"Your loan request of {format_amount(loan.amount)} was rejected. Reason: {rejection_reason}",
                link=LOAN_LINK,
            )

        loan.status = status
        loan.processed_by = processed_by
        loan.processed_at = now

    db.refresh(loan)
    logger.info(f"Loan request {loan.id} {status.value} by {processed_by}")
    return loan


def disburse_loan(db: Session, loan_id: UUID, disbursed_by: UUID) -> LoanRequest:
    """Pay out an approved loan: ledger rows, in-process status and the notice commit together."""
    with atomic(db):
        loan = get_loan(db, loan_id, for_update=True)
        _require_status(
            loan, LoanStatus.APPROVED,
            "This loan is not in an approved state ready for disbursement.",
        )
        tier = get_tier_for_amount(db, loan.amount)
        borrower = db.query(Profile).filter(Profile.id == loan.user_id).with_for_update().first()
        if borrower is None:
            raise NotFoundError("Borrower not found")

        post_loan_disbursement(db, loan, tier, borrower, created_by=disbursed_by)
        loan.status = LoanStatus.IN_PROCESS

        create_notification(
            db,
            borrower.id,
            "Loan Disbursed",
            f"Your loan of {format_amount(loan.amount)} has been disbursed.",
            link=LOAN_LINK,
        )

    db.refresh(loan)
    logger.info(f"Loan {loan.id} disbursed by {disbursed_by}")
    return loan


def close_loan(db: Session, loan_id: UUID, closed_by: UUID, now: datetime = None) -> LoanRequest:
    """Mark a disbursed loan as repaid. No balance effect."""
    with atomic(db):
        loan = get_loan(db, loan_id, for_update=True)
        _require_status(loan, LoanStatus.IN_PROCESS, "Only loans that are in process can be closed.")
        loan.status = LoanStatus.CLOSED
        loan.processed_at = now or datetime.utcnow()
        create_notification(
            db,
            loan.user_id,
            "Loan Closed",
            f"Your loan of {format_amount(loan.amount)} has been marked as repaid.",
            link=LOAN_LINK,
        )

    db.refresh(loan)
    logger.info(f"Loan {loan.id} closed by {closed_by}")
    return loan


def delete_loan_request(db: Session, loan_id: UUID) -> LoanStatus:
    """Remove a loan record. Ledger rows it produced are left untouched."""
    with atomic(db):
        loan = get_loan(db, loan_id)
        status = loan.status
        db.delete(loan)
    logger.info(f"Loan request {loan_id} ({status.value}) deleted")
    return status


# ---------------------------------------------------------------------------
# Historical entry and corrections
# ---------------------------------------------------------------------------

def create_loan(
    db: Session,
    user_id: UUID,
    amount,
    status: LoanStatus,
    issue_date: date,
    created_by: UUID,
    reason: str = None,
    guarantor_id: UUID = None,
    guarantor_2_id: UUID = None,
    due_date: date = None,
) -> LoanRequest:
    """Record a loan that happened outside the system.

    Loans recorded as in-process or closed post their disbursement rows dated
    at the issue date, all in one transaction.
    """
    borrower = db.query(Profile).filter(Profile.id == user_id).first()
    if not borrower:
        raise NotFoundError("Member not found")
    tier = get_tier_for_amount(db, amount)
    guarantor, guarantor_2 = _resolve_guarantors(db, borrower.id, tier, guarantor_id, guarantor_2_id)

    issued_at = datetime.combine(issue_date, time.min)
    if due_date is not None:
        due_at = datetime.combine(due_date, time.min)
        if due_at < issued_at:
            raise ValidationError("Due date cannot be before the issue date")
    elif status in APPROVED_STATUSES:
        due_at = compute_due_date(tier, issued_at)
    else:
        due_at = None

    with atomic(db):
        loan = LoanRequest(
            user_id=borrower.id,
            amount=to_decimal(tier.amount),
            reason=reason,
            status=status,
            created_at=issued_at,
            due_date=due_at,
            processed_by=created_by if status != LoanStatus.PENDING else None,
            processed_at=datetime.utcnow() if status != LoanStatus.PENDING else None,
        )
        _apply_guarantors(loan, guarantor, guarantor_2)
        db.add(loan)
        db.flush()

        if status in DISBURSED_STATUSES:
            post_loan_disbursement(db, loan, tier, borrower, created_by=created_by, posted_at=issued_at)

    db.refresh(loan)
    logger.info(f"Historical loan {loan.id} ({status.value}) recorded for {borrower.id} by {created_by}")
    return loan


def edit_loan(db: Session, loan_id: UUID, changes: Dict, edited_by: UUID) -> LoanRequest:
    """Corrective edit of a loan record. Never touches balances."""
    with atomic(db):
        loan = get_loan(db, loan_id, for_update=True)

        if changes.get("amount") is not None:
            tier = get_tier_for_amount(db, changes["amount"])
            loan.amount = to_decimal(tier.amount)
        if "reason" in changes:
            loan.reason = changes["reason"]
        if changes.get("status") is not None:
            loan.status = LoanStatus(changes["status"])
        if changes.get("issue_date") is not None:
            loan.created_at = datetime.combine(changes["issue_date"], time.min)
        if "due_date" in changes:
            due = changes["due_date"]
            loan.due_date = datetime.combine(due, time.min) if due is not None else None

        if "guarantor_id" in changes or "guarantor_2_id" in changes:
            guarantors = []
            for key in ("guarantor_id", "guarantor_2_id"):
                gid = changes.get(key, getattr(loan, key))
                if gid is None:
                    guarantors.append(None)
                    continue
                if gid == loan.user_id:
                    raise ValidationError("Borrower cannot be their own guarantor")
                profile = db.query(Profile).filter(Profile.id == gid).first()
                if not profile:
                    raise ValidationError("Guarantor not found")
                guarantors.append(profile)
            if guarantors[0] is not None and guarantors[1] is not None and guarantors[0].id == guarantors[1].id:
                raise ValidationError("The two guarantors must be different members")
            _apply_guarantors(loan, guarantors[0], guarantors[1])

    db.refresh(loan)
    logger.info(f"Loan {loan.id} edited by {edited_by}: {sorted(changes)}")
    return loan


# ---------------------------------------------------------------------------
# Admin reads
# ---------------------------------------------------------------------------

def list_loans(db: Session, status: Optional[LoanStatus] = None) -> List[LoanRequest]:
    query = db.query(LoanRequest)
    if status is not None:
        query = query.filter(LoanRequest.status == status)
    return query.order_by(LoanRequest.created_at.desc()).all()


def monthly_repayments(db: Session, year: int, month: int) -> List[Dict]:
    """Disbursed loans falling due in a 1-based (year, month)."""
    start = datetime.combine(month_start(year, month), time())
    end = start + relativedelta(months=1)

    loans = db.query(LoanRequest).filter(
        LoanRequest.due_date >= start,
        LoanRequest.due_date < end,
        LoanRequest.status.in_(DISBURSED_STATUSES),
    ).order_by(LoanRequest.due_date.asc()).all()

    fines = {to_decimal(t.amount): to_decimal(t.fine) for t in get_loan_tiers(db)}
    rows = []
    for loan in loans:
        amount = to_decimal(loan.amount)
        rows.append({
            "loan_id": str(loan.id),
            "user_name": loan.borrower.full_name if loan.borrower else "",
            "loan_taken_date": loan.created_at.isoformat() if loan.created_at else None,
            "loan_amount": float(amount),
            "loan_return_date": loan.due_date.isoformat() if loan.due_date else None,
            "loan_return_amount": float(amount + fines.get(amount, to_decimal(0))),
            "guarantor_name": loan.guarantor_name or "N/A",
            "status": loan.status.value,
        })
    return rows
