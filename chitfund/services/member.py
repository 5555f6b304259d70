import logging
import secrets
from datetime import date, datetime, time
from typing import Dict, List, Tuple
from uuid import UUID

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from chitfund.core.config import settings
from chitfund.core.errors import ConflictError, NotFoundError, ValidationError
from chitfund.core.security import generate_password, get_password_hash
from chitfund.db.base import atomic
from chitfund.models.ledger import Transaction, TransactionSource, TransactionType
from chitfund.models.loan import LoanRequest, LoanStatus
from chitfund.models.member import Profile, ProfileRole
from chitfund.models.proof import PaymentProof
from chitfund.models.system import JobRun
from chitfund.models.user import User
from chitfund.services.accounting import month_start, post_outstanding_adjustment
from chitfund.services.auth import create_user, validate_password
from chitfund.services.proof import remove_proof_file

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 30
MAX_PAGE_SIZE = 200
FINISHED_LOAN_STATUSES = (LoanStatus.REJECTED, LoanStatus.CLOSED)
CONTRIBUTION_SOURCES = (TransactionSource.CONTRIBUTION, TransactionSource.MANUAL)


def get_profile(db: Session, user_id: UUID) -> Profile:
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        raise NotFoundError("Member not found")
    return profile


def membership_tenure_months(profile: Profile, today: date = None) -> int:
    """Whole months since the member joined (membership start, else account creation)."""
    today = today or date.today()
    start = profile.membership_start_date
    if start is None:
        created = profile.user.created_at if profile.user is not None else None
        start = created.date() if created else today
    if start > today:
        return 0
    delta = relativedelta(today, start)
    return delta.years * 12 + delta.months


def list_users(db: Session, page: int = 1, per_page: int = DEFAULT_PAGE_SIZE) -> Tuple[List[User], int]:
    """One page of accounts (with profiles), oldest first, plus the total count."""
    if page < 1:
        raise ValidationError("Page must be 1 or greater")
    if not 1 <= per_page <= MAX_PAGE_SIZE:
        raise ValidationError(f"per_page must be between 1 and {MAX_PAGE_SIZE}")

    query = db.query(User).order_by(User.created_at.asc(), User.email.asc())
    total = query.count()
    users = query.offset((page - 1) * per_page).limit(per_page).all()
    return users, total


def list_members(db: Session, include_admins: bool = False) -> List[Profile]:
    """Profiles sorted by first then last name."""
    query = db.query(Profile)
    if not include_admins:
        query = query.filter(Profile.role != ProfileRole.ADMIN)
    return query.order_by(Profile.first_name.asc(), Profile.last_name.asc()).all()


def edit_user(db: Session, user_id: UUID, changes: Dict, edited_by: UUID) -> Profile:
    """Admin edit of a member's profile.

    A new ``outstanding_amount`` is applied as a balance-adjustment ledger row,
    never as a direct overwrite.
    """
    with atomic(db):
        profile = db.query(Profile).filter(Profile.id == user_id).with_for_update().first()
        if not profile:
            raise NotFoundError("Member not found")

        for field in ("first_name", "last_name", "membership_start_date", "reference_name"):
            if field in changes:
                setattr(profile, field, changes[field])
        if changes.get("role") is not None:
            profile.role = ProfileRole(changes["role"])

        if changes.get("outstanding_amount") is not None:
            post_outstanding_adjustment(db, profile, changes["outstanding_amount"], created_by=edited_by)

    db.refresh(profile)
    logger.info(f"Profile {user_id} updated by {edited_by}: {sorted(changes)}")
    return profile


def set_user_password(db: Session, user_id: UUID, password: str) -> None:
    validate_password(password)
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    with atomic(db):
        user.password_hash = get_password_hash(password)
    logger.info(f"Password reset for {user.email}")


def delete_user(db: Session, user_id: UUID, deleted_by: UUID) -> None:
    """Delete a member who has no financial history.

    Members with ledger rows or a live loan are refused; their history must be
    settled or moved first. Loans, proofs and ledger rows the account processed
    for others are kept with the actor cleared.
    """
    if user_id == deleted_by:
        raise ConflictError("Admins cannot delete their own account.")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")

    if db.query(Transaction.id).filter(Transaction.user_id == user_id).first():
        raise ConflictError("User has ledger transactions and cannot be deleted")

    live_loan = db.query(LoanRequest.id).filter(
        LoanRequest.user_id == user_id,
        LoanRequest.status.notin_(FINISHED_LOAN_STATUSES),
    ).first()
    if live_loan:
        raise ConflictError("User has an active loan and cannot be deleted")

    proofs = db.query(PaymentProof).filter(PaymentProof.user_id == user_id).all()
    file_names = [p.file_path for p in proofs]
    email = user.email

    with atomic(db):
        # Keep the printed guarantor name on other members' loans
        db.query(LoanRequest).filter(LoanRequest.guarantor_id == user_id).update(
            {LoanRequest.guarantor_id: None}, synchronize_session=False
        )
        db.query(LoanRequest).filter(LoanRequest.guarantor_2_id == user_id).update(
            {LoanRequest.guarantor_2_id: None}, synchronize_session=False
        )
        # Records this account processed or posted stay, without the actor
        actor_columns = (
            (LoanRequest, LoanRequest.processed_by),
            (PaymentProof, PaymentProof.processed_by),
            (Transaction, Transaction.created_by),
            (JobRun, JobRun.created_by),
        )
        for model, column in actor_columns:
            db.query(model).filter(column == user_id).update({column: None}, synchronize_session=False)
        db.query(LoanRequest).filter(LoanRequest.user_id == user_id).delete(synchronize_session=False)
        for proof in proofs:
            db.delete(proof)
        db.delete(user)

    for file_name in file_names:
        remove_proof_file(file_name)
    logger.info(f"User {email} ({user_id}) deleted by {deleted_by}")


# ---------------------------------------------------------------------------
# Bulk account creation
# ---------------------------------------------------------------------------

def build_bulk_email(first_name: str, last_name: str, today: date = None) -> str:
    """``<F><L><MM><YY><3 random digits>@<domain>``."""
    today = today or date.today()
    suffix = 100 + secrets.randbelow(900)
    username = f"{first_name[0].upper()}{last_name[0].upper()}{today:%m}{today:%y}{suffix}"
    return f"{username}@{settings.BULK_USER_EMAIL_DOMAIN}"


def bulk_create_users(db: Session, users: List[Dict], today: date = None) -> Dict[str, List[Dict]]:
    """Create member accounts with generated credentials.

    Each account commits on its own, so one failure does not undo the rest.
    Returns the generated credentials for successes and the reason for failures.
    """
    results = {"successes": [], "failures": []}
    for entry in users:
        first_name = (entry.get("first_name") or "").strip()
        last_name = (entry.get("last_name") or "").strip()
        full_name = f"{first_name} {last_name}".strip()
        try:
            if not first_name or not last_name:
                raise ValidationError("Each user must have a first_name and last_name.")
            email = build_bulk_email(first_name, last_name, today)
            password = generate_password()
            create_user(
                db,
                email=email,
                password=password,
                first_name=first_name,
                last_name=last_name,
                role=ProfileRole.MEMBER,
            )
            results["successes"].append({"name": full_name, "email": email, "password": password})
        except ValueError as e:
            db.rollback()
            logger.warning(f"Bulk user creation failed for {full_name!r}: {e}")
            results["failures"].append({"name": full_name, "error": str(e)})

    logger.info(
        f"Bulk user creation: {len(results['successes'])} created, {len(results['failures'])} failed"
    )
    return results



def monthly_contributions(db: Session, year: int, month: int) -> List[Dict]:
    """Paid/pending status of every member for a 1-based (year, month)."""
    start = datetime.combine(month_start(year, month), time())
    end = start + relativedelta(months=1)

    paid_ids = {
        row[0] for row in db.query(Transaction.user_id).filter(
            Transaction.type == TransactionType.DEPOSIT,
            Transaction.source.in_(CONTRIBUTION_SOURCES),
            Transaction.user_id.isnot(None),
            Transaction.created_at >= start,
            Transaction.created_at < end,
        ).distinct().all()
    }

    return [
        {
            "user_id": str(member.id),
            "full_name": member.full_name.upper(),
            "status": "paid" if member.id in paid_ids else "pending",
        }
        for member in list_members(db)
    ]
