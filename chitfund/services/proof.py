"""Contribution proof uploads and their review."""
import logging
import time
from datetime import date, datetime
from pathlib import Path
from typing import List
from uuid import UUID

from sqlalchemy.orm import Session

from chitfund.core.config import PAYMENT_PROOFS_DIR, settings
from chitfund.core.errors import NotFoundError, PreconditionError, ValidationError
from chitfund.db.base import atomic
from chitfund.models.member import Profile
from chitfund.models.proof import PaymentProof, PaymentProofStatus
from chitfund.services.accounting import month_start, post_contribution
from chitfund.services.notification import create_notification

logger = logging.getLogger(__name__)

ALLOWED_PROOF_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".pdf"}
CONTRIBUTE_LINK = "/contribute"


def format_month(value: date) -> str:
    return value.strftime("%B %Y")


# ---------------------------------------------------------------------------
# File storage
# ---------------------------------------------------------------------------

def store_proof_file(user_id: UUID, filename: str, content: bytes) -> str:
    """Write an uploaded proof to disk and return its stored file name."""
    ext = Path(filename or "").suffix.lower()
    if ext not in ALLOWED_PROOF_EXTENSIONS:
        raise ValidationError(
            f"Unsupported file type. Allowed: {', '.join(sorted(e.lstrip('.') for e in ALLOWED_PROOF_EXTENSIONS))}"
        )
    if not content:
        raise ValidationError("Uploaded file is empty")
    if len(content) > settings.MAX_PROOF_UPLOAD_BYTES:
        raise ValidationError(
            f"File is too large. Maximum size is {settings.MAX_PROOF_UPLOAD_BYTES // (1024 * 1024)} MB"
        )

    PAYMENT_PROOFS_DIR.mkdir(parents=True, exist_ok=True)
    file_name = f"{user_id}-{int(time.time() * 1000)}{ext}"
    (PAYMENT_PROOFS_DIR / file_name).write_bytes(content)
    logger.info(f"Stored payment proof file {file_name} ({len(content)} bytes)")
    return file_name


def resolve_proof_file(file_name: str) -> Path:
    """Absolute path of a stored proof; rejects anything outside the proof directory."""
    safe_name = Path(file_name).name
    if not safe_name or safe_name != file_name:
        raise NotFoundError("Proof file not found")
    path = PAYMENT_PROOFS_DIR / safe_name
    if not path.is_file():
        raise NotFoundError("Proof file not found")
    return path


def remove_proof_file(file_name: str) -> bool:
    """Delete a stored proof. Failures are logged, never raised."""
    if not file_name:
        return False
    path = PAYMENT_PROOFS_DIR / Path(file_name).name
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        logger.warning(f"Payment proof file already gone: {file_name}")
    except OSError as e:
        logger.error(f"Failed to delete payment proof file {file_name}: {e}")
    return False


def proof_file_url(file_name: str) -> str:
    return f"{settings.PROOF_FILES_BASE_URL}/{file_name}"


# ---------------------------------------------------------------------------
# Proof records
# ---------------------------------------------------------------------------

def submit_payment_proof(
    db: Session,
    member: Profile,
    year: int,
    month: int,
    filename: str,
    content: bytes,
) -> PaymentProof:
    """Store the upload and record a pending proof for the month."""
    contribution_month = month_start(year, month)
    file_name = store_proof_file(member.id, filename, content)

    proof = PaymentProof(
        user_id=member.id,
        user_full_name=member.full_name,
        contribution_month=contribution_month,
        file_path=file_name,
        status=PaymentProofStatus.PENDING,
    )
    try:
        with atomic(db):
            db.add(proof)
    except Exception:
        # Don't leave an orphaned upload behind
        remove_proof_file(file_name)
        raise

    db.refresh(proof)
    logger.info(f"Payment proof {proof.id} submitted by {member.id} for {format_month(contribution_month)}")
    return proof


def get_payment_proof(db: Session, proof_id: UUID, for_update: bool = False) -> PaymentProof:
    query = db.query(PaymentProof).filter(PaymentProof.id == proof_id)
    if for_update:
        query = query.with_for_update()
    proof = query.first()
    if not proof:
        raise NotFoundError("Payment proof not found")
    return proof


def process_payment_proof(
    db: Session,
    proof_id: UUID,
    status: PaymentProofStatus,
    processed_by: UUID,
    notes: str = None,
) -> PaymentProof:
    """Approve (posting the contribution) or reject a pending proof.

    The stored file is removed only after the database work commits.
    """
    if status not in (PaymentProofStatus.APPROVED, PaymentProofStatus.REJECTED):
        raise ValidationError("Status must be 'approved' or 'rejected'")
    notes = (notes or "").strip() or None
    if status == PaymentProofStatus.REJECTED and not notes:
        raise ValidationError("Rejection notes are required.")

    with atomic(db):
        proof = get_payment_proof(db, proof_id, for_update=True)
        if proof.status != PaymentProofStatus.PENDING:
            raise PreconditionError("This proof has already been processed.")

        member = db.query(Profile).filter(Profile.id == proof.user_id).first()
        if member is None:
            raise NotFoundError("Member profile not found")

        month_label = format_month(proof.contribution_month)
        if status == PaymentProofStatus.APPROVED:
            post_contribution(
                db,
                member,
                proof.contribution_month,
                created_by=processed_by,
                source_ref=str(proof.id),
            )
            create_notification(
                db,
                member.id,
                "Contribution Approved",
                f"Your contribution for {month_label} has been approved.",
                link=CONTRIBUTE_LINK,
            )
        else:
            create_notification(
                db,
                member.id,
                "Contribution Rejected",
                f"Your contribution for {month_label} was rejected. Reason: {notes}",
                link=CONTRIBUTE_LINK,
            )

        proof.status = status
        proof.notes = notes
        proof.processed_by = processed_by
        proof.processed_at = datetime.utcnow()
        file_name = proof.file_path

    remove_proof_file(file_name)
    db.refresh(proof)
    logger.info(f"Payment proof {proof.id} {status.value} by {processed_by}")
    return proof


def delete_payment_proof(db: Session, proof_id: UUID) -> None:
    """Remove a proof record and its file. No ledger effect, no notification."""
    with atomic(db):
        proof = get_payment_proof(db, proof_id)
        file_name = proof.file_path
        db.delete(proof)

    remove_proof_file(file_name)
    logger.info(f"Payment proof {proof_id} deleted")


def list_pending_proofs(db: Session) -> List[PaymentProof]:
    return db.query(PaymentProof).filter(
        PaymentProof.status == PaymentProofStatus.PENDING
    ).order_by(PaymentProof.created_at.asc()).all()


def list_member_proofs(db: Session, user_id: UUID) -> List[PaymentProof]:
    return db.query(PaymentProof).filter(
        PaymentProof.user_id == user_id
    ).order_by(PaymentProof.contribution_month.desc(), PaymentProof.created_at.desc()).all()
