from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from uuid import UUID
from chitfund.db.base import get_db
from chitfund.core.audit import audit_user_action
from chitfund.core.dependencies import get_current_member, require_admin
from chitfund.models.member import Profile
from chitfund.models.proof import PaymentProof
from chitfund.models.user import User
from chitfund.schemas.member import ProofDecision, proof_to_dict
from chitfund.services.proof import (
    delete_payment_proof,
    list_pending_proofs,
    process_payment_proof,
    resolve_proof_file,
)
import mimetypes

router = APIRouter(prefix="/api/proofs", tags=["proofs"])


@router.get("/pending")
def get_pending_proofs(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Proofs awaiting review, oldest first (Admin only)."""
    return [proof_to_dict(p) for p in list_pending_proofs(db)]


@router.post("/{proof_id}/process")
def process_proof(
    proof_id: UUID,
    decision: ProofDecision,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    proof = process_payment_proof(db, proof_id, decision.status, current_user.id, notes=decision.notes)
    audit_user_action(current_user, "Process Payment Proof", f"proof_id={proof_id} status={proof.status.value}")
    return {"message": f"Proof successfully {proof.status.value}.", "proof": proof_to_dict(proof)}


@router.delete("/{proof_id}")
def delete_proof(
    proof_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    delete_payment_proof(db, proof_id)
    audit_user_action(current_user, "Delete Payment Proof", f"proof_id={proof_id}")
    return {"message": "Payment proof deleted"}


@router.get("/files/{file_name}")
def download_proof_file(
    file_name: str,
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    """Serve a stored proof to an admin or to the member who uploaded it."""
    proof = db.query(PaymentProof).filter(PaymentProof.file_path == file_name).first()
    if not proof:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Proof file not found")
    if not member.is_admin and proof.user_id != member.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to view this file")

    path = resolve_proof_file(file_name)
    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileResponse(path=str(path), filename=path.name, media_type=media_type)
