from fastapi import APIRouter, Depends, UploadFile, File, Form
from sqlalchemy.orm import Session
from uuid import UUID
from chitfund.core.config import settings
from chitfund.db.base import get_db
from chitfund.core.dependencies import get_current_member
from chitfund.models.member import Profile
from chitfund.schemas.ledger import transaction_to_dict
from chitfund.schemas.loan import LoanRequestCreate, loan_to_dict, tier_to_dict
from chitfund.schemas.member import notification_to_dict, profile_to_dict, proof_to_dict
from chitfund.services.accounting import get_main_account
from chitfund.services.loan import (
    create_loan_request,
    eligible_tiers,
    get_loan_tiers,
    list_guaranteed_loans,
    list_member_loans,
)
from chitfund.services.member import list_members, membership_tenure_months
from chitfund.services.notification import (
    count_unread,
    list_notifications,
    mark_all_notifications_read,
    mark_notification_read,
)
from chitfund.services.proof import list_member_proofs, submit_payment_proof
from chitfund.services.transaction import list_member_transactions, list_public_transactions

router = APIRouter(prefix="/api/member", tags=["member"])


@router.get("/summary")
def get_my_summary(
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    """Own profile, what I owe, the pooled balance and the tiers I can request."""
    return {
        "profile": profile_to_dict(member),
        "outstanding_amount": float(member.outstanding_amount or 0),
        "main_account_balance": float(get_main_account(db).balance or 0),
        "tenure_months": membership_tenure_months(member),
        "eligible_tiers": [tier_to_dict(t) for t in eligible_tiers(db, member)],
    }


@router.get("/tiers")
def get_tiers(
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    return [tier_to_dict(t) for t in get_loan_tiers(db)]


@router.get("/members")
def get_fellow_members(
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    """Members who can be picked as guarantors."""
    return [
        {"id": str(p.id), "full_name": p.full_name}
        for p in list_members(db)
        if p.id != member.id
    ]


@router.post("/loans")
def request_loan(
    loan_data: LoanRequestCreate,
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    loan = create_loan_request(
        db,
        member,
        amount=loan_data.amount,
        reason=loan_data.reason,
        guarantor_id=loan_data.guarantor_id,
        guarantor_2_id=loan_data.guarantor_2_id,
    )
    return {"message": "Loan request submitted", "loan": loan_to_dict(loan)}


@router.get("/loans")
def get_my_loans(
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    return [loan_to_dict(loan) for loan in list_member_loans(db, member.id)]


@router.get("/loans/guaranteed")
def get_guaranteed_loans(
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    return [loan_to_dict(loan) for loan in list_guaranteed_loans(db, member.id)]


@router.post("/proofs")
def upload_payment_proof(
    file: UploadFile = File(...),
    year: int = Form(...),
    month: int = Form(...),
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    """Submit proof of a monthly contribution (month is 1-12)."""
    # One byte past the limit is enough to reject an oversized upload
    content = file.file.read(settings.MAX_PROOF_UPLOAD_BYTES + 1)
    proof = submit_payment_proof(db, member, year, month, file.filename, content)
    return {"message": "Proof submitted successfully", "proof": proof_to_dict(proof)}


@router.get("/proofs")
def get_my_proofs(
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    return [proof_to_dict(p) for p in list_member_proofs(db, member.id)]


@router.get("/transactions")
def get_my_transactions(
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    return [transaction_to_dict(t) for t in list_member_transactions(db, member.id)]


@router.get("/public-transactions")
def get_public_transactions(
    limit: int = 50,
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    """Shared-account entries (loan payouts, balance adjustments)."""
    return [transaction_to_dict(t) for t in list_public_transactions(db, limit=limit)]


@router.get("/notifications")
def get_my_notifications(
    unread_only: bool = False,
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    return [notification_to_dict(n) for n in list_notifications(db, member.id, unread_only=unread_only)]


@router.get("/notifications/unread-count")
def get_unread_count(
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    return {"count": count_unread(db, member.id)}


@router.post("/notifications/{notification_id}/read")
def read_notification(
    notification_id: UUID,
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    notification = mark_notification_read(db, notification_id, member.id)
    return notification_to_dict(notification)


@router.post("/notifications/read-all")
def read_all_notifications(
    member: Profile = Depends(get_current_member),
    db: Session = Depends(get_db)
):
    return {"updated": mark_all_notifications_read(db, member.id)}
