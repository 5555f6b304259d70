from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from decimal import Decimal
from datetime import date
from chitfund.models.member import Profile, ProfileRole
from chitfund.models.proof import PaymentProof, PaymentProofStatus
from chitfund.models.system import Notification
from chitfund.services.proof import proof_file_url


class AdminUserCreate(BaseModel):
    email: EmailStr
    password: str
    first_name: str
    last_name: str
    role: ProfileRole = ProfileRole.MEMBER
    membership_start_date: Optional[date] = None


class BulkUserEntry(BaseModel):
    first_name: str
    last_name: str


class BulkUserCreate(BaseModel):
    users: List[BulkUserEntry] = Field(..., min_length=1)


class UserEdit(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    reference_name: Optional[str] = None
    role: Optional[ProfileRole] = None
    membership_start_date: Optional[date] = None
    outstanding_amount: Optional[Decimal] = None


class PasswordSet(BaseModel):
    password: str


class ProofDecision(BaseModel):
    status: PaymentProofStatus
    notes: Optional[str] = None


def profile_to_dict(profile: Profile) -> dict:
    return {
        "id": str(profile.id),
        "email": profile.user.email if profile.user else None,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "full_name": profile.full_name,
        "reference_name": profile.reference_name,
        "role": profile.role.value,
        "outstanding_amount": float(profile.outstanding_amount or 0),
        "membership_start_date": profile.membership_start_date.isoformat() if profile.membership_start_date else None,
    }


def proof_to_dict(proof: PaymentProof) -> dict:
    return {
        "id": str(proof.id),
        "user_id": str(proof.user_id),
        "user_full_name": proof.user_full_name,
        "contribution_month": proof.contribution_month.isoformat(),
        "file_url": proof_file_url(proof.file_path) if proof.status == PaymentProofStatus.PENDING else None,
        "status": proof.status.value,
        "notes": proof.notes,
        "processed_at": proof.processed_at.isoformat() if proof.processed_at else None,
        "created_at": proof.created_at.isoformat() if proof.created_at else None,
    }


def notification_to_dict(notification: Notification) -> dict:
    return {
        "id": str(notification.id),
        "title": notification.title,
        "message": notification.message,
        "link": notification.link,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }
