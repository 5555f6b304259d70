from pydantic import BaseModel, EmailStr
from typing import Optional
from datetime import date, datetime


class UserRegister(BaseModel):
    email: EmailStr
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    reference_name: Optional[str] = None
    role: Optional[str] = None
    outstanding_amount: Optional[float] = None
    membership_start_date: Optional[date] = None
    created_at: Optional[datetime] = None
    last_sign_in_at: Optional[datetime] = None

    @classmethod
    def from_orm(cls, obj):
        """Convert a User (with its profile) to the response model."""
        profile = obj.profile
        return cls(
            id=str(obj.id),
            email=obj.email,
            first_name=profile.first_name if profile else None,
            last_name=profile.last_name if profile else None,
            reference_name=profile.reference_name if profile else None,
            role=profile.role.value if profile and profile.role else None,
            outstanding_amount=float(profile.outstanding_amount or 0) if profile else None,
            membership_start_date=profile.membership_start_date if profile else None,
            created_at=obj.created_at,
            last_sign_in_at=obj.last_sign_in_at,
        )

    class Config:
        from_attributes = True


class PasswordChange(BaseModel):
    current_password: str
    new_password: str
