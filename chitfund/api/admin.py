from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID
from chitfund.db.base import get_db
from chitfund.core.audit import audit_user_action
from chitfund.core.dependencies import require_admin
from chitfund.models.user import User
from chitfund.schemas.auth import UserResponse
from chitfund.schemas.ledger import transaction_to_dict
from chitfund.schemas.member import AdminUserCreate, BulkUserCreate, PasswordSet, UserEdit, profile_to_dict
from chitfund.services.auth import create_user
from chitfund.services.member import (
    DEFAULT_PAGE_SIZE,
    bulk_create_users,
    delete_user,
    edit_user,
    get_profile,
    list_members,
    list_users,
    monthly_contributions,
    set_user_password,
)
from chitfund.services.transaction import list_member_transactions

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/users")
def get_users(
    page: int = 1,
    per_page: int = DEFAULT_PAGE_SIZE,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Paginated accounts with their profiles (Admin only)."""
    users, total = list_users(db, page=page, per_page=per_page)
    return {
        "users": [UserResponse.from_orm(u).model_dump(mode="json") for u in users],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


@router.get("/members")
def get_members(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return [profile_to_dict(p) for p in list_members(db, include_admins=True)]


@router.post("/users", response_model=UserResponse)
def create_user_account(
    user_data: AdminUserCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    user = create_user(
        db,
        email=user_data.email,
        password=user_data.password,
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        role=user_data.role,
        membership_start_date=user_data.membership_start_date,
    )
    audit_user_action(current_user, "Create User", f"email={user.email} role={user_data.role.value}")
    return UserResponse.from_orm(user)


@router.post("/users/bulk")
def bulk_create_user_accounts(
    payload: BulkUserCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Create member accounts with generated emails and passwords."""
    results = bulk_create_users(db, [u.model_dump() for u in payload.users])
    audit_user_action(
        current_user, "Bulk Create Users",
        f"created={len(results['successes'])} failed={len(results['failures'])}",
    )
    return results


@router.put("/users/{user_id}")
def update_user(
    user_id: UUID,
    changes: UserEdit,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    updates = changes.model_dump(exclude_unset=True)
    profile = edit_user(db, user_id, updates, edited_by=current_user.id)
    audit_user_action(current_user, "Edit User", f"user_id={user_id} fields={','.join(sorted(updates))}")
    return profile_to_dict(profile)


@router.post("/users/{user_id}/password")
def set_password(
    user_id: UUID,
    payload: PasswordSet,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    set_user_password(db, user_id, payload.password)
    audit_user_action(current_user, "Set Password", f"user_id={user_id}")
    return {"message": "Password updated successfully"}


@router.delete("/users/{user_id}")
def remove_user(
    user_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    delete_user(db, user_id, deleted_by=current_user.id)
    audit_user_action(current_user, "Delete User", f"user_id={user_id}")
    return {"message": "User deleted successfully"}


@router.get("/users/{user_id}/transactions")
def get_user_transactions(
    user_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    profile = get_profile(db, user_id)
    return {
        "member": profile_to_dict(profile),
        "transactions": [transaction_to_dict(t) for t in list_member_transactions(db, user_id)],
    }


@router.get("/contributions/monthly")
def get_monthly_contributions(
    year: int,
    month: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Paid/pending list for a month (month is 1-12)."""
    return {"contribution_list": monthly_contributions(db, year, month)}
