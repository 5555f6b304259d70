from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session
from uuid import UUID
from chitfund.db.base import get_db
from chitfund.core.audit import audit_user_action
from chitfund.core.dependencies import require_admin
from chitfund.models.user import User
from chitfund.services.export import (
    export_filename,
    export_loans,
    export_transactions,
    export_user_loan_history,
    export_users,
)

router = APIRouter(prefix="/api/admin/exports", tags=["admin-exports"])


def _csv_response(content: str, kind: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(kind)}"'},
    )


@router.get("/users")
def export_users_csv(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    audit_user_action(current_user, "Export Users")
    return _csv_response(export_users(db), "users")


@router.get("/transactions")
def export_transactions_csv(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    audit_user_action(current_user, "Export Transactions")
    return _csv_response(export_transactions(db), "transactions")


@router.get("/loans")
def export_loans_csv(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    audit_user_action(current_user, "Export Loans")
    return _csv_response(export_loans(db), "loans")


@router.get("/users/{user_id}/loans")
def export_user_loan_history_csv(
    user_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    content = export_user_loan_history(db, user_id)
    audit_user_action(current_user, "Export Loan History", f"user_id={user_id}")
    return _csv_response(content, "loan_history")
