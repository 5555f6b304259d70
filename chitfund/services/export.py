"""CSV exports for admins."""
import csv
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from io import StringIO
from typing import Iterable, List, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from chitfund.models.ledger import Transaction
from chitfund.models.loan import LoanRequest
from chitfund.models.user import User
from chitfund.services.member import get_profile

USER_COLUMNS: List[Tuple[str, str]] = [
    ("id", "User ID"),
    ("email", "Email"),
    ("first_name", "First Name"),
    ("last_name", "Last Name"),
    ("role", "Role"),
    ("outstanding_amount", "Outstanding Amount"),
    ("reference_name", "Reference Name"),
    ("membership_start_date", "Membership Start Date"),
    ("last_sign_in_at", "Last Sign In"),
    ("created_at", "Created At"),
]

TRANSACTION_COLUMNS: List[Tuple[str, str]] = [
    ("id", "Transaction ID"),
    ("created_at", "Date"),
    ("user_id", "User ID"),
    ("user_full_name", "User Name"),
    ("type", "Type"),
    ("source", "Source"),
    ("amount", "Amount"),
    ("description", "Description"),
]

LOAN_COLUMNS: List[Tuple[str, str]] = [
    ("id", "Loan ID"),
    ("user_full_name", "User Name"),
    ("user_email", "User Email"),
    ("amount", "Amount"),
    ("status", "Status"),
    ("created_at", "Issue Date"),
    ("due_date", "Due Date"),
    ("processed_at", "Processed Date"),
    ("guarantor_name", "Guarantor Name"),
    ("guarantor_2_name", "Second Guarantor Name"),
    ("reason", "Reason"),
]

LOAN_HISTORY_COLUMNS: List[Tuple[str, str]] = [
    ("id", "Loan ID"),
    ("created_at", "Issue Date"),
    ("amount", "Amount"),
    ("reason", "Reason"),
    ("status", "Status"),
    ("due_date", "Due Date"),
    ("processed_at", "Processed Date"),
]


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, UUID):
        return str(value)
    return str(value)


def to_csv(rows: Iterable[dict], columns: List[Tuple[str, str]]) -> str:
    """Header of labels then one line per row; csv module handles RFC 4180 quoting."""
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow([label for _, label in columns])
    for row in rows:
        writer.writerow([_cell(row.get(key)) for key, _ in columns])
    return buffer.getvalue()


def export_filename(kind: str, today: date = None) -> str:
    today = today or date.today()
    return f"{kind}_export_{today.isoformat()}.csv"


def _loan_row(loan: LoanRequest) -> dict:
    borrower = loan.borrower
    return {
        "id": loan.id,
        "user_full_name": borrower.full_name if borrower else "",
        "user_email": borrower.user.email if borrower and borrower.user else "",
        "amount": loan.amount,
        "status": loan.status,
        "created_at": loan.created_at,
        "due_date": loan.due_date,
        "processed_at": loan.processed_at,
        "guarantor_name": loan.guarantor_name,
        "guarantor_2_name": loan.guarantor_2_name,
        "reason": loan.reason,
    }


def export_users(db: Session) -> str:
    rows = []
    for user in db.query(User).order_by(User.created_at.asc()).all():
        profile = user.profile
        rows.append({
            "id": user.id,
            "email": user.email,
            "first_name": profile.first_name if profile else "",
            "last_name": profile.last_name if profile else "",
            "role": profile.role if profile else "member",
            "outstanding_amount": profile.outstanding_amount if profile else Decimal("0"),
            "reference_name": profile.reference_name if profile else "",
            "membership_start_date": profile.membership_start_date if profile else None,
            "last_sign_in_at": user.last_sign_in_at or "Never",
            "created_at": user.created_at,
        })
    return to_csv(rows, USER_COLUMNS)


def export_transactions(db: Session) -> str:
    rows = [
        {key: getattr(txn, key) for key, _ in TRANSACTION_COLUMNS}
        for txn in db.query(Transaction).order_by(Transaction.created_at.desc()).all()
    ]
    return to_csv(rows, TRANSACTION_COLUMNS)


def export_loans(db: Session) -> str:
    loans = db.query(LoanRequest).order_by(LoanRequest.created_at.desc()).all()
    return to_csv([_loan_row(loan) for loan in loans], LOAN_COLUMNS)


def export_user_loan_history(db: Session, user_id: UUID) -> str:
    get_profile(db, user_id)
    loans = db.query(LoanRequest).filter(
        LoanRequest.user_id == user_id
    ).order_by(LoanRequest.created_at.desc()).all()
    return to_csv([_loan_row(loan) for loan in loans], LOAN_HISTORY_COLUMNS)
