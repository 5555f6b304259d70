"""Tests for CSV exports."""
import csv
from datetime import date
from io import StringIO

from chitfund.models import LoanStatus, TransactionType
from chitfund.services.export import (
    LOAN_COLUMNS,
    TRANSACTION_COLUMNS,
    USER_COLUMNS,
    export_filename,
    export_loans,
    export_transactions,
    export_user_loan_history,
    export_users,
    to_csv,
)
from chitfund.services.loan import create_loan
from chitfund.services.transaction import create_manual_transaction


def _read(content: str):
    return list(csv.reader(StringIO(content)))


class TestCsvWriter:
    """Quoting and layout."""

    def test_header_uses_labels(self):
        rows = _read(to_csv([], [("a", "Alpha"), ("b", "Beta")]))
        assert rows == [["Alpha", "Beta"]]

    def test_commas_quotes_and_newlines_survive(self):
        tricky = 'Paid "cash", at the meeting\nsecond line'
        content = to_csv([{"a": tricky, "b": None}], [("a", "Alpha"), ("b", "Beta")])
        assert _read(content)[1] == [tricky, ""]

    def test_filename_contains_date(self):
        assert export_filename("loans", date(2026, 3, 9)) == "loans_export_2026-03-09.csv"


class TestExports:

    def test_users_export(self, db, admin_user, member_user):
        rows = _read(export_users(db))
        assert rows[0] == [label for _, label in USER_COLUMNS]
        emails = {row[1] for row in rows[1:]}
        assert emails == {"admin@withusfs.com", "member@withusfs.com"}
        member_row = next(row for row in rows[1:] if row[1] == "member@withusfs.com")
        assert member_row[4] == "member"
        assert member_row[5] == "0.00"
        assert member_row[8] == "Never"

    def test_transactions_export_keeps_description(self, db, admin_user, member_user):
        create_manual_transaction(
            db, member_user.id, TransactionType.DEPOSIT, 120, admin_user.id,
            description='Refund, "late" payment',
        )
        rows = _read(export_transactions(db))
        assert rows[0] == [label for _, label in TRANSACTION_COLUMNS]
        assert len(rows) == 2
        record = dict(zip(rows[0], rows[1]))
        assert record["Description"] == 'Refund, "late" payment'
        assert record["Amount"] == "120.00"
        assert record["Type"] == "deposit"
        assert record["Source"] == "manual"
        assert record["User Name"] == "Mary Member"

    def test_loans_export(self, db, tiers, admin_user, member_user, guarantor_user):
        create_loan(
            db, member_user.id, 10000, LoanStatus.CLOSED, date(2025, 2, 1), admin_user.id,
            reason="Roof repair", guarantor_id=guarantor_user.id,
        )
        rows = _read(export_loans(db))
        assert rows[0] == [label for _, label in LOAN_COLUMNS]
        record = dict(zip(rows[0], rows[1]))
        assert record["User Email"] == "member@withusfs.com"
        assert record["Status"] == "closed"
        assert record["Guarantor Name"] == "Gary Guarantor"
        assert record["Second Guarantor Name"] == ""
        assert record["Issue Date"].startswith("2025-02-01")

    def test_user_loan_history_only_that_member(self, db, tiers, admin_user, member_user, guarantor_user):
        create_loan(db, member_user.id, 5000, LoanStatus.CLOSED, date(2025, 2, 1), admin_user.id)
        create_loan(db, guarantor_user.id, 5000, LoanStatus.PENDING, date(2025, 3, 1), admin_user.id)
        rows = _read(export_user_loan_history(db, member_user.id))
        assert len(rows) == 2
        assert rows[1][4] == "closed"


class TestExportApi:

    def test_csv_response_headers(self, client, db, admin_headers):
        response = client.get("/api/admin/exports/users", headers=admin_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="users_export_')
        assert disposition.endswith('.csv"')

    def test_members_cannot_export(self, client, db, member_headers):
        response = client.get("/api/admin/exports/loans", headers=member_headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "You must be an admin to perform this action."
