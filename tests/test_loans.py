"""Tests for the loan lifecycle and its ledger effects."""
from datetime import date, datetime
from decimal import Decimal

import pytest

from chitfund.core.errors import PreconditionError, ValidationError
from chitfund.models import LoanRequest, LoanStatus, Notification, Transaction
from chitfund.services.accounting import compute_main_balance, compute_member_outstanding, get_main_account
from chitfund.services.loan import (
    close_loan,
    create_loan,
    create_loan_request,
    delete_loan_request,
    disburse_loan,
    edit_loan,
    eligible_tiers,
    monthly_repayments,
    process_loan_request,
)
from chitfund.services.transaction import set_main_balance


@pytest.fixture
def funded(db, admin_user):
    """Main account seeded with 100,000."""
    set_main_balance(db, 100000, admin_user.id)
    return get_main_account(db)


def _titles(db, user_id):
    return [n.title for n in db.query(Notification).filter(Notification.user_id == user_id).all()]


class TestLoanRequest:
    """Member loan applications."""

    def test_starter_tier_needs_no_guarantor(self, db, tiers, member_user):
        loan = create_loan_request(db, member_user.profile, 5000, reason="School fees")
        assert loan.status == LoanStatus.PENDING
        assert loan.amount == Decimal("5000.00")
        assert loan.guarantor_id is None

    def test_amount_must_match_a_tier(self, db, tiers, member_user):
        with pytest.raises(ValidationError):
            create_loan_request(db, member_user.profile, 7000)

    def test_guarantor_required_above_starter_tier(self, db, tiers, member_user):
        with pytest.raises(ValidationError, match="guarantor is required"):
            create_loan_request(db, member_user.profile, 10000)

    def test_borrower_cannot_guarantee_own_loan(self, db, tiers, member_user):
        with pytest.raises(ValidationError, match="own guarantor"):
            create_loan_request(db, member_user.profile, 10000, guarantor_id=member_user.id)

    def test_top_tier_needs_two_distinct_guarantors(self, db, tiers, member_user, guarantor_user):
        with pytest.raises(ValidationError, match="Two guarantors"):
            create_loan_request(db, member_user.profile, 100000, guarantor_id=guarantor_user.id)
        with pytest.raises(ValidationError, match="different members"):
            create_loan_request(
                db, member_user.profile, 100000,
                guarantor_id=guarantor_user.id, guarantor_2_id=guarantor_user.id,
            )

    def test_top_tier_with_two_guarantors(self, db, tiers, member_user, guarantor_user, second_guarantor_user):
        loan = create_loan_request(
            db, member_user.profile, 100000,
            guarantor_id=guarantor_user.id, guarantor_2_id=second_guarantor_user.id,
        )
        assert loan.guarantor_name == "Gary Guarantor"
        assert loan.guarantor_2_name == "Sam Second"

    def test_second_guarantor_dropped_below_top_tier(self, db, tiers, member_user, guarantor_user, second_guarantor_user):
        loan = create_loan_request(
            db, member_user.profile, 10000,
            guarantor_id=guarantor_user.id, guarantor_2_id=second_guarantor_user.id,
        )
        assert loan.guarantor_2_id is None

    def test_tenure_limits_tier(self, db, tiers, member_user):
        profile = member_user.profile
        profile.membership_start_date = date(2026, 1, 1)
        db.commit()
        with pytest.raises(ValidationError, match="months of membership"):
            create_loan_request(db, profile, 25000, today=date(2026, 4, 1))

    def test_eligible_tiers_follow_tenure(self, db, tiers, member_user):
        profile = member_user.profile
        profile.membership_start_date = date(2025, 10, 1)
        db.commit()
        amounts = [t.amount for t in eligible_tiers(db, profile, today=date(2026, 5, 1))]
        assert amounts == [Decimal("5000.00"), Decimal("10000.00")]


class TestLoanTransitions:
    """Admin state changes."""

    def test_approve_sets_due_date_and_notifies(self, db, tiers, admin_user, member_user):
        loan = create_loan_request(db, member_user.profile, 10000, guarantor_id=admin_user.id)
        loan = process_loan_request(
            db, loan.id, LoanStatus.APPROVED, admin_user.id, now=datetime(2026, 3, 15, 10, 0),
        )
        assert loan.status == LoanStatus.APPROVED
        assert loan.due_date == datetime(2026, 5, 15, 10, 0)
        assert "Loan Approved" in _titles(db, member_user.id)

    def test_reject_requires_reason(self, db, tiers, admin_user, member_user):
        loan = create_loan_request(db, member_user.profile, 5000)
        with pytest.raises(ValidationError, match="Rejection reason is required."):
            process_loan_request(db, loan.id, LoanStatus.REJECTED, admin_user.id, rejection_reason="  ")

    def test_reject_records_reason(self, db, tiers, admin_user, member_user):
        loan = create_loan_request(db, member_user.profile, 5000)
        loan = process_loan_request(db, loan.id, LoanStatus.REJECTED, admin_user.id, rejection_reason="Too soon")
        assert loan.rejection_reason == "Too soon"
        assert "Loan Rejected" in _titles(db, member_user.id)

    def test_cannot_process_twice(self, db, tiers, admin_user, member_user):
        loan = create_loan_request(db, member_user.profile, 5000)
        process_loan_request(db, loan.id, LoanStatus.APPROVED, admin_user.id)
        with pytest.raises(PreconditionError, match="already been processed"):
            process_loan_request(db, loan.id, LoanStatus.APPROVED, admin_user.id)

    def test_cannot_disburse_pending_loan(self, db, tiers, admin_user, member_user, funded):
        loan = create_loan_request(db, member_user.profile, 5000)
        with pytest.raises(PreconditionError, match="not in an approved state"):
            disburse_loan(db, loan.id, admin_user.id)
        assert db.query(Transaction).filter(Transaction.source_ref == str(loan.id)).count() == 0

    def test_cannot_close_approved_loan(self, db, tiers, admin_user, member_user):
        loan = create_loan_request(db, member_user.profile, 5000)
        process_loan_request(db, loan.id, LoanStatus.APPROVED, admin_user.id)
        with pytest.raises(PreconditionError):
            close_loan(db, loan.id, admin_user.id)


class TestDisbursement:
    """Disbursement is the only transition with balance effects."""

    def test_disburse_posts_two_rows(self, db, tiers, admin_user, member_user, funded):
        loan = create_loan_request(db, member_user.profile, 5000)
        process_loan_request(db, loan.id, LoanStatus.APPROVED, admin_user.id)
        loan = disburse_loan(db, loan.id, admin_user.id)

        assert loan.status == LoanStatus.IN_PROCESS
        rows = db.query(Transaction).filter(Transaction.source_ref == str(loan.id)).all()
        assert len(rows) == 2
        assert all(row.amount == Decimal("5000.00") for row in rows)

        personal = next(r for r in rows if r.user_id is not None)
        public = next(r for r in rows if r.user_id is None)
        assert personal.description == "Loan of $5,000.00 disbursed. Total outstanding: $5,250.00."
        assert public.description == "Loan"
        assert public.user_full_name == "Mary Member"

        db.refresh(member_user.profile)
        assert member_user.profile.outstanding_amount == Decimal("5250.00")
        assert get_main_account(db).balance == Decimal("95000.00")
        assert "Loan Disbursed" in _titles(db, member_user.id)

    def test_cached_balances_match_ledger(self, db, tiers, admin_user, member_user, funded):
        loan = create_loan_request(db, member_user.profile, 5000)
        process_loan_request(db, loan.id, LoanStatus.APPROVED, admin_user.id)
        disburse_loan(db, loan.id, admin_user.id)

        db.refresh(member_user.profile)
        assert compute_member_outstanding(db, member_user.id) == member_user.profile.outstanding_amount
        assert compute_main_balance(db) == get_main_account(db).balance

    def test_second_disburse_refused(self, db, tiers, admin_user, member_user, funded):
        loan = create_loan_request(db, member_user.profile, 5000)
        process_loan_request(db, loan.id, LoanStatus.APPROVED, admin_user.id)
        disburse_loan(db, loan.id, admin_user.id)
        with pytest.raises(PreconditionError):
            disburse_loan(db, loan.id, admin_user.id)
        assert db.query(Transaction).filter(Transaction.source_ref == str(loan.id)).count() == 2

    def test_failure_after_posting_rolls_everything_back(
        self, db, tiers, admin_user, member_user, funded, monkeypatch
    ):
        loan = create_loan_request(db, member_user.profile, 5000)
        process_loan_request(db, loan.id, LoanStatus.APPROVED, admin_user.id)
        rows_before = db.query(Transaction).count()

        def broken_notification(*args, **kwargs):
            raise RuntimeError("notification store unavailable")

        monkeypatch.setattr("chitfund.services.loan.create_notification", broken_notification)
        with pytest.raises(RuntimeError):
            disburse_loan(db, loan.id, admin_user.id)

        db.expire_all()
        assert db.query(LoanRequest).filter(LoanRequest.id == loan.id).one().status == LoanStatus.APPROVED
        assert db.query(Transaction).count() == rows_before
        assert db.query(Transaction).filter(Transaction.source_ref == str(loan.id)).count() == 0
        assert member_user.profile.outstanding_amount == Decimal("0.00")
        assert get_main_account(db).balance == Decimal("100000.00")
        assert "Loan Disbursed" not in _titles(db, member_user.id)

    def test_close_has_no_balance_effect(self, db, tiers, admin_user, member_user, funded):
        loan = create_loan_request(db, member_user.profile, 5000)
        process_loan_request(db, loan.id, LoanStatus.APPROVED, admin_user.id)
        disburse_loan(db, loan.id, admin_user.id)
        loan = close_loan(db, loan.id, admin_user.id)

        assert loan.status == LoanStatus.CLOSED
        db.refresh(member_user.profile)
        assert member_user.profile.outstanding_amount == Decimal("5250.00")
        assert "Loan Closed" in _titles(db, member_user.id)


class TestHistoricalLoans:
    """Admin entry of loans issued outside the system."""

    def test_in_process_loan_posts_dated_rows(self, db, tiers, admin_user, member_user, guarantor_user):
        loan = create_loan(
            db, member_user.id, 10000, LoanStatus.IN_PROCESS, date(2025, 6, 10), admin_user.id,
            guarantor_id=guarantor_user.id,
        )
        rows = db.query(Transaction).filter(Transaction.source_ref == str(loan.id)).all()
        assert len(rows) == 2
        assert all(row.created_at == datetime(2025, 6, 10) for row in rows)
        assert loan.due_date == datetime(2025, 8, 10)

        db.refresh(member_user.profile)
        assert member_user.profile.outstanding_amount == Decimal("10500.00")
        assert get_main_account(db).balance == Decimal("-10000.00")

    def test_pending_loan_posts_nothing(self, db, tiers, admin_user, member_user):
        loan = create_loan(db, member_user.id, 5000, LoanStatus.PENDING, date(2025, 6, 10), admin_user.id)
        assert loan.due_date is None
        assert db.query(Transaction).count() == 0

    def test_explicit_due_date_before_issue_refused(self, db, tiers, admin_user, member_user):
        with pytest.raises(ValidationError):
            create_loan(
                db, member_user.id, 5000, LoanStatus.APPROVED, date(2025, 6, 10), admin_user.id,
                due_date=date(2025, 6, 1),
            )

    def test_edit_never_touches_balances(self, db, tiers, admin_user, member_user):
        loan = create_loan(db, member_user.id, 5000, LoanStatus.CLOSED, date(2025, 1, 5), admin_user.id)
        loan = edit_loan(db, loan.id, {"reason": "Corrected", "due_date": date(2025, 3, 1)}, admin_user.id)
        assert loan.reason == "Corrected"
        assert loan.due_date == datetime(2025, 3, 1)
        db.refresh(member_user.profile)
        assert member_user.profile.outstanding_amount == Decimal("5250.00")

    def test_delete_keeps_ledger_rows(self, db, tiers, admin_user, member_user):
        loan = create_loan(db, member_user.id, 5000, LoanStatus.IN_PROCESS, date(2025, 1, 5), admin_user.id)
        loan_id = loan.id
        previous = delete_loan_request(db, loan_id)

        assert previous == LoanStatus.IN_PROCESS
        assert db.query(LoanRequest).filter(LoanRequest.id == loan_id).count() == 0
        assert db.query(Transaction).filter(Transaction.source_ref == str(loan_id)).count() == 2


class TestMonthlyRepayments:

    def test_lists_disbursed_loans_due_in_month(self, db, tiers, admin_user, member_user, guarantor_user):
        create_loan(
            db, member_user.id, 10000, LoanStatus.IN_PROCESS, date(2025, 6, 10), admin_user.id,
            guarantor_id=guarantor_user.id,
        )
        create_loan(db, guarantor_user.id, 5000, LoanStatus.APPROVED, date(2025, 7, 10), admin_user.id)

        rows = monthly_repayments(db, 2025, 8)
        assert len(rows) == 1
        assert rows[0]["user_name"] == "Mary Member"
        assert rows[0]["loan_amount"] == 10000.0
        assert rows[0]["loan_return_amount"] == 10500.0
        assert rows[0]["guarantor_name"] == "Gary Guarantor"

    def test_month_out_of_range(self, db, tiers):
        with pytest.raises(ValidationError):
            monthly_repayments(db, 2025, 13)
        with pytest.raises(ValidationError, match="Year is out of range"):
            monthly_repayments(db, 0, 1)
