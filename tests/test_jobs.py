"""Tests for monthly dues, reminder notifications and the jobs API."""
from datetime import date
from decimal import Decimal

import pytest

from chitfund.core.errors import ConflictError
from chitfund.models import JobRun, LoanStatus, Notification, PaymentProofStatus, Transaction, TransactionType
from chitfund.services.loan import create_loan
from chitfund.services.proof import process_payment_proof, submit_payment_proof
from chitfund.services.scheduler import (
    LateFeesNotImplemented,
    get_scheduler_status,
    run_late_fees,
    run_monthly_dues,
    run_notification_cron,
)


def _titles(db, user_id):
    return sorted(n.title for n in db.query(Notification).filter(Notification.user_id == user_id).all())


class TestMonthlyDues:
    """Charging dues once per calendar month."""

    def test_charges_every_member_but_not_admins(self, db, admin_user, member_user, guarantor_user):
        result = run_monthly_dues(db, run_by=admin_user.id, today=date(2026, 5, 3))

        assert result == {
            "period": "2026-05",
            "members_charged": 2,
            "amount_per_member": 500.0,
            "forced": False,
        }
        dues = db.query(Transaction).filter(Transaction.type == TransactionType.DUE).all()
        assert sorted(t.user_id for t in dues) == sorted([member_user.id, guarantor_user.id])
        assert all(t.description == "Monthly dues for May 2026" for t in dues)

        db.refresh(member_user.profile)
        db.refresh(admin_user.profile)
        assert member_user.profile.outstanding_amount == Decimal("500.00")
        assert admin_user.profile.outstanding_amount == Decimal("0.00")

    def test_second_run_in_month_refused(self, db, admin_user, member_user):
        run_monthly_dues(db, today=date(2026, 5, 1))
        with pytest.raises(ConflictError, match="May 2026"):
            run_monthly_dues(db, today=date(2026, 5, 20))
        assert db.query(Transaction).count() == 1

    def test_force_runs_again(self, db, admin_user, member_user):
        run_monthly_dues(db, today=date(2026, 5, 1))
        result = run_monthly_dues(db, today=date(2026, 5, 20), force=True)

        assert result["forced"] is True
        assert db.query(Transaction).count() == 2
        assert db.query(JobRun).count() == 2
        db.refresh(member_user.profile)
        assert member_user.profile.outstanding_amount == Decimal("1000.00")

    def test_next_month_is_a_new_period(self, db, member_user):
        run_monthly_dues(db, today=date(2026, 5, 1))
        run_monthly_dues(db, today=date(2026, 6, 1))
        assert db.query(Transaction).count() == 2


class TestNotificationCron:
    """Daily reminders are created at most once per key."""

    def test_loan_due_reminders_reach_borrower_guarantor_and_admin(
        self, db, tiers, admin_user, member_user, guarantor_user
    ):
        # Issued 2026-03-10 on the two month tier: due 2026-05-10
        create_loan(
            db, member_user.id, 10000, LoanStatus.IN_PROCESS, date(2026, 3, 10), admin_user.id,
            guarantor_id=guarantor_user.id,
        )
        counts = run_notification_cron(db, today=date(2026, 5, 3))

        assert counts["loan_reminders"] == 3
        assert _titles(db, member_user.id) == ["Loan Repayment Reminder"]
        assert _titles(db, guarantor_user.id) == ["Guaranteed Loan Reminder"]
        assert _titles(db, admin_user.id) == ["Loan Due Soon"]

    def test_due_today_and_in_a_week_are_separate(self, db, tiers, admin_user, member_user):
        create_loan(db, member_user.id, 5000, LoanStatus.APPROVED, date(2026, 4, 10), admin_user.id)
        run_notification_cron(db, today=date(2026, 5, 3))
        run_notification_cron(db, today=date(2026, 5, 10))

        reminders = db.query(Notification).filter(Notification.user_id == member_user.id).all()
        assert len(reminders) == 2
        assert sorted(n.dedupe_key.rsplit(":", 1)[1] for n in reminders) == ["0d", "7d"]

    def test_running_twice_creates_nothing_new(self, db, tiers, admin_user, member_user):
        create_loan(db, member_user.id, 5000, LoanStatus.IN_PROCESS, date(2026, 4, 1), admin_user.id)
        first = run_notification_cron(db, today=date(2026, 5, 1))
        second = run_notification_cron(db, today=date(2026, 5, 1))

        assert first["total"] > 0
        assert second["total"] == 0
        assert db.query(Notification).count() == first["total"]

    def test_closed_loans_get_no_reminder(self, db, tiers, admin_user, member_user):
        create_loan(db, member_user.id, 5000, LoanStatus.CLOSED, date(2026, 4, 10), admin_user.id)
        counts = run_notification_cron(db, today=date(2026, 5, 10))
        assert counts["loan_reminders"] == 0

    def test_contribution_reminder_on_first_and_last_day(self, db, admin_user, member_user, guarantor_user):
        assert run_notification_cron(db, today=date(2026, 5, 1))["contribution_reminders"] == 2
        assert run_notification_cron(db, today=date(2026, 5, 31))["contribution_reminders"] == 2
        assert run_notification_cron(db, today=date(2026, 5, 15))["contribution_reminders"] == 0
        assert _titles(db, admin_user.id) == []

    def test_missed_contribution_alert_on_fourth(self, db, admin_user, member_user, guarantor_user):
        proof = submit_payment_proof(db, member_user.profile, 2026, 4, "april.pdf", b"%PDF-1.4")
        process_payment_proof(db, proof.id, PaymentProofStatus.APPROVED, admin_user.id)

        counts = run_notification_cron(db, today=date(2026, 5, 4))
        assert counts["missed_contribution_alerts"] == 1

        alert = db.query(Notification).filter(
            Notification.user_id == admin_user.id,
            Notification.title == "Missed Contributions Alert",
        ).one()
        assert alert.message.startswith("1 member(s)")
        assert "April 2026" in alert.message

        assert run_notification_cron(db, today=date(2026, 5, 4))["missed_contribution_alerts"] == 0

    def test_no_alert_when_everyone_paid(self, db, admin_user, member_user):
        proof = submit_payment_proof(db, member_user.profile, 2026, 4, "april.pdf", b"%PDF-1.4")
        process_payment_proof(db, proof.id, PaymentProofStatus.APPROVED, admin_user.id)
        assert run_notification_cron(db, today=date(2026, 5, 4))["missed_contribution_alerts"] == 0


class TestLateFees:

    def test_not_implemented(self, db):
        with pytest.raises(LateFeesNotImplemented):
            run_late_fees(db)


class TestJobsApi:
    """Admin endpoints for running jobs."""

    def test_monthly_dues_endpoint(self, client, db, admin_headers, member_user):
        response = client.post("/api/admin/jobs/monthly-dues", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["members_charged"] == 1

        response = client.post("/api/admin/jobs/monthly-dues", headers=admin_headers)
        assert response.status_code == 409

        response = client.post("/api/admin/jobs/monthly-dues?force=true", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["forced"] is True

    def test_notifications_endpoint_with_run_date(self, client, db, admin_headers, member_user):
        response = client.post(
            "/api/admin/jobs/notifications?run_date=2026-05-01", headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["contribution_reminders"] == 1

    def test_late_fees_returns_501(self, client, db, admin_headers):
        response = client.post("/api/admin/jobs/late-fees", headers=admin_headers)
        assert response.status_code == 501

    def test_scheduler_not_running_in_tests(self, client, db, admin_headers):
        response = client.get("/api/admin/jobs/scheduler", headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == {"running": False, "jobs": []}
        assert get_scheduler_status()["running"] is False
