"""API tests for authentication, member reads and user administration."""
import re
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import text

from chitfund.core.errors import ConflictError
from chitfund.models import (
    LoanRequest,
    LoanStatus,
    Notification,
    PaymentProof,
    PaymentProofStatus,
    ProfileRole,
    Transaction,
    TransactionType,
    User,
)
from chitfund.services.auth import create_user
from chitfund.services.loan import create_loan, create_loan_request, process_loan_request
from chitfund.services.member import bulk_create_users, build_bulk_email, delete_user
from chitfund.services.notification import create_notification
from chitfund.services.proof import process_payment_proof, submit_payment_proof
from chitfund.services.transaction import create_manual_transaction, set_main_balance

from conftest import auth_headers


class TestAuth:
    """Registration, login and the current user."""

    def test_register_login_me(self, client, db):
        response = client.post(
            "/api/auth/register",
            json={"email": "New.Member@fund.org", "password": "secret1", "first_name": "New", "last_name": "Member"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["email"] == "new.member@fund.org"
        assert body["role"] == "member"
        assert len(body["reference_name"]) == 6

        response = client.post("/api/auth/login", json={"email": "new.member@fund.org", "password": "secret1"})
        assert response.status_code == 200
        token = response.json()["access_token"]

        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["first_name"] == "New"
        assert response.json()["last_sign_in_at"] is not None

    def test_register_duplicate_email(self, client, db, member_user):
        response = client.post(
            "/api/auth/register",
            json={"email": "member@withusfs.com", "password": "secret1"},
        )
        assert response.status_code == 409
        assert response.json()["detail"] == "Email already registered"

    def test_register_short_password(self, client, db):
        response = client.post("/api/auth/register", json={"email": "short@fund.org", "password": "abc"})
        assert response.status_code == 400

    def test_login_wrong_password(self, client, db, member_user):
        response = client.post("/api/auth/login", json={"email": "member@withusfs.com", "password": "nope-nope"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Incorrect email or password"

    def test_missing_token(self, client, db):
        assert client.get("/api/auth/me").status_code == 401
        assert client.get("/api/member/summary").status_code == 401

    def test_garbage_token(self, client, db):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_change_password(self, client, db, member_user, member_headers):
        response = client.post(
            "/api/auth/change-password",
            headers=member_headers,
            json={"current_password": "member-pass", "new_password": "fresh-pass"},
        )
        assert response.status_code == 200
        response = client.post("/api/auth/login", json={"email": "member@withusfs.com", "password": "fresh-pass"})
        assert response.status_code == 200


class TestMemberApi:
    """Self-service reads and loan requests."""

    def test_summary(self, client, db, tiers, member_headers):
        response = client.get("/api/member/summary", headers=member_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["outstanding_amount"] == 0.0
        assert body["main_account_balance"] == 0.0
        assert len(body["eligible_tiers"]) == 5

    def test_request_loan(self, client, db, tiers, member_headers, guarantor_user):
        response = client.post(
            "/api/member/loans",
            headers=member_headers,
            json={"amount": "10000", "reason": "Stock", "guarantor_id": str(guarantor_user.id)},
        )
        assert response.status_code == 200
        assert response.json()["loan"]["status"] == "pending"

        guaranteed = client.get("/api/member/loans/guaranteed", headers=auth_headers(guarantor_user)).json()
        assert len(guaranteed) == 1

    def test_request_loan_without_guarantor(self, client, db, tiers, member_headers):
        response = client.post("/api/member/loans", headers=member_headers, json={"amount": "10000"})
        assert response.status_code == 400

    def test_public_transactions_limit_bounds(self, client, db, admin_user, member_headers):
        set_main_balance(db, 1000, admin_user.id)
        set_main_balance(db, 1500, admin_user.id)

        response = client.get("/api/member/public-transactions?limit=1", headers=member_headers)
        assert response.status_code == 200
        assert len(response.json()) == 1

        for limit in (-1, 0, 501):
            response = client.get(f"/api/member/public-transactions?limit={limit}", headers=member_headers)
            assert response.status_code == 400

    def test_fellow_members_exclude_self(self, client, db, member_user, member_headers, guarantor_user):
        names = [m["full_name"] for m in client.get("/api/member/members", headers=member_headers).json()]
        assert names == ["Gary Guarantor"]

    def test_notifications_read_flow(self, client, db, member_user, member_headers, guarantor_user):
        own = create_notification(db, member_user.id, "Hello", "First")
        create_notification(db, member_user.id, "Hello again", "Second")
        other = create_notification(db, guarantor_user.id, "Not yours", "Third")
        db.commit()

        assert client.get("/api/member/notifications/unread-count", headers=member_headers).json() == {"count": 2}

        response = client.post(f"/api/member/notifications/{other.id}/read", headers=member_headers)
        assert response.status_code == 404

        response = client.post(f"/api/member/notifications/{own.id}/read", headers=member_headers)
        assert response.status_code == 200
        assert response.json()["is_read"] is True

        assert client.post("/api/member/notifications/read-all", headers=member_headers).json() == {"updated": 1}
        assert client.get("/api/member/notifications?unread_only=true", headers=member_headers).json() == []


class TestAdminAccess:

    def test_member_gets_admin_message(self, client, db, member_headers):
        response = client.get("/api/admin/users", headers=member_headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "You must be an admin to perform this action."

    def test_users_are_paginated(self, client, db, admin_user, admin_headers):
        for i in range(4):
            client.post(
                "/api/admin/users",
                headers=admin_headers,
                json={"email": f"user{i}@fund.org", "password": "secret1", "first_name": "U", "last_name": str(i)},
            )

        body = client.get("/api/admin/users?page=2&per_page=2", headers=admin_headers).json()
        assert body["total"] == 5
        assert body["page"] == 2
        assert body["per_page"] == 2
        assert len(body["users"]) == 2

        body = client.get("/api/admin/users?page=3&per_page=2", headers=admin_headers).json()
        assert len(body["users"]) == 1

    def test_bad_page_size(self, client, db, admin_headers):
        response = client.get("/api/admin/users?per_page=0", headers=admin_headers)
        assert response.status_code == 400

    def test_edit_user(self, client, db, admin_headers, member_user):
        response = client.put(
            f"/api/admin/users/{member_user.id}",
            headers=admin_headers,
            json={"first_name": "Maria", "outstanding_amount": "125.50"},
        )
        assert response.status_code == 200
        assert response.json()["first_name"] == "Maria"

        body = client.get(f"/api/admin/users/{member_user.id}/transactions", headers=admin_headers).json()
        assert len(body["transactions"]) == 1
        assert body["transactions"][0]["source"] == "balance_adjustment"
        assert body["transactions"][0]["amount"] == 125.5

    def test_monthly_contributions(self, client, db, admin_headers, member_user, guarantor_user):
        client.post(
            "/api/admin/ledger/contributions/bulk",
            headers=admin_headers,
            json={"user_id": str(member_user.id), "start_year": 2026, "start_month": 2,
                  "end_year": 2026, "end_month": 2},
        )
        body = client.get("/api/admin/contributions/monthly?year=2026&month=2", headers=admin_headers).json()
        statuses = {row["full_name"]: row["status"] for row in body["contribution_list"]}
        assert statuses == {"MARY MEMBER": "paid", "GARY GUARANTOR": "pending"}

    def test_monthly_contributions_year_out_of_range(self, client, db, admin_headers):
        response = client.get("/api/admin/contributions/monthly?year=0&month=1", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Year is out of range"


class TestBulkUsers:
    """Generated member accounts."""

    def test_email_format(self):
        email = build_bulk_email("mary", "jones", today=date(2026, 3, 9))
        assert re.fullmatch(r"MJ0326\d{3}@withusfs\.com", email)

    def test_creates_accounts_and_reports_failures(self, db):
        results = bulk_create_users(
            db,
            [
                {"first_name": "Ann", "last_name": "Banda"},
                {"first_name": "", "last_name": "Phiri"},
                {"first_name": "Joe", "last_name": "Tembo"},
            ],
            today=date(2026, 3, 9),
        )
        assert [s["name"] for s in results["successes"]] == ["Ann Banda", "Joe Tembo"]
        assert [f["name"] for f in results["failures"]] == ["Phiri"]
        assert db.query(User).count() == 2

        created = results["successes"][0]
        assert created["email"].startswith("AB0326")
        assert len(created["password"]) >= 6

    def test_bulk_endpoint(self, client, db, admin_headers):
        response = client.post(
            "/api/admin/users/bulk",
            headers=admin_headers,
            json={"users": [{"first_name": "Ann", "last_name": "Banda"}]},
        )
        assert response.status_code == 200
        assert len(response.json()["successes"]) == 1

        login = response.json()["successes"][0]
        response = client.post("/api/auth/login", json={"email": login["email"], "password": login["password"]})
        assert response.status_code == 200


@pytest.fixture
def enforce_foreign_keys(db):
    """SQLite only checks foreign keys when asked to, as PostgreSQL always does."""
    db.execute(text("PRAGMA foreign_keys=ON"))
    yield
    db.rollback()
    db.execute(text("PRAGMA foreign_keys=OFF"))


class TestDeleteUser:
    """Deletion is only for members without financial history."""

    def test_admin_cannot_delete_self(self, db, admin_user):
        with pytest.raises(ConflictError):
            delete_user(db, admin_user.id, admin_user.id)

    def test_refused_with_ledger_rows(self, client, db, admin_headers, member_user):
        client.post(
            "/api/admin/ledger/transactions",
            headers=admin_headers,
            json={"user_id": str(member_user.id), "type": "deposit", "amount": "50"},
        )
        response = client.delete(f"/api/admin/users/{member_user.id}", headers=admin_headers)
        assert response.status_code == 409

    def test_refused_with_live_loan(self, db, tiers, admin_user, member_user):
        create_loan(db, member_user.id, 5000, LoanStatus.APPROVED, date(2026, 1, 1), admin_user.id)
        with pytest.raises(ConflictError, match="active loan"):
            delete_user(db, member_user.id, admin_user.id)

    def test_removes_member_and_related_records(self, db, tiers, admin_user, member_user, guarantor_user):
        user_id = member_user.id
        create_loan(
            db, guarantor_user.id, 10000, LoanStatus.REJECTED, date(2026, 1, 1), admin_user.id,
            guarantor_id=user_id,
        )
        create_loan(db, user_id, 5000, LoanStatus.REJECTED, date(2026, 1, 1), admin_user.id)
        proof = submit_payment_proof(db, member_user.profile, 2026, 1, "jan.png", b"png")
        create_notification(db, user_id, "Hello", "Bye")
        db.commit()

        delete_user(db, user_id, admin_user.id)
        db.expire_all()

        assert db.query(User).filter(User.id == user_id).count() == 0
        assert db.query(PaymentProof).filter(PaymentProof.id == proof.id).count() == 0
        assert db.query(Notification).filter(Notification.user_id == user_id).count() == 0

        remaining = db.query(LoanRequest).all()
        assert len(remaining) == 1
        assert remaining[0].guarantor_id is None
        assert remaining[0].guarantor_name == "Mary Member"

    def test_removes_admin_who_processed_records(self, db, enforce_foreign_keys, tiers, admin_user, member_user):
        other_admin = create_user(db, "second.admin@withusfs.com", "admin-pass", "Otto", "Admin", role=ProfileRole.ADMIN)
        loan = create_loan_request(db, member_user.profile, 5000)
        process_loan_request(db, loan.id, LoanStatus.REJECTED, other_admin.id, rejection_reason="Incomplete")
        txn = create_manual_transaction(db, member_user.id, TransactionType.DEPOSIT, 80, other_admin.id)
        proof = submit_payment_proof(db, member_user.profile, 2026, 1, "jan.png", b"png")
        process_payment_proof(db, proof.id, PaymentProofStatus.APPROVED, other_admin.id)
        other_admin_id = other_admin.id

        delete_user(db, other_admin_id, admin_user.id)
        db.expire_all()

        assert db.query(User).filter(User.id == other_admin_id).count() == 0
        assert db.query(LoanRequest).filter(LoanRequest.id == loan.id).one().processed_by is None
        assert db.query(PaymentProof).filter(PaymentProof.id == proof.id).one().processed_by is None
        assert db.query(Transaction).filter(Transaction.id == txn.id).one().created_by is None
        assert db.query(Transaction).count() == 2
        assert member_user.profile.outstanding_amount == Decimal("-580.00")

    def test_delete_admin_endpoint(self, client, db, enforce_foreign_keys, tiers, admin_headers, member_user):
        other_admin = create_user(db, "second.admin@withusfs.com", "admin-pass", "Otto", "Admin", role=ProfileRole.ADMIN)
        loan = create_loan_request(db, member_user.profile, 5000)
        process_loan_request(db, loan.id, LoanStatus.APPROVED, other_admin.id)

        response = client.delete(f"/api/admin/users/{other_admin.id}", headers=admin_headers)
        assert response.status_code == 200

        db.expire_all()
        assert db.query(LoanRequest).filter(LoanRequest.id == loan.id).one().processed_by is None
