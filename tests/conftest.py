import os
import sys
import tempfile
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

# Make sure the project root is on sys.path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Settings are read at import time, so configure the environment first
_tmp_dir = Path(tempfile.mkdtemp(prefix="chitfund-tests-"))
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["UPLOADS_DIR"] = str(_tmp_dir / "uploads")
os.environ["LOGS_DIR"] = str(_tmp_dir / "logs")
os.environ["ENABLE_SCHEDULER"] = "false"

from fastapi.testclient import TestClient  # noqa: E402

from chitfund.db.base import SessionLocal, engine  # noqa: E402
from chitfund.main import app  # noqa: E402
from chitfund.models import Base, LoanTier, ProfileRole  # noqa: E402
from chitfund.services.auth import create_access_token_for_user, create_user  # noqa: E402

LOAN_TIERS = [
    (Decimal("5000"), 0, Decimal("250"), 1),
    (Decimal("10000"), 6, Decimal("500"), 2),
    (Decimal("25000"), 12, Decimal("1250"), 3),
    (Decimal("50000"), 24, Decimal("2500"), 6),
    (Decimal("100000"), 36, Decimal("5000"), 12),
]


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def tiers(db):
    for amount, eligibility, fine, months in LOAN_TIERS:
        db.add(LoanTier(
            amount=amount,
            eligibility_months=eligibility,
            fine=fine,
            repayment_months=months,
            repayment_info=f"{months} Months",
        ))
    db.commit()
    return db.query(LoanTier).order_by(LoanTier.amount).all()


@pytest.fixture
def admin_user(db):
    return create_user(db, "admin@withusfs.com", "admin-pass", "Ada", "Admin", role=ProfileRole.ADMIN)


@pytest.fixture
def member_user(db):
    return create_user(
        db, "member@withusfs.com", "member-pass", "Mary", "Member",
        membership_start_date=date(2020, 1, 1),
    )


@pytest.fixture
def guarantor_user(db):
    return create_user(
        db, "guarantor@withusfs.com", "guarantor-pass", "Gary", "Guarantor",
        membership_start_date=date(2020, 1, 1),
    )


@pytest.fixture
def second_guarantor_user(db):
    return create_user(
        db, "second@withusfs.com", "second-pass", "Sam", "Second",
        membership_start_date=date(2020, 1, 1),
    )


@pytest.fixture
def client(db):
    with TestClient(app) as test_client:
        yield test_client


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token_for_user(user)}"}


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def member_headers(member_user):
    return auth_headers(member_user)
