"""
Seed reference data: loan tiers and the main account.
"""
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from chitfund.db.base import SessionLocal
from chitfund.models.loan import LoanTier
from chitfund.services.accounting import get_main_account
from decimal import Decimal

LOAN_TIERS = [
    {"amount": Decimal("5000"), "eligibility_months": 0, "fine": Decimal("250"), "repayment_months": 1},
    {"amount": Decimal("10000"), "eligibility_months": 6, "fine": Decimal("500"), "repayment_months": 2},
    {"amount": Decimal("25000"), "eligibility_months": 12, "fine": Decimal("1250"), "repayment_months": 3},
    {"amount": Decimal("50000"), "eligibility_months": 24, "fine": Decimal("2500"), "repayment_months": 6},
    {"amount": Decimal("100000"), "eligibility_months": 36, "fine": Decimal("5000"), "repayment_months": 12},
]


def seed_loan_tiers(db):
    """Seed the fixed loan amounts."""
    print("Seeding loan tiers...")
    for tier_data in LOAN_TIERS:
        existing = db.query(LoanTier).filter(LoanTier.amount == tier_data["amount"]).first()
        if not existing:
            months = tier_data["repayment_months"]
            tier = LoanTier(
                repayment_info=f"{months} Month" if months == 1 else f"{months} Months",
                **tier_data
            )
            db.add(tier)

    db.commit()
    print("Loan tiers seeded")


def seed_main_account(db):
    """Create the singleton main account row."""
    print("Seeding main account...")
    get_main_account(db)
    db.commit()
    print("Main account seeded")


if __name__ == "__main__":
    db = SessionLocal()
    try:
        seed_loan_tiers(db)
        seed_main_account(db)
        print("\nSeed data complete!")
    except Exception as e:
        db.rollback()
        print(f"Error seeding data: {e}")
        raise
    finally:
        db.close()
