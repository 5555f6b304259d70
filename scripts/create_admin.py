"""
Create the first admin account.
Usage: python scripts/create_admin.py --email admin@withusfs.com --password <password>
"""
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from chitfund.core.errors import ServiceError
from chitfund.db.base import SessionLocal
from chitfund.models.member import ProfileRole
from chitfund.services.auth import create_user


def create_admin(email: str, password: str, first_name: str = "Admin", last_name: str = "User"):
    """Create an admin user with its admin profile."""
    db = SessionLocal()
    try:
        user = create_user(
            db,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=ProfileRole.ADMIN,
        )
        print("Admin user created successfully!")
        print(f"   Email: {user.email}")
        print(f"   Reference: {user.profile.reference_name}")
        print("\nPlease change the password after first login!")
    except ServiceError as e:
        print(f"Error creating admin user: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Create an admin user")
    parser.add_argument("--email", required=True, help="Admin email")
    parser.add_argument("--password", required=True, help="Admin password")
    parser.add_argument("--first-name", default="Admin", help="First name")
    parser.add_argument("--last-name", default="User", help="Last name")

    args = parser.parse_args()

    create_admin(
        email=args.email,
        password=args.password,
        first_name=args.first_name,
        last_name=args.last_name
    )
