import logging
import secrets
import string
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chitfund.core.config import settings
from chitfund.core.errors import ConflictError, ValidationError
from chitfund.core.security import create_access_token, get_password_hash, verify_password
from chitfund.models.member import Profile, ProfileRole
from chitfund.models.user import User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference_name() -> str:
    """Short code members quote on bank transfers."""
    return "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(6))


def validate_password(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    """Authenticate user by email and password; records the sign-in time."""
    user = db.query(User).filter(User.email == email.lower()).first()
    if not user:
        logger.debug(f"User not found: {email}")
        return None

    if not verify_password(password, user.password_hash):
        logger.debug(f"Password verification failed for user: {email}")
        return None

    user.last_sign_in_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    return user


def create_user(
    db: Session,
    email: str,
    password: str,
    first_name: str = None,
    last_name: str = None,
    role: ProfileRole = ProfileRole.MEMBER,
    membership_start_date: date = None,
) -> User:
    """Create a user and its 1:1 profile, committed as one unit."""
    email = email.lower()
    validate_password(password)

    if db.query(User).filter(User.email == email).first():
        logger.warning(f"Registration attempt with existing email: {email}")
        raise ConflictError("Email already registered")

    user = User(email=email, password_hash=get_password_hash(password))
    db.add(user)
    try:
        db.flush()  # Get user.id
        profile = Profile(
            id=user.id,
            first_name=first_name,
            last_name=last_name,
            reference_name=generate_reference_name(),
            role=role,
            membership_start_date=membership_start_date,
        )
        db.add(profile)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.error(f"IntegrityError creating user {email}: {e.orig if hasattr(e, 'orig') else e}")
        raise ConflictError("Email already registered")

    db.refresh(user)
    logger.info(f"Created {role.value} account {email} ({user.id})")
    return user


def create_access_token_for_user(user: User) -> str:
    """Create access token for user."""
    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return create_access_token(
        data={"sub": str(user.id), "email": user.email},
        expires_delta=access_token_expires
    )
