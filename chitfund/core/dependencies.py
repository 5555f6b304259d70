from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from chitfund.db.base import get_db
from chitfund.models.user import User
from chitfund.models.member import Profile, ProfileRole
from chitfund.core.security import decode_access_token
import uuid

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from JWT token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(token)
    if payload is None:
        raise credentials_exception

    user_id_str: str = payload.get("sub")
    if user_id_str is None:
        raise credentials_exception

    # Convert string UUID to UUID object
    try:
        user_id = uuid.UUID(user_id_str)
    except (ValueError, TypeError):
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise credentials_exception

    return user


async def get_current_member(
    current_user: User = Depends(get_current_user)
) -> Profile:
    """Profile of the current user; every account must have one."""
    if current_user.profile is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User has no member profile"
        )
    return current_user.profile


def require_role(role: ProfileRole, detail: str):
    """Dependency factory for requiring a specific profile role."""
    async def role_checker(
        current_user: User = Depends(get_current_user)
    ) -> User:
        profile = current_user.profile
        if profile is None or profile.role != role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=detail
            )
        return current_user
    return role_checker


require_admin = require_role(ProfileRole.ADMIN, "You must be an admin to perform this action.")
