from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session, joinedload

from ..core.config import settings
from ..database import get_db
from ..models.user import User, UserType

# Tokens are minted by the identity provider; this service only verifies them.
bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or not credentials.credentials:
        raise credentials_exception
    try:
        payload = jwt.decode(
            credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
        sub = payload.get("sub")
        if sub is None:
            raise credentials_exception
        user_id = int(sub)
    except (JWTError, TypeError, ValueError):
        raise credentials_exception
    user = (
        db.query(User)
        .options(joinedload(User.talent_profile))
        .filter(User.id == user_id)
        .first()
    )
    if user is None or not user.is_active:
        raise credentials_exception
    return user


def get_current_booker(current_user: User = Depends(get_current_user)) -> User:
    if current_user.user_type != UserType.BOOKER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not a booker.",
        )
    return current_user


def get_current_talent(current_user: User = Depends(get_current_user)) -> User:
    """Ensure the current user is an active talent."""
    if current_user.user_type != UserType.TALENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not a talent.",
        )
    return current_user
