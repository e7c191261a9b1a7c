"""
API Dependencies
Common dependencies for API endpoints
"""

from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from agrisupply.core.database import get_db
from agrisupply.core.security import verify_token
from agrisupply.models import UserProfile
from agrisupply.services.storage import ObjectStorage

# Security scheme
security = HTTPBearer(auto_error=False)

__all__ = ["get_db", "get_storage", "get_current_user", "get_optional_user"]


def get_storage() -> ObjectStorage:
    """Object storage for the configured bucket"""
    return ObjectStorage()


def _credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[UserProfile]:
    """
    Current user when a valid bearer token is present, else None.
    """
    if credentials is None:
        return None

    payload = verify_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        return None

    user = db.query(UserProfile).filter(UserProfile.email == payload["sub"]).first()
    if not user or not user.is_active:
        return None
    return user


def get_current_user(
    user: Optional[UserProfile] = Depends(get_optional_user)
) -> UserProfile:
    """
    Get current authenticated user from JWT token.
    """
    if user is None:
        raise _credentials_error()
    return user
