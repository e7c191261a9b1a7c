"""
Authentication API endpoints
Login, logout and the session the route guard reads
"""
from typing import Any, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from agrisupply.api.deps import get_db, get_current_user, get_optional_user
from agrisupply.core.security import log_user_action
from agrisupply.models import UserProfile
from agrisupply.schemas.auth import Token, SessionResponse
from agrisupply.services.auth_service import AuthService

router = APIRouter()


def _client_host(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


@router.post("/login", response_model=Token)
async def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
) -> Any:
    """
    OAuth2 compatible token login; the username field carries the email
    """
    service = AuthService(db)
    user = service.authenticate_user(form_data.username, form_data.password)

    if not user:
        log_user_action(
            db=db,
            user=None,
            action="LOGIN_FAILED",
            ip_address=_client_host(request),
            user_agent=request.headers.get("user-agent"),
            new_values={"email": form_data.username}
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    session = service.create_user_session(user)

    log_user_action(
        db=db,
        user=user,
        action="LOGIN",
        ip_address=_client_host(request),
        user_agent=request.headers.get("user-agent"),
    )
    return session


@router.post("/logout")
async def logout(
    request: Request,
    current_user: UserProfile = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Any:
    """
    Logout current user; tokens are stateless so this only records the action
    """
    log_user_action(
        db=db,
        user=current_user,
        action="LOGOUT",
        ip_address=_client_host(request),
        user_agent=request.headers.get("user-agent")
    )

    return {"message": "Successfully logged out"}


@router.get("/session", response_model=SessionResponse)
async def read_session(
    current_user: Optional[UserProfile] = Depends(get_optional_user)
) -> Any:
    """
    Current session; `user` is null when signed out
    """
    return {"user": current_user, "loading": False}
