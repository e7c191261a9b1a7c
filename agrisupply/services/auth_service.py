"""
Authentication Service
User profile credentials, login and tokens
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone
import logging

from sqlalchemy.orm import Session

from agrisupply.core.exceptions import ValidationError
from agrisupply.core.security import get_password_hash, verify_password, create_access_token
from agrisupply.models import UserProfile
from agrisupply.schemas.auth import UserProfileCreate

logger = logging.getLogger(__name__)


class AuthService:
    """Service for user profile authentication"""

    def __init__(self, db: Session):
        self.db = db

    def get_user_by_id(self, user_id: int) -> Optional[UserProfile]:
        return self.db.query(UserProfile).filter(UserProfile.id == user_id).first()

    def get_user_by_email(self, email: str) -> Optional[UserProfile]:
        return self.db.query(UserProfile).filter(
            UserProfile.email == (email or "").strip().lower()
        ).first()

    def create_user(self, user_data: UserProfileCreate) -> UserProfile:
        """Create a user profile; emails are stored lower-cased"""
        email = user_data.email.strip().lower()
        if self.get_user_by_email(email):
            raise ValidationError(f"A user with email {email} already exists.")

        profile = UserProfile(
            email=email,
            full_name=user_data.full_name,
            password_hash=get_password_hash(user_data.password),
            role=user_data.role,
            is_active=True,
        )
        self.db.add(profile)
        self.db.commit()
        self.db.refresh(profile)

        logger.info(f"User profile created: {profile.email}")
        return profile

    def authenticate_user(self, email: str, password: str) -> Optional[UserProfile]:
        """Authenticate user credentials"""
        user = self.get_user_by_email(email)
        if not user or not user.is_active:
            return None

        if not verify_password(password, user.password_hash):
            return None

        user.last_login = datetime.now(timezone.utc)
        self.db.commit()
        return user

    def create_user_session(self, user: UserProfile) -> Dict[str, Any]:
        """Bearer token plus the profile the client keeps in its session"""
        access_token = create_access_token(data={"sub": user.email, "user_id": user.id})

        return {
            "access_token": access_token,
            "token_type": "bearer",
            "user": {
                "id": user.id,
                "email": user.email,
                "full_name": user.full_name,
                "role": user.role,
            },
        }
