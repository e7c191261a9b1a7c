"""
Security utilities for AgriSupply
Authentication, authorization and audit trail helpers
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import json
import logging

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from agrisupply.core.config import settings

logger = logging.getLogger("agrisupply.security")

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM
# Token lifetime doubles as the session lifetime on the client
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """True when the plain password matches the stored bcrypt hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """bcrypt hash for a new user profile"""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Signed bearer token; `sub` carries the user email"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode a JWT access token; None when invalid or expired"""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("sub") is None:
        return None
    return payload


def log_user_action(
    db: Session,
    user,
    action: str,
    table: Optional[str] = None,
    key: Optional[str] = None,
    old_values: Optional[Dict] = None,
    new_values: Optional[Dict] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    commit: bool = True
) -> None:
    """
    Log user action to audit trail

    Pass commit=False when the entry must land in the caller's transaction.
    """
    from agrisupply.models.audit import AuditLog

    audit_entry = AuditLog(
        audit_user=user.email if user is not None else "system",
        audit_action=action,
        audit_table=table,
        audit_key=key,
        audit_old_values=json.dumps(old_values, default=str) if old_values else None,
        audit_new_values=json.dumps(new_values, default=str) if new_values else None,
        audit_ip_address=ip_address,
        audit_user_agent=user_agent,
    )

    db.add(audit_entry)
    if commit:
        db.commit()
    logger.info(f"{audit_entry.audit_user} {action} {table or ''} {key or ''}".strip())
