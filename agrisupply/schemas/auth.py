"""
Authentication schemas for request/response validation
"""
from typing import Optional, Dict, Any
from pydantic import BaseModel, EmailStr, Field, ConfigDict


class Token(BaseModel):
    """JWT token response"""
    access_token: str
    token_type: str = "bearer"
    user: Optional[Dict[str, Any]] = None


class UserProfileCreate(BaseModel):
    """User profile creation request"""
    email: EmailStr
    full_name: Optional[str] = Field(None, max_length=120)
    password: str = Field(..., min_length=8)
    role: str = Field("staff", max_length=30)


class SessionUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: Optional[str] = None
    role: Optional[str] = None


class SessionResponse(BaseModel):
    """Current session as the route guard sees it"""
    user: Optional[SessionUser] = None
    loading: bool = False
