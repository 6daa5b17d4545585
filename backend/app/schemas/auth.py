"""
Authentication Pydantic schemas.

Defines request and response schemas for directory login and session info.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from backend.app.models.enums import UserRole


class UserLogin(BaseModel):
    """
    Schema for user login.

    Used by POST /auth/login. Credentials are checked against the directory.
    """
    username: str = Field(..., min_length=1, max_length=100, description="Directory username (sAMAccountName)")
    password: str = Field(..., min_length=1, description="Directory password")


class UserResponse(BaseModel):
    """
    Schema for user information response.

    Used by GET /auth/me and embedded in the login response.
    """
    id: int
    username: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    title: Optional[str] = None
    role: UserRole
    is_active: bool
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """
    Schema for session token response.

    Returned by a successful login.
    """
    access_token: str = Field(..., description="JWT session token")
    token_type: str = Field(default="bearer", description="Token type")
    user: UserResponse


class LogoutResponse(BaseModel):
    message: str = "Logged out"
