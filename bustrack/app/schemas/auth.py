"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from bustrack.app.models.enums import UserType, SessionPersistence, RoleSource


class DriverLogin(BaseModel):
    """
    Schema for driver credential login.

    Used by POST /auth/driver/login endpoint.
    """
    email: str = Field(..., description="Driver email address")
    password: str = Field(..., description="Password")
    remember_me: bool = Field(default=False, description="Keep the session across browser restarts")


class StudentGoogleLogin(BaseModel):
    """
    Schema for student Google sign-in.

    The client completes the Google popup and forwards the resulting ID token.
    """
    id_token: str = Field(..., min_length=1, description="Google ID token from the sign-in popup")


class GoogleLoginConfig(BaseModel):
    """Custom parameters the client passes to the Google provider."""
    prompt: str = "select_account"
    hd: str = Field(..., description="Hosted domain hint restricting selectable accounts")


class PasswordResetRequest(BaseModel):
    email: str


class PasswordCheckRequest(BaseModel):
    password: str


class PasswordCheckResponse(BaseModel):
    is_valid: bool
    errors: List[str]


class TokenResponse(BaseModel):
    """
    Schema for JWT token response.

    Returned by successful driver and student logins.
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user_id: str = Field(..., description="Identity provider uid")
    email: str = Field(..., description="Email address")
    name: Optional[str] = Field(default=None, description="Display name")
    user_type: UserType = Field(..., description="Resolved role")
    persistence: SessionPersistence = Field(..., description="Session persistence mode")
    expires_in: int = Field(..., description="Token lifetime in seconds")


class UserResponse(BaseModel):
    """
    Schema for user information response.

    Used by GET /auth/me endpoint.
    """
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    user_type: UserType
    role_source: RoleSource
    roll_number: Optional[str] = None
    batch_year: Optional[str] = None
    full_batch: Optional[str] = None
    last_login: Optional[int] = None
