"""
Authentication schemas.
"""

from pydantic import EmailStr, Field

from carwash.schemas.base import BaseSchema
from carwash.models.user import UserRole


class LoginRequest(BaseSchema):
    """Login request schema."""

    email: EmailStr
    password: str = Field(..., min_length=6)


class RegisterRequest(BaseSchema):
    """Staff registration request."""

    email: EmailStr
    password: str = Field(..., min_length=8, description="Minimum 8 characters")
    full_name: str = Field(..., min_length=2, max_length=255)
    phone: str | None = Field(None, max_length=20)
    role: UserRole = UserRole.CASHIER


class TokenPair(BaseSchema):
    """Access and refresh token pair response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshTokenRequest(BaseSchema):
    """Refresh token request schema."""

    refresh_token: str
