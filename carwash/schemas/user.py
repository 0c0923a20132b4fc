"""
Staff user schemas.
"""

from datetime import datetime
from pydantic import EmailStr

from carwash.schemas.base import BaseSchema
from carwash.models.user import UserRole


class UserResponse(BaseSchema):
    """Staff member (public data)."""

    id: int
    email: EmailStr
    full_name: str
    phone: str | None
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime


class StaffSummary(BaseSchema):
    """Staff member as embedded in jobs."""

    id: int
    full_name: str
    role: UserRole
