"""
Staff user model.
"""

from typing import Optional
from enum import Enum
from sqlalchemy import String, Boolean, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from carwash.models.base import BaseModel


class UserRole(str, Enum):
    """Staff roles."""
    ADMIN = "admin"
    MANAGER = "manager"
    CASHIER = "cashier"
    ATTENDANT = "attendant"


class User(BaseModel):
    """
    Staff member able to log in to the POS.

    Attributes:
        email: Unique login email
        hashed_password: Bcrypt hashed password
        full_name: Display name on jobs and receipts
        phone: Contact phone number
        role: Staff role
        is_active: Whether the account may log in
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    phone: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
    )
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole),
        default=UserRole.CASHIER,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    @property
    def can_reconcile(self) -> bool:
        """Only managers and admins may resolve payments by hand."""
        return self.role in (UserRole.ADMIN, UserRole.MANAGER)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
