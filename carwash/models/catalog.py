"""
Wash service catalog and wash bays.
"""

from typing import Optional
from decimal import Decimal
from enum import Enum
from sqlalchemy import String, Text, Integer, Numeric, Boolean, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from carwash.models.base import BaseModel


class ServiceCategory(str, Enum):
    """Wash service categories."""
    EXTERIOR = "exterior"
    INTERIOR = "interior"
    FULL_WASH = "full_wash"
    ENGINE = "engine"
    WAX_POLISH = "wax_polish"
    UNDERWASH = "underwash"
    DETAILING = "detailing"
    OTHER = "other"


class BayStatus(str, Enum):
    """Physical bay availability."""
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"


class WashService(BaseModel):
    """
    Service offered on the price list.

    Attributes:
        name: Display name
        category: Service category
        base_price: Price per unit (KES)
        duration_minutes: Expected time per unit, used for completion estimates
        is_active: Whether the service can be selected at check-in
    """

    __tablename__ = "wash_services"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    category: Mapped[ServiceCategory] = mapped_column(
        SQLEnum(ServiceCategory),
        default=ServiceCategory.EXTERIOR,
        nullable=False,
    )
    base_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
    )
    duration_minutes: Mapped[int] = mapped_column(
        Integer,
        default=30,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<WashService(id={self.id}, name='{self.name}', price={self.base_price})>"


class Bay(BaseModel):
    """A wash stall that holds at most one job at a time."""

    __tablename__ = "bays"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    bay_number: Mapped[int] = mapped_column(
        Integer,
        unique=True,
        nullable=False,
    )
    status: Mapped[BayStatus] = mapped_column(
        SQLEnum(BayStatus),
        default=BayStatus.AVAILABLE,
        nullable=False,
    )
    # Plain column rather than a foreign key: jobs already reference bays
    current_job_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    @property
    def is_available(self) -> bool:
        return self.is_active and self.status == BayStatus.AVAILABLE

    def occupy(self, job_id: int) -> None:
        self.status = BayStatus.OCCUPIED
        self.current_job_id = job_id

    def release(self) -> None:
        self.status = BayStatus.AVAILABLE
        self.current_job_id = None

    def __repr__(self) -> str:
        return f"<Bay(id={self.id}, number={self.bay_number}, status='{self.status}')>"
