"""
Customer and vehicle models.
Customers are identified by phone number, vehicles by registration number.
"""

from typing import Optional, List
from decimal import Decimal
from sqlalchemy import String, Text, ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carwash.models.base import BaseModel


class Customer(BaseModel):
    """
    Customer with loyalty balance.

    Attributes:
        name: Customer name
        phone: Unique phone number as entered at check-in
        email: Optional email address
        loyalty_points: Points available for redemption
        total_visits: Number of check-ins
        total_spent: Amount paid on settled jobs
        notes: Free text notes
    """

    __tablename__ = "customers"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    phone: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        index=True,
        nullable=False,
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    loyalty_points: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    total_visits: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    total_spent: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    vehicles: Mapped[List["Vehicle"]] = relationship(
        "Vehicle",
        back_populates="customer",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, name='{self.name}', phone='{self.phone}')>"


class Vehicle(BaseModel):
    """
    Vehicle brought in for washing.

    Attributes:
        registration_no: Normalized registration number (e.g. "KDA 123A")
        vehicle_type: saloon, suv, van, truck...
        customer_id: Owner, linked on first check-in with a phone number
    """

    __tablename__ = "vehicles"

    registration_no: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        index=True,
        nullable=False,
    )
    vehicle_type: Mapped[str] = mapped_column(
        String(30),
        default="saloon",
        nullable=False,
    )
    make: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    customer_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    customer: Mapped[Optional["Customer"]] = relationship(
        "Customer",
        back_populates="vehicles",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Vehicle(id={self.id}, registration_no='{self.registration_no}')>"
