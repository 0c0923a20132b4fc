"""
Customer and vehicle schemas.
"""

from decimal import Decimal
from pydantic import EmailStr, Field

from carwash.schemas.base import BaseSchema, TimestampSchema, PageMeta


class CustomerBase(BaseSchema):
    """Base customer schema."""

    name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=9, max_length=20)
    email: EmailStr | None = None
    notes: str | None = None


class CustomerCreate(CustomerBase):
    """Schema for creating a customer."""


class CustomerUpdate(BaseSchema):
    """Schema for updating a customer."""

    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    notes: str | None = None


class VehicleResponse(TimestampSchema):
    """Vehicle response schema."""

    id: int
    registration_no: str
    vehicle_type: str
    make: str | None
    model: str | None
    color: str | None
    customer_id: int | None


class CustomerSummary(BaseSchema):
    """Customer as embedded in jobs."""

    id: int
    name: str
    phone: str
    loyalty_points: int


class CustomerResponse(CustomerBase, TimestampSchema):
    """Customer response schema."""

    id: int
    loyalty_points: int
    total_visits: int
    total_spent: Decimal
    vehicles: list[VehicleResponse] = []


class CustomerListResponse(PageMeta):
    """Paginated customer list response."""

    items: list[CustomerResponse]


class VehicleUpdate(BaseSchema):
    """Schema for updating a vehicle."""

    vehicle_type: str | None = Field(None, max_length=30)
    make: str | None = Field(None, max_length=50)
    model: str | None = Field(None, max_length=50)
    color: str | None = Field(None, max_length=30)
    customer_id: int | None = None


class VehicleListResponse(PageMeta):
    """Paginated vehicle list response."""

    items: list[VehicleResponse]
