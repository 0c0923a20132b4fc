"""
Wash service and bay schemas.
"""

from decimal import Decimal
from pydantic import Field

from carwash.schemas.base import BaseSchema, TimestampSchema
from carwash.models.catalog import ServiceCategory, BayStatus


class WashServiceBase(BaseSchema):
    """Base wash service schema."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    category: ServiceCategory = ServiceCategory.EXTERIOR
    base_price: Decimal = Field(..., ge=0)
    duration_minutes: int = Field(default=30, ge=1, le=600)


class WashServiceCreate(WashServiceBase):
    """Schema for creating a wash service."""


class WashServiceUpdate(BaseSchema):
    """Schema for updating a wash service."""

    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    category: ServiceCategory | None = None
    base_price: Decimal | None = Field(None, ge=0)
    duration_minutes: int | None = Field(None, ge=1, le=600)
    is_active: bool | None = None


class WashServiceResponse(WashServiceBase, TimestampSchema):
    """Wash service response schema."""

    id: int
    is_active: bool


class BayCreate(BaseSchema):
    """Schema for creating a bay."""

    name: str = Field(..., min_length=1, max_length=50)
    bay_number: int = Field(..., ge=1)


class BayResponse(TimestampSchema):
    """Bay response schema."""

    id: int
    name: str
    bay_number: int
    status: BayStatus
    current_job_id: int | None
    is_active: bool
