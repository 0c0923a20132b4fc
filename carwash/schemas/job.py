"""
Job schemas for request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from pydantic import Field, field_validator, model_validator

from carwash.schemas.base import BaseSchema, TimestampSchema, PageMeta
from carwash.schemas.customer import CustomerSummary, VehicleResponse
from carwash.schemas.user import StaffSummary
from carwash.schemas.payment import PaymentResponse
from carwash.models.job import JobStatus, JobPaymentStatus, JobPriority, JobItemStatus, DiscountType


class JobServiceLine(BaseSchema):
    """Service requested at check-in."""

    service_id: int
    quantity: int = Field(default=1, ge=1, le=20)
    discount: Decimal = Field(default=Decimal("0"), ge=0)


class CheckInRequest(BaseSchema):
    """Vehicle check-in request."""

    registration_no: str = Field(..., min_length=2, max_length=20)
    vehicle_type: str = Field(default="saloon", max_length=30)
    vehicle_make: str | None = Field(None, max_length=50)
    vehicle_model: str | None = Field(None, max_length=50)
    vehicle_color: str | None = Field(None, max_length=30)

    customer_name: str | None = Field(None, max_length=255)
    customer_phone: str | None = Field(None, max_length=20)

    services: list[JobServiceLine] = Field(..., min_length=1)
    bay_id: int | None = None
    assigned_staff_id: int | None = None
    priority: JobPriority = JobPriority.NORMAL
    is_rewash: bool = False
    notes: str | None = None

    @field_validator("services")
    @classmethod
    def unique_services(cls, v: list[JobServiceLine]) -> list[JobServiceLine]:
        ids = [line.service_id for line in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Each service may only be listed once")
        return v


class DiscountRequest(BaseSchema):
    """Job level discount, a percentage of the subtotal or a fixed amount."""

    discount_type: DiscountType
    discount_value: Decimal = Field(..., ge=0)
    reason: str | None = Field(None, max_length=255)

    @model_validator(mode="after")
    def percentage_range(self) -> "DiscountRequest":
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("A percentage discount cannot exceed 100")
        return self


class StatusUpdateRequest(BaseSchema):
    """Move a job to another status."""

    status: JobStatus
    notes: str | None = None


class CancelRequest(BaseSchema):
    """Cancel a job."""

    reason: str | None = Field(None, max_length=500)


class AssignBayRequest(BaseSchema):
    bay_id: int


class AssignStaffRequest(BaseSchema):
    staff_id: int


class JobItemResponse(BaseSchema):
    """Job line item response."""

    id: int
    service_id: int
    service_name: str | None
    quantity: int
    unit_price: Decimal
    discount: Decimal
    subtotal: Decimal
    status: JobItemStatus
    started_at: datetime | None
    completed_at: datetime | None


class JobSummary(BaseSchema):
    """Job as shown in lists and queue views."""

    id: int
    job_number: str
    status: JobStatus
    payment_status: JobPaymentStatus
    priority: JobPriority
    vehicle: VehicleResponse
    customer: CustomerSummary | None
    bay_id: int | None
    assigned_staff_id: int | None
    total_amount: Decimal
    check_in_time: datetime
    estimated_completion: datetime | None
    actual_completion: datetime | None


class JobResponse(JobSummary, TimestampSchema):
    """Full job response schema."""

    assigned_staff: StaffSummary | None
    checked_in_by: int | None
    subtotal: Decimal
    discount_type: DiscountType | None
    discount_value: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    amount_paid: Decimal
    pending_amount: Decimal
    balance_due: Decimal
    estimated_duration: int
    is_rewash: bool
    notes: str | None
    version: int
    items: list[JobItemResponse] = []
    payments: list[PaymentResponse] = []


class JobListResponse(PageMeta):
    """Paginated job list response."""

    items: list[JobSummary]


class QueueViewResponse(BaseSchema):
    """Jobs in one queue view."""

    view: str
    count: int
    items: list[JobSummary]


class NextStatusResponse(BaseSchema):
    """Where a job can go from its current status."""

    job_id: int
    status: JobStatus
    next_status: JobStatus | None
    can_cancel: bool
    is_terminal: bool


class VehicleHistoryResponse(BaseSchema):
    """A vehicle with its past visits, newest first."""

    vehicle: VehicleResponse
    visits: int
    total_spent: Decimal
    jobs: list[JobSummary]
