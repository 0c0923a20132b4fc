"""
Payment schemas for request/response validation.

Create requests are a union discriminated on ``payment_method`` so that
each method only accepts its own fields (a card payment needs a slip
reference, an M-Pesa payment needs a phone number).
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Union
from pydantic import Field

from carwash.schemas.base import BaseSchema, TimestampSchema, PageMeta
from carwash.models.payment import PaymentMethod, PaymentStatus
from carwash.models.job import JobPaymentStatus, JobStatus


class PaymentCreateBase(BaseSchema):
    """Fields shared by every payment method."""

    job_id: int
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    notes: str | None = None


class CashPaymentCreate(PaymentCreateBase):
    payment_method: Literal["cash"]
    reference_number: str | None = Field(None, max_length=100)


class CardPaymentCreate(PaymentCreateBase):
    payment_method: Literal["card"]
    reference_number: str = Field(..., min_length=1, max_length=100)


class LoyaltyPaymentCreate(PaymentCreateBase):
    payment_method: Literal["loyalty_points"]


class MpesaPaymentCreate(PaymentCreateBase):
    payment_method: Literal["mpesa"]
    phone: str = Field(..., min_length=9, max_length=20)


PaymentCreateUnion = Union[
    CashPaymentCreate, CardPaymentCreate, LoyaltyPaymentCreate, MpesaPaymentCreate,
]

PaymentCreate = Annotated[PaymentCreateUnion, Field(discriminator="payment_method")]


class PaymentResponse(TimestampSchema):
    """Payment response schema."""

    id: int
    job_id: int
    amount: Decimal
    payment_method: PaymentMethod
    status: PaymentStatus
    reference_number: str | None
    mpesa_checkout_request_id: str | None
    mpesa_receipt_number: str | None
    phone_number: str | None
    notes: str | None
    received_by: int | None
    received_by_name: str | None
    completed_at: datetime | None


class PaymentListResponse(PageMeta):
    """Paginated payment list response."""

    items: list[PaymentResponse]


class PaymentHandleResponse(BaseSchema):
    """Result of starting a payment."""

    payment: PaymentResponse
    checkout_request_id: str | None = None
    requires_polling: bool = False
    job_status: JobStatus
    job_payment_status: JobPaymentStatus
    balance_due: Decimal
    message: str


class MpesaStatusResponse(BaseSchema):
    """Current state of an M-Pesa checkout request."""

    checkout_request_id: str
    status: PaymentStatus
    payment_id: int
    job_id: int
    amount: Decimal
    mpesa_receipt_number: str | None = None
    attempts: int | None = None


class ReconcileRequest(BaseSchema):
    """Manual resolution of a pending M-Pesa payment."""

    status: Literal["completed", "failed"]
    mpesa_receipt_number: str | None = Field(None, max_length=30)
    notes: str | None = None


class CallbackAck(BaseSchema):
    """Acknowledgement body Safaricom expects from the callback URL."""

    ResultCode: int = 0
    ResultDesc: str = "Accepted"


class JobPaymentSummary(BaseSchema):
    """Settlement overview for one job."""

    job_id: int
    job_number: str
    total_amount: Decimal
    amount_paid: Decimal
    pending_amount: Decimal
    balance_due: Decimal
    payment_status: JobPaymentStatus
    payments: list[PaymentResponse]


class MethodTotal(BaseSchema):
    count: int = 0
    amount: Decimal = Decimal("0.00")


class DailyTotalsResponse(BaseSchema):
    """Completed payments for one day, by method."""

    date: str
    by_method: dict[str, MethodTotal]
    total: MethodTotal
