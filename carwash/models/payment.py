"""
Payment model.
A job may carry several payments; only completed ones count towards settlement.
"""

from typing import Optional, TYPE_CHECKING
from decimal import Decimal
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    String, Text, ForeignKey, Integer, Numeric, DateTime, CheckConstraint, Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carwash.models.base import BaseModel

if TYPE_CHECKING:
    from carwash.models.job import Job
    from carwash.models.user import User


class PaymentMethod(str, Enum):
    """Payment method enumeration."""
    CASH = "cash"
    MPESA = "mpesa"
    CARD = "card"
    LOYALTY_POINTS = "loyalty_points"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class Payment(BaseModel):
    """
    Payment model.

    Attributes:
        job_id: Job being paid
        amount: Amount in KES
        payment_method: cash, mpesa, card or loyalty_points
        status: pending (mpesa only), completed or failed
        reference_number: Card slip / internal reference
        mpesa_checkout_request_id: Gateway correlation id, mpesa only
        mpesa_receipt_number: M-Pesa confirmation code once completed
        phone_number: Normalized MSISDN the STK push was sent to
        received_by: Staff member who took the payment
    """

    __tablename__ = "payments"
    __table_args__ = (
        # SQLEnum stores member names, hence 'MPESA'
        CheckConstraint(
            "(payment_method = 'MPESA' AND mpesa_checkout_request_id IS NOT NULL) OR "
            "(payment_method != 'MPESA' AND mpesa_checkout_request_id IS NULL)",
            name="ck_payments_checkout_id_mpesa_only",
        ),
    )

    job_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod),
        nullable=False,
    )
    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus),
        default=PaymentStatus.COMPLETED,
        nullable=False,
    )
    reference_number: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    mpesa_checkout_request_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        unique=True,
        index=True,
        nullable=True,
    )
    mpesa_receipt_number: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
    )
    phone_number: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    received_by: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    job: Mapped["Job"] = relationship(
        "Job",
        back_populates="payments",
    )
    receiver: Mapped[Optional["User"]] = relationship(
        "User",
        lazy="selectin",
    )

    @property
    def received_by_name(self) -> Optional[str]:
        return self.receiver.full_name if self.receiver else None

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, amount={self.amount}, "
            f"method='{self.payment_method}', status='{self.status}')>"
        )
