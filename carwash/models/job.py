"""
Job (wash order) and job line items.
A job follows one vehicle from check-in to payment.
"""

from typing import Optional, List, TYPE_CHECKING
from decimal import Decimal
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    String, Text, ForeignKey, Integer, Numeric, DateTime, Boolean, Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carwash.models.base import BaseModel, utcnow

if TYPE_CHECKING:
    from carwash.models.customer import Customer, Vehicle
    from carwash.models.catalog import Bay, WashService
    from carwash.models.user import User
    from carwash.models.payment import Payment


TWO_PLACES = Decimal("0.01")


class JobStatus(str, Enum):
    """Job status enumeration."""
    CHECKED_IN = "checked_in"
    IN_QUEUE = "in_queue"
    WASHING = "washing"
    DETAILING = "detailing"
    COMPLETED = "completed"
    PAID = "paid"
    CANCELLED = "cancelled"


class JobPaymentStatus(str, Enum):
    """Settlement state of a job."""
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class JobPriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class JobItemStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Job(BaseModel):
    """
    Job model.

    Attributes:
        job_number: Human readable number, CW-YYYYMMDD-NNNN
        status: Position in the wash flow
        payment_status: Derived from completed payments, see refresh_payment_status
        priority: Queue priority
        vehicle_id / customer_id / bay_id / assigned_staff_id: References
        subtotal: Sum of line item subtotals
        discount_type / discount_value: Job level discount, a percentage of the
            subtotal or a fixed KES amount (rewash jobs start at a percentage)
        discount_amount: Discount resolved against the current subtotal
        tax_amount: Tax on the discounted subtotal
        total_amount: subtotal - discount_amount + tax_amount, never negative
        check_in_time: When the vehicle arrived
        estimated_duration: Expected minutes of work
        version: Optimistic concurrency counter, bumped on every update
    """

    __tablename__ = "jobs"

    job_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        index=True,
        nullable=False,
    )
    status: Mapped[JobStatus] = mapped_column(
        SQLEnum(JobStatus),
        default=JobStatus.CHECKED_IN,
        nullable=False,
        index=True,
    )
    payment_status: Mapped[JobPaymentStatus] = mapped_column(
        SQLEnum(JobPaymentStatus),
        default=JobPaymentStatus.UNPAID,
        nullable=False,
    )
    priority: Mapped[JobPriority] = mapped_column(
        SQLEnum(JobPriority),
        default=JobPriority.NORMAL,
        nullable=False,
    )

    # References
    vehicle_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("vehicles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    bay_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("bays.id", ondelete="SET NULL"),
        nullable=True,
    )
    assigned_staff_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    checked_in_by: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Totals
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    discount_type: Mapped[Optional[DiscountType]] = mapped_column(
        SQLEnum(DiscountType),
        nullable=True,
    )
    discount_value: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    # Timing
    check_in_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    estimated_duration: Mapped[int] = mapped_column(
        Integer,
        default=30,
        nullable=False,
    )
    estimated_completion: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    actual_completion: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    is_rewash: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    vehicle: Mapped["Vehicle"] = relationship(
        "Vehicle",
        lazy="selectin",
    )
    customer: Mapped[Optional["Customer"]] = relationship(
        "Customer",
        lazy="selectin",
    )
    bay: Mapped[Optional["Bay"]] = relationship(
        "Bay",
        lazy="selectin",
    )
    assigned_staff: Mapped[Optional["User"]] = relationship(
        "User",
        foreign_keys=[assigned_staff_id],
        lazy="selectin",
    )
    items: Mapped[List["JobItem"]] = relationship(
        "JobItem",
        back_populates="job",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    payments: Mapped[List["Payment"]] = relationship(
        "Payment",
        back_populates="job",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Payment.id",
    )

    @property
    def amount_paid(self) -> Decimal:
        """Sum of completed payments."""
        from carwash.models.payment import PaymentStatus

        return sum(
            (p.amount for p in self.payments if p.status == PaymentStatus.COMPLETED),
            Decimal("0.00"),
        )

    @property
    def pending_amount(self) -> Decimal:
        """Sum of payments still awaiting gateway confirmation."""
        from carwash.models.payment import PaymentStatus

        return sum(
            (p.amount for p in self.payments if p.status == PaymentStatus.PENDING),
            Decimal("0.00"),
        )

    @property
    def balance_due(self) -> Decimal:
        return max(self.total_amount - self.amount_paid, Decimal("0.00"))

    @property
    def is_fully_paid(self) -> bool:
        return self.amount_paid >= self.total_amount

    def calculate_totals(self, tax_rate: Decimal = Decimal("0.00")) -> None:
        """Recalculate job totals from line items and the job level discount."""
        subtotal = sum((item.subtotal for item in self.items), Decimal("0.00"))
        value = self.discount_value or Decimal("0.00")
        if self.discount_type == DiscountType.PERCENTAGE:
            discount = (subtotal * value / 100).quantize(TWO_PLACES)
        elif self.discount_type == DiscountType.FIXED:
            discount = Decimal(value).quantize(TWO_PLACES)
        else:
            discount = Decimal("0.00")
        discount = min(discount, subtotal)
        tax = ((subtotal - discount) * tax_rate / 100).quantize(TWO_PLACES)

        self.subtotal = subtotal
        self.discount_amount = discount
        self.tax_amount = tax
        self.total_amount = max(subtotal - discount + tax, Decimal("0.00"))

    def refresh_payment_status(self) -> JobPaymentStatus:
        """
        Derive payment_status from the completed payments.
        Paid only once completed payments cover total_amount.
        """
        paid = self.amount_paid
        if paid >= self.total_amount:
            self.payment_status = JobPaymentStatus.PAID
        elif paid > 0:
            self.payment_status = JobPaymentStatus.PARTIAL
        else:
            self.payment_status = JobPaymentStatus.UNPAID
        return self.payment_status

    def add_note(self, note: str) -> None:
        stamped = f"[{utcnow().isoformat(timespec='seconds')}] {note}"
        self.notes = f"{self.notes}\n{stamped}" if self.notes else stamped

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, number='{self.job_number}', status='{self.status}')>"


class JobItem(BaseModel):
    """
    Service line on a job.

    Attributes:
        service_id: Service from the catalog
        quantity: Number of units
        unit_price: Price at check-in time
        discount: Fixed discount on this line
        subtotal: quantity * unit_price - discount
    """

    __tablename__ = "job_items"

    job_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    service_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("wash_services.id", ondelete="RESTRICT"),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
    )
    discount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
    )
    status: Mapped[JobItemStatus] = mapped_column(
        SQLEnum(JobItemStatus),
        default=JobItemStatus.PENDING,
        nullable=False,
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    job: Mapped["Job"] = relationship(
        "Job",
        back_populates="items",
    )
    service: Mapped["WashService"] = relationship(
        "WashService",
        lazy="selectin",
    )

    @property
    def service_name(self) -> Optional[str]:
        return self.service.name if self.service else None

    def __repr__(self) -> str:
        return f"<JobItem(id={self.id}, service_id={self.service_id}, subtotal={self.subtotal})>"
