"""
Payment service.
Records payments against jobs and settles them, including the M-Pesa
STK push flow (initiate, poll or callback, manual reconciliation).
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from fastapi import HTTPException, status

from carwash.core.config import settings
from carwash.core.exceptions import PaymentNotAllowed, PaymentGatewayError
from carwash.core.phone import format_phone_number, is_valid_phone_number, mask_phone_number
from carwash.models.base import utcnow
from carwash.models.job import Job, JobStatus, JobPaymentStatus
from carwash.models.payment import Payment, PaymentMethod, PaymentStatus
from carwash.models.user import User
from carwash.schemas.payment import PaymentCreate
from carwash.services.job import settle_if_covered
from carwash.services.mpesa import PaymentGateway, StkCallback

logger = logging.getLogger(__name__)


@dataclass
class PaymentHandle:
    """What the caller gets back from initiate()."""

    payment: Payment
    job: Job
    checkout_request_id: Optional[str] = None

    @property
    def requires_polling(self) -> bool:
        return self.payment.status == PaymentStatus.PENDING


class PaymentService:
    """Service for payment operations."""

    def __init__(self, db: AsyncSession, gateway: PaymentGateway | None = None):
        self.db = db
        self.gateway = gateway

    async def _load_job(self, job_id: int) -> Job:
        result = await self.db.execute(
            select(Job)
            .where(Job.id == job_id)
            .execution_options(populate_existing=True)
        )
        job = result.scalar_one_or_none()
        if not job:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Job not found",
            )
        return job

    def _check_can_pay(self, job: Job, amount: Decimal) -> None:
        """
        Raise PaymentNotAllowed unless the job can take ``amount`` now.
        """
        if job.status == JobStatus.CANCELLED:
            raise PaymentNotAllowed("Cannot take payment for a cancelled job")

        if job.status == JobStatus.PAID or job.payment_status == JobPaymentStatus.PAID:
            raise PaymentNotAllowed("Job is already fully paid")

        if job.status != JobStatus.COMPLETED and not settings.ALLOW_PREPAYMENT:
            raise PaymentNotAllowed(
                f"Job is {job.status.value}; payment is only accepted once it is completed"
            )

        if amount <= 0:
            raise PaymentNotAllowed("Amount must be greater than zero")

        if any(
            p.payment_method == PaymentMethod.MPESA and p.status == PaymentStatus.PENDING
            for p in job.payments
        ):
            raise PaymentNotAllowed(
                "An M-Pesa payment is still pending for this job; "
                "check its status or reconcile it first"
            )

        if amount > job.balance_due:
            raise PaymentNotAllowed(
                f"Amount exceeds the balance due ({job.balance_due} {settings.CURRENCY})"
            )

    async def initiate(
        self,
        data: PaymentCreate,
        received_by: User | None = None,
    ) -> PaymentHandle:
        """
        Start a payment for a job.

        Cash, card and loyalty payments complete immediately and settle the
        job when they cover the balance. M-Pesa payments send an STK push
        and stay pending until polled, called back or reconciled.

        Args:
            data: Payment request (discriminated on payment_method)
            received_by: Staff member taking the payment

        Returns:
            PaymentHandle with the payment, the job and, for M-Pesa,
            the checkout request id

        Raises:
            PaymentNotAllowed: A precondition does not hold
            PaymentGatewayError: The STK push was rejected
        """
        job = await self._load_job(data.job_id)
        method = PaymentMethod(data.payment_method)
        self._check_can_pay(job, data.amount)

        if method == PaymentMethod.MPESA:
            return await self._initiate_mpesa(job, data, received_by)

        if method == PaymentMethod.LOYALTY_POINTS:
            self._redeem_points(job, data.amount)

        payment = Payment(
            job_id=job.id,
            amount=data.amount,
            payment_method=method,
            status=PaymentStatus.COMPLETED,
            reference_number=getattr(data, "reference_number", None),
            notes=data.notes,
            receiver=received_by,
            completed_at=utcnow(),
        )
        self.db.add(payment)
        job.payments.append(payment)
        await self.db.flush()

        logger.info(
            f"{method.value} payment of {payment.amount} recorded for job {job.job_number}"
        )
        self._settle(job)
        await self.db.flush()

        job = await self._load_job(job.id)
        return PaymentHandle(payment=payment, job=job)

    def _redeem_points(self, job: Job, amount: Decimal) -> None:
        """Deduct the points needed to cover ``amount`` from the job's customer."""
        customer = job.customer
        if customer is None:
            raise PaymentNotAllowed("Loyalty payment requires a customer on the job")

        points_needed = math.ceil(amount / settings.LOYALTY_POINT_VALUE)
        if customer.loyalty_points < points_needed:
            raise PaymentNotAllowed(
                f"Insufficient loyalty points: {points_needed} needed, "
                f"{customer.loyalty_points} available"
            )

        customer.loyalty_points -= points_needed
        logger.info(f"Redeemed {points_needed} points for customer {customer.id}")

    async def _initiate_mpesa(
        self,
        job: Job,
        data: PaymentCreate,
        received_by: User | None,
    ) -> PaymentHandle:
        if self.gateway is None:
            raise PaymentGatewayError("M-Pesa is not configured")

        if not is_valid_phone_number(data.phone):
            raise PaymentGatewayError("Invalid phone number")
        phone = format_phone_number(data.phone)

        result = await self.gateway.initiate_stk_push(
            phone=phone,
            amount=data.amount,
            account_reference=job.job_number,
            description=f"Wash {job.vehicle.registration_no}",
        )

        payment = Payment(
            job_id=job.id,
            amount=data.amount,
            payment_method=PaymentMethod.MPESA,
            status=PaymentStatus.PENDING,
            mpesa_checkout_request_id=result.checkout_request_id,
            phone_number=phone,
            notes=data.notes,
            receiver=received_by,
        )
        self.db.add(payment)
        job.payments.append(payment)
        await self.db.flush()

        logger.info(
            f"M-Pesa payment of {payment.amount} pending for job {job.job_number} "
            f"({mask_phone_number(phone)}, {result.checkout_request_id})"
        )
        job = await self._load_job(job.id)
        return PaymentHandle(
            payment=payment,
            job=job,
            checkout_request_id=result.checkout_request_id,
        )

    def _settle(self, job: Job) -> None:
        """Re-derive payment_status; a covered completed job moves to paid."""
        if settle_if_covered(job):
            logger.info(f"Job {job.job_number} fully paid ({job.amount_paid} {settings.CURRENCY})")

    async def _complete(
        self,
        payment: Payment,
        receipt_number: str | None = None,
        note: str | None = None,
    ) -> Payment:
        payment.status = PaymentStatus.COMPLETED
        payment.completed_at = utcnow()
        if receipt_number:
            payment.mpesa_receipt_number = receipt_number
        if note:
            payment.notes = f"{payment.notes}\n{note}" if payment.notes else note
        await self.db.flush()

        job = await self._load_job(payment.job_id)
        self._settle(job)
        await self.db.flush()

        logger.info(f"Payment {payment.mpesa_checkout_request_id} completed")
        return payment

    async def _fail(self, payment: Payment, reason: str | None = None) -> Payment:
        payment.status = PaymentStatus.FAILED
        if reason:
            payment.notes = f"{payment.notes}\n{reason}" if payment.notes else reason
        await self.db.flush()

        logger.info(f"Payment {payment.mpesa_checkout_request_id} failed: {reason}")
        return payment

    async def poll_status(self, checkout_request_id: str) -> PaymentStatus:
        """
        Query the gateway once and apply a terminal answer.

        A payment already completed or failed locally is returned as is,
        without calling the gateway.

        Raises:
            TransientQueryError: The query itself failed
        """
        payment = await self.get_by_checkout_id_or_404(checkout_request_id)
        if payment.status.is_terminal:
            return payment.status

        if self.gateway is None:
            raise PaymentGatewayError("M-Pesa is not configured")

        result = await self.gateway.query_stk_status(checkout_request_id)

        if result.status == PaymentStatus.COMPLETED:
            await self._complete(payment)
        elif result.status == PaymentStatus.FAILED:
            await self._fail(payment, result.result_desc)

        return result.status

    async def handle_callback(self, callback: StkCallback) -> Payment | None:
        """
        Apply the gateway callback for an STK push.

        Returns:
            The updated payment, or None when the checkout id is unknown
            or the payment was already resolved
        """
        payment = await self.get_by_checkout_id(callback.checkout_request_id)
        if payment is None:
            logger.warning(f"Callback for unknown checkout {callback.checkout_request_id}")
            return None
        if payment.status.is_terminal:
            logger.info(
                f"Callback for {callback.checkout_request_id} ignored, "
                f"payment already {payment.status.value}"
            )
            return None

        if callback.success:
            return await self._complete(payment, receipt_number=callback.mpesa_receipt_number)
        return await self._fail(payment, callback.result_desc)

    async def reconcile(
        self,
        checkout_request_id: str,
        new_status: PaymentStatus,
        receipt_number: str | None = None,
        notes: str | None = None,
        user: User | None = None,
    ) -> Payment:
        """
        Resolve a pending M-Pesa payment by hand.

        Raises:
            HTTPException: If the payment is not pending or the status is not terminal
        """
        payment = await self.get_by_checkout_id_or_404(checkout_request_id)
        new_status = PaymentStatus(new_status)

        if not new_status.is_terminal:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Reconciliation must set completed or failed",
            )
        if payment.status.is_terminal:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Payment is already {payment.status.value}",
            )

        who = user.full_name if user else "system"
        note = f"Reconciled as {new_status.value} by {who}"
        if notes:
            note = f"{note}: {notes}"

        if new_status == PaymentStatus.COMPLETED:
            return await self._complete(payment, receipt_number=receipt_number, note=note)
        return await self._fail(payment, note)

    async def get_by_id(self, payment_id: int) -> Payment | None:
        result = await self.db.execute(
            select(Payment).where(Payment.id == payment_id)
        )
        return result.scalar_one_or_none()

    async def get_or_404(self, payment_id: int) -> Payment:
        """Get payment by ID or raise 404."""
        payment = await self.get_by_id(payment_id)
        if not payment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Payment not found",
            )
        return payment

    async def get_by_checkout_id(self, checkout_request_id: str) -> Payment | None:
        result = await self.db.execute(
            select(Payment).where(Payment.mpesa_checkout_request_id == checkout_request_id)
        )
        return result.scalar_one_or_none()

    async def get_by_checkout_id_or_404(self, checkout_request_id: str) -> Payment:
        payment = await self.get_by_checkout_id(checkout_request_id)
        if not payment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Payment not found",
            )
        return payment

    async def list(
        self,
        skip: int = 0,
        limit: int = 20,
        job_id: int | None = None,
        payment_method: PaymentMethod | None = None,
        payment_status: PaymentStatus | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> tuple[list[Payment], int]:
        """List payments with pagination and filters."""
        conditions = []

        if job_id:
            conditions.append(Payment.job_id == job_id)
        if payment_method:
            conditions.append(Payment.payment_method == payment_method)
        if payment_status:
            conditions.append(Payment.status == payment_status)
        if from_date:
            conditions.append(Payment.created_at >= _start_of(from_date))
        if to_date:
            conditions.append(Payment.created_at < _start_of(to_date) + timedelta(days=1))

        count_result = await self.db.execute(
            select(func.count(Payment.id)).where(*conditions)
        )
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(Payment)
            .where(*conditions)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .offset(skip)
            .limit(limit)
        )
        payments = list(result.scalars().all())

        return payments, total

    async def job_summary(self, job_id: int) -> dict:
        """Totals and payments for one job."""
        job = await self._load_job(job_id)
        return {
            "job_id": job.id,
            "job_number": job.job_number,
            "total_amount": job.total_amount,
            "amount_paid": job.amount_paid,
            "pending_amount": job.pending_amount,
            "balance_due": job.balance_due,
            "payment_status": job.payment_status,
            "payments": job.payments,
        }

    async def daily_totals(self, day: date | None = None) -> dict:
        """Completed payments for one day (today by default), grouped by method."""
        day = day or utcnow().date()
        start = _start_of(day)

        result = await self.db.execute(
            select(
                Payment.payment_method,
                func.count(Payment.id),
                func.coalesce(func.sum(Payment.amount), 0),
            )
            .where(
                Payment.status == PaymentStatus.COMPLETED,
                Payment.completed_at >= start,
                Payment.completed_at < start + timedelta(days=1),
            )
            .group_by(Payment.payment_method)
        )

        by_method = {
            method.value: {"count": 0, "amount": Decimal("0.00")} for method in PaymentMethod
        }
        for method, count, amount in result.all():
            by_method[PaymentMethod(method).value] = {
                "count": count,
                "amount": Decimal(str(amount)),
            }

        return {
            "date": day.isoformat(),
            "by_method": by_method,
            "total": {
                "count": sum(entry["count"] for entry in by_method.values()),
                "amount": sum((entry["amount"] for entry in by_method.values()), Decimal("0.00")),
            },
        }


def _start_of(day: date) -> datetime:
    return datetime.combine(day, datetime.min.time(), tzinfo=timezone.utc)
