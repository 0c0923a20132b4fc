"""
Job service.
Check-in, status changes, bay/staff assignment, job edits and queue views.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from fastapi import HTTPException, status

from carwash.core.config import settings
from carwash.models.base import utcnow
from carwash.models.catalog import Bay, WashService
from carwash.models.customer import Customer, Vehicle
from carwash.models.job import (
    Job, JobItem, JobStatus, JobPaymentStatus, JobPriority, JobItemStatus, DiscountType,
)
from carwash.models.payment import PaymentMethod, PaymentStatus
from carwash.models.user import User
from carwash.schemas.job import CheckInRequest, JobServiceLine
from carwash.services import lifecycle
from carwash.services.catalog import WashServiceService, BayService
from carwash.services.customer import normalize_customer_phone
from carwash.services.queue import VIEWS
from carwash.services.vehicle import normalize_registration

logger = logging.getLogger(__name__)

PRIORITY_RANK = {
    JobPriority.URGENT: 0,
    JobPriority.HIGH: 1,
    JobPriority.NORMAL: 2,
}


def _price_line(
    service: WashService,
    line: JobServiceLine,
    item_status: JobItemStatus = JobItemStatus.PENDING,
) -> JobItem:
    """Job line priced from the catalog; the line discount never takes it below zero."""
    gross = service.base_price * line.quantity
    return JobItem(
        service_id=service.id,
        quantity=line.quantity,
        unit_price=service.base_price,
        discount=line.discount,
        subtotal=max(gross - line.discount, Decimal("0.00")),
        status=item_status,
    )


def credit_customer(job: Job) -> None:
    """Add the job to the customer's spend and award points on the money paid."""
    if not job.customer:
        return
    money_paid = sum(
        (
            p.amount for p in job.payments
            if p.status == PaymentStatus.COMPLETED
            and p.payment_method != PaymentMethod.LOYALTY_POINTS
        ),
        Decimal("0.00"),
    )
    points = int(money_paid // settings.LOYALTY_KES_PER_POINT)
    job.customer.total_spent += job.amount_paid
    job.customer.loyalty_points += points
    if points:
        logger.info(f"Awarded {points} points to customer {job.customer.id}")


def settle_if_covered(job: Job) -> bool:
    """
    Re-derive payment_status. A completed job whose completed payments
    cover its total (a zero total included) moves to paid, frees its bay
    and credits the customer.

    Returns:
        True if the job was settled by this call
    """
    job.refresh_payment_status()
    if job.status != JobStatus.COMPLETED or job.payment_status != JobPaymentStatus.PAID:
        return False

    lifecycle.mark_paid(job)
    release_bay(job)
    credit_customer(job)
    return True


def release_bay(job: Job) -> None:
    """Free the job's bay if it is still holding this job."""
    if job.bay and job.bay.current_job_id == job.id:
        job.bay.release()
        logger.info(f"Bay {job.bay.bay_number} released by job {job.job_number}")


class JobService:
    """Service for job operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _generate_job_number(self) -> str:
        """
        Generate unique job number.
        Format: CW-{YYYYMMDD}-{daily sequence}
        """
        prefix = f"CW-{date.today().strftime('%Y%m%d')}-"

        result = await self.db.execute(
            select(func.count(Job.id)).where(Job.job_number.like(f"{prefix}%"))
        )
        count = result.scalar() or 0

        return f"{prefix}{str(count + 1).zfill(4)}"

    async def _load(self, job_id: int) -> Job | None:
        result = await self.db.execute(
            select(Job)
            .where(Job.id == job_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_or_create_vehicle(self, data: CheckInRequest) -> Vehicle:
        registration_no = normalize_registration(data.registration_no)
        result = await self.db.execute(
            select(Vehicle).where(Vehicle.registration_no == registration_no)
        )
        vehicle = result.scalar_one_or_none()

        if vehicle is None:
            vehicle = Vehicle(
                registration_no=registration_no,
                vehicle_type=data.vehicle_type,
                make=data.vehicle_make,
                model=data.vehicle_model,
                color=data.vehicle_color,
            )
            self.db.add(vehicle)
            await self.db.flush()
            logger.info(f"New vehicle {registration_no}")
        else:
            for field, value in (
                ("make", data.vehicle_make),
                ("model", data.vehicle_model),
                ("color", data.vehicle_color),
            ):
                if value:
                    setattr(vehicle, field, value)

        return vehicle

    async def _get_or_create_customer(
        self,
        data: CheckInRequest,
        vehicle: Vehicle,
    ) -> Customer | None:
        """Customer by phone, else the vehicle's owner, else a new one when a name is given."""
        if data.customer_phone:
            phone = normalize_customer_phone(data.customer_phone)
            result = await self.db.execute(
                select(Customer).where(Customer.phone == phone)
            )
            customer = result.scalar_one_or_none()

            if customer is None:
                customer = Customer(
                    name=data.customer_name or "Walk-in customer",
                    phone=phone,
                )
                self.db.add(customer)
                await self.db.flush()
            elif data.customer_name:
                customer.name = data.customer_name
        elif vehicle.customer_id:
            customer = await self.db.get(Customer, vehicle.customer_id)
        else:
            return None

        if vehicle.customer_id is None:
            vehicle.customer_id = customer.id

        return customer

    async def _get_active_staff(self, staff_id: int) -> User:
        result = await self.db.execute(
            select(User).where(User.id == staff_id, User.is_active.is_(True))
        )
        staff = result.scalar_one_or_none()
        if not staff:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Staff member not found or inactive",
            )
        return staff

    async def _get_available_bay(self, bay_id: int) -> Bay:
        bay = await BayService(self.db).get_or_404(bay_id)
        if not bay.is_available:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Bay {bay.bay_number} is not available",
            )
        return bay

    async def check_in(self, data: CheckInRequest, checked_in_by: User | None = None) -> Job:
        """
        Check a vehicle in and open a job.

        The vehicle and customer are looked up (or created) from the
        registration number and phone. Line items are priced from the
        current catalog.

        Args:
            data: Check-in data
            checked_in_by: Staff member at the counter

        Returns:
            Created job, status checked_in

        Raises:
            HTTPException: Unknown service, unavailable bay or unknown staff
        """
        services = await WashServiceService(self.db).get_many(
            [line.service_id for line in data.services]
        )
        bay = await self._get_available_bay(data.bay_id) if data.bay_id else None
        if data.assigned_staff_id:
            await self._get_active_staff(data.assigned_staff_id)

        vehicle = await self._get_or_create_vehicle(data)
        customer = await self._get_or_create_customer(data, vehicle)

        items = [_price_line(services[line.service_id], line) for line in data.services]
        duration = sum(
            services[line.service_id].duration_minutes * line.quantity for line in data.services
        )

        duration = duration or settings.DEFAULT_SERVICE_DURATION_MINUTES
        now = utcnow()

        job = Job(
            job_number=await self._generate_job_number(),
            status=JobStatus.CHECKED_IN,
            payment_status=JobPaymentStatus.UNPAID,
            priority=data.priority,
            vehicle_id=vehicle.id,
            customer_id=customer.id if customer else None,
            bay_id=bay.id if bay else None,
            assigned_staff_id=data.assigned_staff_id,
            checked_in_by=checked_in_by.id if checked_in_by else None,
            check_in_time=now,
            estimated_duration=duration,
            estimated_completion=now + timedelta(minutes=duration),
            notes=data.notes,
            is_rewash=data.is_rewash,
            items=items,
        )
        if data.is_rewash:
            job.discount_type = DiscountType.PERCENTAGE
            job.discount_value = settings.REWASH_DISCOUNT_PERCENT
        job.calculate_totals(tax_rate=settings.TAX_RATE)

        self.db.add(job)
        await self.db.flush()

        if bay:
            bay.occupy(job.id)
        if customer:
            customer.total_visits += 1

        await self.db.flush()
        logger.info(
            f"Checked in {vehicle.registration_no} as {job.job_number} "
            f"(total {job.total_amount} {settings.CURRENCY})"
        )

        return await self._load(job.id)

    async def get_by_id(self, job_id: int) -> Job | None:
        result = await self.db.execute(
            select(Job).where(Job.id == job_id)
        )
        return result.scalar_one_or_none()

    async def get_or_404(self, job_id: int) -> Job:
        """
        Get job by ID or raise 404.

        Raises:
            HTTPException: If job not found
        """
        job = await self.get_by_id(job_id)
        if not job:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Job not found",
            )
        return job

    async def get_by_number_or_404(self, job_number: str) -> Job:
        result = await self.db.execute(
            select(Job).where(Job.job_number == job_number.upper())
        )
        job = result.scalar_one_or_none()
        if not job:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Job not found",
            )
        return job

    async def queue(self, view: str, since: datetime | None = None) -> list[Job]:
        """
        Jobs in one queue view ("active", "completed" or "unpaid").
        Active jobs are ordered by priority, then arrival.
        """
        query = select(Job)
        if since:
            query = query.where(Job.check_in_time >= since)

        result = await self.db.execute(query.order_by(Job.check_in_time))
        jobs = VIEWS[view](result.scalars().all())

        if view == "active":
            jobs.sort(key=lambda job: PRIORITY_RANK.get(job.priority, 99))
        return jobs

    async def list(
        self,
        skip: int = 0,
        limit: int = 20,
        status_filter: JobStatus | None = None,
        payment_status: JobPaymentStatus | None = None,
        bay_id: int | None = None,
        staff_id: int | None = None,
        customer_id: int | None = None,
        on_date: date | None = None,
        search: str | None = None,
    ) -> tuple[list[Job], int]:
        """
        List jobs with pagination and filters.

        Args:
            search: Matches job number or registration number

        Returns:
            Tuple of (jobs list, total count)
        """
        conditions = []

        if status_filter:
            conditions.append(Job.status == status_filter)
        if payment_status:
            conditions.append(Job.payment_status == payment_status)
        if bay_id:
            conditions.append(Job.bay_id == bay_id)
        if staff_id:
            conditions.append(Job.assigned_staff_id == staff_id)
        if customer_id:
            conditions.append(Job.customer_id == customer_id)
        if on_date:
            start = datetime.combine(on_date, datetime.min.time(), tzinfo=timezone.utc)
            conditions.append(Job.check_in_time >= start)
            conditions.append(Job.check_in_time < start + timedelta(days=1))

        query = select(Job).join(Vehicle, Job.vehicle_id == Vehicle.id).where(*conditions)
        count_query = (
            select(func.count(Job.id))
            .join(Vehicle, Job.vehicle_id == Vehicle.id)
            .where(*conditions)
        )

        if search:
            search_filter = f"%{search}%"
            condition = (
                (Job.job_number.ilike(search_filter)) |
                (Vehicle.registration_no.ilike(search_filter))
            )
            query = query.where(condition)
            count_query = count_query.where(condition)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        query = query.order_by(Job.check_in_time.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        jobs = list(result.scalars().all())

        return jobs, total

    async def update_status(
        self,
        job: Job,
        new_status: JobStatus,
        notes: str | None = None,
    ) -> Job:
        """
        Move a job one step along the wash flow, or cancel it.

        Raises:
            InvalidTransition: If the move is not allowed
        """
        lifecycle.transition(job, new_status)
        now = utcnow()

        if new_status in (JobStatus.WASHING, JobStatus.DETAILING):
            for item in job.items:
                if item.status == JobItemStatus.PENDING:
                    item.status = JobItemStatus.IN_PROGRESS
                    item.started_at = now
        elif new_status == JobStatus.COMPLETED:
            job.actual_completion = now
            for item in job.items:
                item.started_at = item.started_at or now
                item.status = JobItemStatus.COMPLETED
                item.completed_at = now
            release_bay(job)
            # Prepaid and zero-total jobs settle as soon as the work is done
            settle_if_covered(job)
        elif new_status == JobStatus.CANCELLED:
            release_bay(job)

        if notes:
            job.add_note(notes)

        await self.db.flush()
        return await self._load(job.id)

    async def cancel(self, job: Job, reason: str | None = None) -> Job:
        return await self.update_status(
            job,
            JobStatus.CANCELLED,
            notes=f"Cancelled: {reason}" if reason else "Cancelled",
        )

    async def assign_bay(self, job: Job, bay_id: int) -> Job:
        """
        Put a job in a bay, releasing the bay it held before.

        Raises:
            HTTPException: If the job is past washing or the bay is not available
        """
        if job.status not in (JobStatus.CHECKED_IN, JobStatus.IN_QUEUE, JobStatus.WASHING):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot assign a bay to a {job.status.value} job",
            )
        if job.bay_id == bay_id:
            return job

        bay = await self._get_available_bay(bay_id)
        release_bay(job)
        job.bay_id = bay.id
        bay.occupy(job.id)

        await self.db.flush()
        logger.info(f"Job {job.job_number} assigned to bay {bay.bay_number}")
        return await self._load(job.id)

    async def assign_staff(self, job: Job, staff_id: int) -> Job:
        if lifecycle.is_terminal(job.status):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot assign staff to a {job.status.value} job",
            )

        staff = await self._get_active_staff(staff_id)
        job.assigned_staff_id = staff.id

        await self.db.flush()
        return await self._load(job.id)

    async def add_service(self, job: Job, line: JobServiceLine) -> Job:
        """
        Add a catalog service to an open job and recalculate its totals.

        The new line starts in step with the work already done on the job.

        Raises:
            HTTPException: If the job is paid or cancelled, the service is
                already on the job, or the service is unknown or inactive
        """
        if lifecycle.is_terminal(job.status):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot add services to a {job.status.value} job",
            )
        if any(item.service_id == line.service_id for item in job.items):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Service is already on this job",
            )

        services = await WashServiceService(self.db).get_many([line.service_id])
        service = services[line.service_id]
        now = utcnow()

        if job.status == JobStatus.COMPLETED:
            item = _price_line(service, line, JobItemStatus.COMPLETED)
            item.started_at = item.completed_at = now
        elif job.status in (JobStatus.WASHING, JobStatus.DETAILING):
            item = _price_line(service, line, JobItemStatus.IN_PROGRESS)
            item.started_at = now
        else:
            item = _price_line(service, line)

        job.items.append(item)
        job.estimated_duration += service.duration_minutes * line.quantity
        job.estimated_completion = job.check_in_time + timedelta(minutes=job.estimated_duration)
        job.calculate_totals(tax_rate=settings.TAX_RATE)
        settle_if_covered(job)

        await self.db.flush()
        logger.info(
            f"Added {service.name} to {job.job_number} (total {job.total_amount} {settings.CURRENCY})"
        )
        return await self._load(job.id)

    async def apply_discount(
        self,
        job: Job,
        discount_type: DiscountType,
        discount_value: Decimal,
        reason: str | None = None,
    ) -> Job:
        """
        Set the job level discount and recalculate totals.

        A completed job whose payments now cover the discounted total
        moves to paid.

        Raises:
            HTTPException: If the job is paid or cancelled, or the new total
                would fall below what has already been paid or is pending
        """
        if lifecycle.is_terminal(job.status):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot apply a discount to a {job.status.value} job",
            )

        previous = (job.discount_type, job.discount_value)
        job.discount_type = discount_type
        job.discount_value = discount_value
        job.calculate_totals(tax_rate=settings.TAX_RATE)

        committed = job.amount_paid + job.pending_amount
        if job.total_amount < committed:
            job.discount_type, job.discount_value = previous
            job.calculate_totals(tax_rate=settings.TAX_RATE)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Discounted total would be below the {committed} already paid or pending",
            )

        if discount_type == DiscountType.PERCENTAGE:
            label = f"{discount_value}%"
        else:
            label = f"{settings.CURRENCY} {discount_value}"
        job.add_note(f"Discount: {label} ({reason})" if reason else f"Discount: {label}")
        settle_if_covered(job)

        await self.db.flush()
        logger.info(f"Discount {label} on {job.job_number}, total now {job.total_amount}")
        return await self._load(job.id)
