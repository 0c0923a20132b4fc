"""
Vehicle service.
Lookup by registration, owner linking and visit history.
"""

import logging
import re
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from fastapi import HTTPException, status

from carwash.models.customer import Vehicle
from carwash.models.job import Job, JobStatus
from carwash.schemas.customer import VehicleUpdate
from carwash.services.customer import CustomerService

logger = logging.getLogger(__name__)


def normalize_registration(registration_no: str) -> str:
    """'kda 123a' / 'KDA-123A' -> 'KDA 123A'."""
    cleaned = re.sub(r"[^A-Z0-9]+", " ", registration_no.upper())
    return " ".join(cleaned.split())


class VehicleService:
    """Service for vehicle operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, vehicle_id: int) -> Vehicle | None:
        result = await self.db.execute(
            select(Vehicle).where(Vehicle.id == vehicle_id)
        )
        return result.scalar_one_or_none()

    async def get_or_404(self, vehicle_id: int) -> Vehicle:
        vehicle = await self.get_by_id(vehicle_id)
        if not vehicle:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Vehicle not found",
            )
        return vehicle

    async def get_by_registration_or_404(self, registration_no: str) -> Vehicle:
        """Find a vehicle however its plate was typed."""
        result = await self.db.execute(
            select(Vehicle).where(
                Vehicle.registration_no == normalize_registration(registration_no)
            )
        )
        vehicle = result.scalar_one_or_none()
        if not vehicle:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Vehicle not found",
            )
        return vehicle

    async def history(self, vehicle: Vehicle, limit: int = 50) -> tuple[list[Job], Decimal]:
        """
        Jobs for a vehicle, newest first, and the money received for them.

        Cancelled jobs are listed but the total counts completed payments only.
        """
        result = await self.db.execute(
            select(Job)
            .where(Job.vehicle_id == vehicle.id)
            .order_by(Job.check_in_time.desc())
            .limit(limit)
        )
        jobs = list(result.scalars().all())
        total_spent = sum(
            (job.amount_paid for job in jobs if job.status != JobStatus.CANCELLED),
            Decimal("0.00"),
        )
        return jobs, total_spent

    async def list(
        self,
        skip: int = 0,
        limit: int = 20,
        search: str | None = None,
        customer_id: int | None = None,
    ) -> tuple[list[Vehicle], int]:
        """
        List vehicles with pagination.

        Args:
            search: Matches registration, make or model

        Returns:
            Tuple of (vehicles list, total count)
        """
        query = select(Vehicle)
        count_query = select(func.count(Vehicle.id))

        if customer_id:
            query = query.where(Vehicle.customer_id == customer_id)
            count_query = count_query.where(Vehicle.customer_id == customer_id)

        if search:
            search_filter = f"%{search}%"
            condition = (
                (Vehicle.registration_no.ilike(search_filter)) |
                (Vehicle.make.ilike(search_filter)) |
                (Vehicle.model.ilike(search_filter))
            )
            query = query.where(condition)
            count_query = count_query.where(condition)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        query = query.order_by(Vehicle.registration_no).offset(skip).limit(limit)
        result = await self.db.execute(query)
        vehicles = list(result.scalars().all())

        return vehicles, total

    async def update(self, vehicle: Vehicle, data: VehicleUpdate) -> Vehicle:
        update_data = data.model_dump(exclude_unset=True)

        if update_data.get("customer_id") is not None:
            await CustomerService(self.db).get_or_404(update_data["customer_id"])

        for field, value in update_data.items():
            setattr(vehicle, field, value)

        await self.db.flush()
        await self.db.refresh(vehicle)
        logger.info(f"Vehicle {vehicle.registration_no} updated")

        return vehicle
