"""
Catalog service.
Wash services (price list) and wash bays.
"""

import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from fastapi import HTTPException, status

from carwash.models.catalog import WashService, Bay, BayStatus
from carwash.schemas.catalog import WashServiceCreate, WashServiceUpdate, BayCreate

logger = logging.getLogger(__name__)


class WashServiceService:
    """Service for the wash service price list."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, data: WashServiceCreate) -> WashService:
        service = WashService(**data.model_dump())

        self.db.add(service)
        await self.db.flush()
        await self.db.refresh(service)

        logger.info(f"Added wash service {service.name} at {service.base_price}")
        return service

    async def get_by_id(self, service_id: int) -> WashService | None:
        result = await self.db.execute(
            select(WashService).where(WashService.id == service_id)
        )
        return result.scalar_one_or_none()

    async def get_or_404(self, service_id: int) -> WashService:
        service = await self.get_by_id(service_id)
        if not service:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Service not found",
            )
        return service

    async def get_many(self, service_ids: list[int]) -> dict[int, WashService]:
        """
        Load active services by id.

        Raises:
            HTTPException: If any id is unknown or inactive
        """
        result = await self.db.execute(
            select(WashService).where(
                WashService.id.in_(service_ids),
                WashService.is_active.is_(True),
            )
        )
        services = {service.id: service for service in result.scalars().all()}

        missing = [sid for sid in service_ids if sid not in services]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Service(s) not found or inactive: {', '.join(map(str, missing))}",
            )
        return services

    async def list(self, active_only: bool = True) -> list[WashService]:
        query = select(WashService)
        if active_only:
            query = query.where(WashService.is_active.is_(True))

        result = await self.db.execute(query.order_by(WashService.category, WashService.name))
        return list(result.scalars().all())

    async def update(self, service: WashService, data: WashServiceUpdate) -> WashService:
        update_data = data.model_dump(exclude_unset=True)

        for field, value in update_data.items():
            setattr(service, field, value)

        await self.db.flush()
        await self.db.refresh(service)

        return service


class BayService:
    """Service for wash bays."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, data: BayCreate) -> Bay:
        existing = await self.db.execute(
            select(Bay).where(Bay.bay_number == data.bay_number)
        )
        if existing.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Bay {data.bay_number} already exists",
            )

        bay = Bay(**data.model_dump())

        self.db.add(bay)
        await self.db.flush()
        await self.db.refresh(bay)

        return bay

    async def get_by_id(self, bay_id: int) -> Bay | None:
        result = await self.db.execute(
            select(Bay).where(Bay.id == bay_id)
        )
        return result.scalar_one_or_none()

    async def get_or_404(self, bay_id: int) -> Bay:
        bay = await self.get_by_id(bay_id)
        if not bay:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Bay not found",
            )
        return bay

    async def list(self, available_only: bool = False) -> list[Bay]:
        query = select(Bay).where(Bay.is_active.is_(True))
        if available_only:
            query = query.where(Bay.status == BayStatus.AVAILABLE)

        result = await self.db.execute(query.order_by(Bay.bay_number))
        return list(result.scalars().all())

    async def set_maintenance(self, bay: Bay, maintenance: bool) -> Bay:
        """
        Take a bay out of service or bring it back.

        Raises:
            HTTPException: If the bay currently holds a job
        """
        if maintenance:
            if bay.status == BayStatus.OCCUPIED:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Bay is occupied",
                )
            bay.status = BayStatus.MAINTENANCE
        elif bay.status == BayStatus.MAINTENANCE:
            bay.status = BayStatus.AVAILABLE

        await self.db.flush()
        await self.db.refresh(bay)
        return bay
