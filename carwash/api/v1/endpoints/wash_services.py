"""
Wash service (price list) endpoints.
"""

from fastapi import APIRouter, Query, status

from carwash.api.deps import DbSession, CurrentUser, ManagerUser
from carwash.schemas.catalog import (
    WashServiceCreate,
    WashServiceUpdate,
    WashServiceResponse,
)
from carwash.services.catalog import WashServiceService


router = APIRouter()


@router.post(
    "",
    response_model=WashServiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add service",
    description="Add a service to the price list",
)
async def create_service(
    data: WashServiceCreate,
    current_user: ManagerUser,
    db: DbSession,
) -> WashServiceResponse:
    service = WashServiceService(db)
    wash_service = await service.create(data)
    return WashServiceResponse.model_validate(wash_service)


@router.get(
    "",
    response_model=list[WashServiceResponse],
    summary="Price list",
)
async def list_services(
    current_user: CurrentUser,
    db: DbSession,
    include_inactive: bool = Query(False, description="Include retired services"),
) -> list[WashServiceResponse]:
    service = WashServiceService(db)
    services = await service.list(active_only=not include_inactive)
    return [WashServiceResponse.model_validate(s) for s in services]


@router.get(
    "/{service_id}",
    response_model=WashServiceResponse,
    summary="Service details",
)
async def get_service(
    service_id: int,
    current_user: CurrentUser,
    db: DbSession,
) -> WashServiceResponse:
    service = WashServiceService(db)
    wash_service = await service.get_or_404(service_id)
    return WashServiceResponse.model_validate(wash_service)


@router.patch(
    "/{service_id}",
    response_model=WashServiceResponse,
    summary="Update service",
    description="Change price, duration or retire a service",
)
async def update_service(
    service_id: int,
    data: WashServiceUpdate,
    current_user: ManagerUser,
    db: DbSession,
) -> WashServiceResponse:
    service = WashServiceService(db)
    wash_service = await service.get_or_404(service_id)
    wash_service = await service.update(wash_service, data)
    return WashServiceResponse.model_validate(wash_service)
