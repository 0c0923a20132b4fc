"""
Vehicle endpoints.
"""

from fastapi import APIRouter, Query

from carwash.api.deps import DbSession, CurrentUser
from carwash.schemas.base import PageMeta
from carwash.schemas.customer import VehicleResponse, VehicleUpdate, VehicleListResponse
from carwash.schemas.job import JobSummary, VehicleHistoryResponse
from carwash.services.vehicle import VehicleService


router = APIRouter()


@router.get(
    "",
    response_model=VehicleListResponse,
    summary="List vehicles",
)
async def list_vehicles(
    current_user: CurrentUser,
    db: DbSession,
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(20, ge=1, le=100, description="Items per page"),
    search: str | None = Query(None, description="Registration, make or model"),
    customer_id: int | None = Query(None),
) -> VehicleListResponse:
    service = VehicleService(db)
    skip = (page - 1) * per_page

    vehicles, total = await service.list(
        skip=skip, limit=per_page, search=search, customer_id=customer_id
    )

    return VehicleListResponse(
        items=[VehicleResponse.model_validate(v) for v in vehicles],
        total=total,
        page=page,
        per_page=per_page,
        pages=PageMeta.count_pages(total, per_page),
    )


@router.get(
    "/registration/{registration_no}",
    response_model=VehicleResponse,
    summary="Find vehicle by registration",
)
async def get_vehicle_by_registration(
    registration_no: str,
    current_user: CurrentUser,
    db: DbSession,
) -> VehicleResponse:
    service = VehicleService(db)
    vehicle = await service.get_by_registration_or_404(registration_no)
    return VehicleResponse.model_validate(vehicle)


@router.get(
    "/{vehicle_id}",
    response_model=VehicleResponse,
    summary="Vehicle details",
)
async def get_vehicle(
    vehicle_id: int,
    current_user: CurrentUser,
    db: DbSession,
) -> VehicleResponse:
    service = VehicleService(db)
    vehicle = await service.get_or_404(vehicle_id)
    return VehicleResponse.model_validate(vehicle)


@router.patch(
    "/{vehicle_id}",
    response_model=VehicleResponse,
    summary="Update vehicle",
)
async def update_vehicle(
    vehicle_id: int,
    data: VehicleUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> VehicleResponse:
    service = VehicleService(db)
    vehicle = await service.get_or_404(vehicle_id)
    vehicle = await service.update(vehicle, data)
    return VehicleResponse.model_validate(vehicle)


@router.get(
    "/{vehicle_id}/history",
    response_model=VehicleHistoryResponse,
    summary="Vehicle history",
    description="Past jobs for a vehicle, newest first",
)
async def get_vehicle_history(
    vehicle_id: int,
    current_user: CurrentUser,
    db: DbSession,
    limit: int = Query(50, ge=1, le=200),
) -> VehicleHistoryResponse:
    service = VehicleService(db)
    vehicle = await service.get_or_404(vehicle_id)
    jobs, total_spent = await service.history(vehicle, limit=limit)
    return VehicleHistoryResponse(
        vehicle=VehicleResponse.model_validate(vehicle),
        visits=len(jobs),
        total_spent=total_spent,
        jobs=[JobSummary.model_validate(j) for j in jobs],
    )
