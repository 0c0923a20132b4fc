"""
Wash bay endpoints.
"""

from fastapi import APIRouter, Query, status

from carwash.api.deps import DbSession, CurrentUser, ManagerUser
from carwash.schemas.catalog import BayCreate, BayResponse
from carwash.services.catalog import BayService


router = APIRouter()


@router.post(
    "",
    response_model=BayResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add bay",
)
async def create_bay(
    data: BayCreate,
    current_user: ManagerUser,
    db: DbSession,
) -> BayResponse:
    service = BayService(db)
    bay = await service.create(data)
    return BayResponse.model_validate(bay)


@router.get(
    "",
    response_model=list[BayResponse],
    summary="List bays",
)
async def list_bays(
    current_user: CurrentUser,
    db: DbSession,
    available_only: bool = Query(False, description="Only bays free for a new job"),
) -> list[BayResponse]:
    service = BayService(db)
    bays = await service.list(available_only=available_only)
    return [BayResponse.model_validate(b) for b in bays]


@router.get(
    "/{bay_id}",
    response_model=BayResponse,
    summary="Bay details",
)
async def get_bay(
    bay_id: int,
    current_user: CurrentUser,
    db: DbSession,
) -> BayResponse:
    service = BayService(db)
    bay = await service.get_or_404(bay_id)
    return BayResponse.model_validate(bay)


@router.put(
    "/{bay_id}/maintenance",
    response_model=BayResponse,
    summary="Toggle maintenance",
    description="Take a bay out of service, or bring it back",
)
async def set_bay_maintenance(
    bay_id: int,
    current_user: ManagerUser,
    db: DbSession,
    maintenance: bool = Query(True),
) -> BayResponse:
    service = BayService(db)
    bay = await service.get_or_404(bay_id)
    bay = await service.set_maintenance(bay, maintenance)
    return BayResponse.model_validate(bay)
