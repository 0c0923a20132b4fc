"""
Customer management endpoints.
"""

from fastapi import APIRouter, HTTPException, Query, status

from carwash.api.deps import DbSession, CurrentUser
from carwash.schemas.customer import (
    CustomerCreate,
    CustomerUpdate,
    CustomerResponse,
    CustomerListResponse,
)
from carwash.schemas.base import PageMeta
from carwash.services.customer import CustomerService


router = APIRouter()


@router.post(
    "",
    response_model=CustomerResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create customer",
)
async def create_customer(
    data: CustomerCreate,
    current_user: CurrentUser,
    db: DbSession,
) -> CustomerResponse:
    """Create a new customer."""
    service = CustomerService(db)
    customer = await service.create(data)
    return CustomerResponse.model_validate(customer)


@router.get(
    "",
    response_model=CustomerListResponse,
    summary="List customers",
    description="Paginated customer list",
)
async def list_customers(
    current_user: CurrentUser,
    db: DbSession,
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(20, ge=1, le=100, description="Items per page"),
    search: str | None = Query(None, description="Search by name or phone"),
) -> CustomerListResponse:
    """List customers with pagination."""
    service = CustomerService(db)
    skip = (page - 1) * per_page

    customers, total = await service.list(skip=skip, limit=per_page, search=search)

    return CustomerListResponse(
        items=[CustomerResponse.model_validate(c) for c in customers],
        total=total,
        page=page,
        per_page=per_page,
        pages=PageMeta.count_pages(total, per_page),
    )


@router.get(
    "/phone/{phone}",
    response_model=CustomerResponse,
    summary="Find customer by phone",
)
async def get_customer_by_phone(
    phone: str,
    current_user: CurrentUser,
    db: DbSession,
) -> CustomerResponse:
    service = CustomerService(db)
    customer = await service.get_by_phone(phone)
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return CustomerResponse.model_validate(customer)


@router.get(
    "/{customer_id}",
    response_model=CustomerResponse,
    summary="Customer details",
)
async def get_customer(
    customer_id: int,
    current_user: CurrentUser,
    db: DbSession,
) -> CustomerResponse:
    """Get customer by ID."""
    service = CustomerService(db)
    customer = await service.get_or_404(customer_id)
    return CustomerResponse.model_validate(customer)


@router.patch(
    "/{customer_id}",
    response_model=CustomerResponse,
    summary="Update customer",
)
async def update_customer(
    customer_id: int,
    data: CustomerUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> CustomerResponse:
    """Update customer."""
    service = CustomerService(db)
    customer = await service.get_or_404(customer_id)
    customer = await service.update(customer, data)
    return CustomerResponse.model_validate(customer)
