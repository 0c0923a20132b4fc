"""
Customer service.
Customer lookup and CRUD; vehicles are created at check-in.
"""

import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from fastapi import HTTPException, status

from carwash.core.phone import format_phone_number, is_valid_phone_number
from carwash.models.customer import Customer
from carwash.schemas.customer import CustomerCreate, CustomerUpdate

logger = logging.getLogger(__name__)


def normalize_customer_phone(phone: str) -> str:
    """International format for valid Kenyan numbers, trimmed input otherwise."""
    if is_valid_phone_number(phone):
        return format_phone_number(phone)
    return phone.strip()


class CustomerService:
    """Service for customer operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, data: CustomerCreate) -> Customer:
        """
        Create a new customer.

        Raises:
            HTTPException: If a customer with the same phone exists
        """
        phone = normalize_customer_phone(data.phone)
        if await self.get_by_phone(phone):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A customer with this phone number already exists",
            )

        customer = Customer(**data.model_dump(exclude={"phone"}), phone=phone)

        self.db.add(customer)
        await self.db.flush()
        await self.db.refresh(customer)

        return customer

    async def get_by_id(self, customer_id: int) -> Customer | None:
        result = await self.db.execute(
            select(Customer).where(Customer.id == customer_id)
        )
        return result.scalar_one_or_none()

    async def get_by_phone(self, phone: str) -> Customer | None:
        result = await self.db.execute(
            select(Customer).where(Customer.phone == normalize_customer_phone(phone))
        )
        return result.scalar_one_or_none()

    async def get_or_404(self, customer_id: int) -> Customer:
        """
        Get customer by ID or raise 404.

        Raises:
            HTTPException: If customer not found
        """
        customer = await self.get_by_id(customer_id)
        if not customer:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Customer not found",
            )
        return customer

    async def list(
        self,
        skip: int = 0,
        limit: int = 20,
        search: str | None = None,
    ) -> tuple[list[Customer], int]:
        """
        List customers with pagination and search.

        Args:
            skip: Number of records to skip
            limit: Maximum records to return
            search: Search term for name/phone

        Returns:
            Tuple of (customers list, total count)
        """
        query = select(Customer)
        count_query = select(func.count(Customer.id))

        if search:
            search_filter = f"%{search}%"
            condition = (
                (Customer.name.ilike(search_filter)) |
                (Customer.phone.ilike(search_filter))
            )
            query = query.where(condition)
            count_query = count_query.where(condition)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        query = query.order_by(Customer.name).offset(skip).limit(limit)
        result = await self.db.execute(query)
        customers = list(result.scalars().all())

        return customers, total

    async def update(self, customer: Customer, data: CustomerUpdate) -> Customer:
        update_data = data.model_dump(exclude_unset=True)

        for field, value in update_data.items():
            setattr(customer, field, value)

        await self.db.flush()
        await self.db.refresh(customer)

        return customer
