"""
Pytest configuration and fixtures.
"""

from decimal import Decimal
from typing import AsyncGenerator
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from carwash.core.database import Base, get_db
from carwash.core.security import get_password_hash, create_token_pair
from carwash.api.deps import get_payment_gateway
from carwash.main import app
from carwash.models.user import User, UserRole
from carwash.models.catalog import WashService, Bay, ServiceCategory
from carwash.models.job import Job, JobStatus
from carwash.models.payment import PaymentStatus
from carwash.schemas.job import CheckInRequest, JobServiceLine
from carwash.services.job import JobService
from carwash.services.mpesa import StkPushResult, StkQueryResult


# In-memory SQLite shared by every connection of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite://"

FORWARD_PATH = [
    JobStatus.IN_QUEUE,
    JobStatus.WASHING,
    JobStatus.DETAILING,
    JobStatus.COMPLETED,
]


class FakeGateway:
    """
    In-memory stand-in for the Daraja client.

    ``statuses`` is consumed one entry per status query; an entry may be an
    exception to raise. Once empty, ``default_status`` is returned.
    """

    def __init__(self):
        self.pushes: list[dict] = []
        self.queries: list[str] = []
        self.statuses: list = []
        self.default_status = PaymentStatus.PENDING
        self.push_error: Exception | None = None

    async def initiate_stk_push(self, phone, amount, account_reference, description):
        if self.push_error:
            raise self.push_error
        self.pushes.append({
            "phone": phone,
            "amount": amount,
            "account_reference": account_reference,
            "description": description,
        })
        return StkPushResult(
            checkout_request_id=f"ws_{len(self.pushes)}",
            merchant_request_id=f"mr_{len(self.pushes)}",
            customer_message="Success. Request accepted for processing",
        )

    async def query_stk_status(self, checkout_request_id):
        self.queries.append(checkout_request_id)
        outcome = self.statuses.pop(0) if self.statuses else self.default_status
        if isinstance(outcome, Exception):
            raise outcome
        result_code = {
            PaymentStatus.COMPLETED: "0",
            PaymentStatus.FAILED: "1032",
            PaymentStatus.PENDING: "4999",
        }[outcome]
        return StkQueryResult(status=outcome, result_code=result_code, result_desc="test")


@pytest.fixture
async def test_engine():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
async def client(
    db_session: AsyncSession,
    fake_gateway: FakeGateway,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database session and gateway overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(db_session: AsyncSession, email: str, role: UserRole) -> User:
    user = User(
        email=email,
        hashed_password=get_password_hash("testpassword123"),
        full_name=email.split("@")[0].title(),
        role=role,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def cashier(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "cashier@example.com", UserRole.CASHIER)


@pytest.fixture
async def manager(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "manager@example.com", UserRole.MANAGER)


def bearer(user: User) -> dict:
    tokens = create_token_pair(user.id, user.email, user.role.value)
    return {"Authorization": f"Bearer {tokens.access_token}"}


@pytest.fixture
def cashier_headers(cashier: User) -> dict:
    return bearer(cashier)


@pytest.fixture
def manager_headers(manager: User) -> dict:
    return bearer(manager)


@pytest.fixture
async def auth_client(client: AsyncClient, cashier: User) -> AsyncClient:
    """Client logged in as a cashier."""
    response = await client.post(
        "/api/v1/auth/login",
        json={
            "email": "cashier@example.com",
            "password": "testpassword123",
        },
    )
    tokens = response.json()

    client.headers["Authorization"] = f"Bearer {tokens['access_token']}"

    return client


@pytest.fixture
async def wash_services(db_session: AsyncSession) -> dict[str, WashService]:
    """Exterior 500, interior 1000, premium 2000."""
    services = {
        "exterior": WashService(
            name="Exterior wash",
            category=ServiceCategory.EXTERIOR,
            base_price=Decimal("500.00"),
            duration_minutes=15,
        ),
        "interior": WashService(
            name="Interior vacuum",
            category=ServiceCategory.INTERIOR,
            base_price=Decimal("1000.00"),
            duration_minutes=20,
        ),
        "premium": WashService(
            name="Premium full wash",
            category=ServiceCategory.FULL_WASH,
            base_price=Decimal("2000.00"),
            duration_minutes=45,
        ),
    }
    db_session.add_all(services.values())
    await db_session.commit()
    return services


@pytest.fixture
async def bay(db_session: AsyncSession) -> Bay:
    bay = Bay(name="Bay 1", bay_number=1)
    db_session.add(bay)
    await db_session.commit()
    await db_session.refresh(bay)
    return bay


@pytest.fixture
def make_job(db_session: AsyncSession, wash_services):
    """
    Factory: check a vehicle in and walk the job forward to ``status``.
    """

    async def factory(
        services: tuple[str, ...] = ("exterior", "interior"),
        status: JobStatus = JobStatus.COMPLETED,
        registration_no: str = "KDA 123A",
        customer_phone: str | None = "0712345678",
        customer_name: str | None = "Jane Wanjiku",
        bay_id: int | None = None,
        is_rewash: bool = False,
    ) -> Job:
        service = JobService(db_session)
        job = await service.check_in(
            CheckInRequest(
                registration_no=registration_no,
                customer_phone=customer_phone,
                customer_name=customer_name,
                services=[
                    JobServiceLine(service_id=wash_services[name].id) for name in services
                ],
                bay_id=bay_id,
                is_rewash=is_rewash,
            )
        )

        if status == JobStatus.CANCELLED:
            job = await service.cancel(job, "test")
        elif status != JobStatus.CHECKED_IN:
            for step in FORWARD_PATH[: FORWARD_PATH.index(status) + 1]:
                job = await service.update_status(job, step)

        await db_session.commit()
        return job

    return factory
