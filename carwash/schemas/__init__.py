"""
Pydantic schemas for request/response validation.
"""

from carwash.schemas.user import (
    UserResponse,
    StaffSummary,
)
from carwash.schemas.customer import (
    CustomerCreate,
    CustomerUpdate,
    CustomerResponse,
    VehicleResponse,
)
from carwash.schemas.catalog import (
    WashServiceCreate,
    WashServiceUpdate,
    WashServiceResponse,
    BayCreate,
    BayResponse,
)
from carwash.schemas.payment import (
    PaymentCreate,
    PaymentResponse,
    PaymentHandleResponse,
    ReconcileRequest,
)
from carwash.schemas.job import (
    CheckInRequest,
    JobResponse,
    JobSummary,
    StatusUpdateRequest,
)
from carwash.schemas.auth import (
    TokenPair,
    LoginRequest,
    RegisterRequest,
    RefreshTokenRequest,
)

__all__ = [
    # User
    "UserResponse",
    "StaffSummary",
    # Customer
    "CustomerCreate",
    "CustomerUpdate",
    "CustomerResponse",
    "VehicleResponse",
    # Catalog
    "WashServiceCreate",
    "WashServiceUpdate",
    "WashServiceResponse",
    "BayCreate",
    "BayResponse",
    # Payment
    "PaymentCreate",
    "PaymentResponse",
    "PaymentHandleResponse",
    "ReconcileRequest",
    # Job
    "CheckInRequest",
    "JobResponse",
    "JobSummary",
    "StatusUpdateRequest",
    # Auth
    "TokenPair",
    "LoginRequest",
    "RegisterRequest",
    "RefreshTokenRequest",
]
