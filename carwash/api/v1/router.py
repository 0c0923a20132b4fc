"""
API v1 router - aggregates all endpoint routers.
"""

from fastapi import APIRouter

from carwash.api.v1.endpoints import (
    auth,
    customers,
    vehicles,
    wash_services,
    bays,
    jobs,
    payments,
)

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["Authentication"],
)

api_router.include_router(
    customers.router,
    prefix="/customers",
    tags=["Customers"],
)

api_router.include_router(
    vehicles.router,
    prefix="/vehicles",
    tags=["Vehicles"],
)

api_router.include_router(
    wash_services.router,
    prefix="/services",
    tags=["Services"],
)

api_router.include_router(
    bays.router,
    prefix="/bays",
    tags=["Bays"],
)

api_router.include_router(
    jobs.router,
    prefix="/jobs",
    tags=["Jobs"],
)

api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["Payments"],
)
