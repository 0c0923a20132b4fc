"""
CarWash POS API - Main Application Entry Point
Check-in, wash queue and payments (cash, card, M-Pesa) for a car wash.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.orm.exc import StaleDataError

from carwash.core.config import settings
from carwash.core.database import init_db, close_db, AsyncSessionLocal
from carwash.core.exceptions import CarwashError
from carwash.api.deps import close_payment_gateway
from carwash.api.v1.router import api_router
from carwash.services.auth import AuthService


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    # Initialize database tables (for development)
    if settings.is_development:
        await init_db()
        logger.info("Database tables initialized")

    async with AsyncSessionLocal() as session:
        await AuthService(session).ensure_first_admin()
        await session.commit()

    yield

    # Shutdown
    logger.info("Shutting down...")
    await close_payment_gateway()
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
## CarWash POS API

Point of sale backend for a car wash.

### Main features:

* **Authentication** - Staff accounts with roles, JWT tokens
* **Customers** - Customers, vehicles and loyalty points
* **Services & bays** - Price list and wash bays
* **Jobs** - Check-in, wash flow, active / completed / unpaid queues
* **Payments** - Cash, card, loyalty points and M-Pesa STK push
* **Receipts** - PDF receipts
    """,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)


# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Flatten validation errors into field/message pairs."""
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Validation error",
            "errors": errors,
        },
    )


@app.exception_handler(CarwashError)
async def carwash_exception_handler(request: Request, exc: CarwashError):
    """Render domain errors with their own status code."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "error": type(exc).__name__,
        },
    )


@app.exception_handler(StaleDataError)
async def stale_data_exception_handler(request: Request, exc: StaleDataError):
    """A job was changed by someone else between read and write."""
    logger.warning(f"Concurrent update rejected on {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": "This record was modified by another user. Reload and try again.",
            "error": "ConcurrentUpdate",
        },
    )


# Include API router
app.include_router(api_router, prefix="/api/v1")


# Health check endpoint
@app.get(
    "/health",
    tags=["Health"],
    summary="Server health check",
)
async def health_check():
    """Check if the API is running."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


# Root endpoint
@app.get(
    "/",
    tags=["Info"],
    summary="API information",
)
async def root():
    """Get API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "Car wash point of sale",
        "docs": "/docs" if settings.is_development else "Disabled in production",
        "health": "/health",
    }


# For running with uvicorn directly
if __name__ == "__main__":
    import os
    import uvicorn

    port = int(os.getenv("PORT", "8000"))

    uvicorn.run(
        "carwash.main:app",
        host=settings.HOST,
        port=port,
        reload=settings.is_development,
    )
