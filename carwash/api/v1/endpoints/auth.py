"""
Authentication endpoints.
Login, staff registration, refresh token.
"""

from fastapi import APIRouter, HTTPException, status

from carwash.api.deps import DbSession, CurrentUser, ManagerUser
from carwash.schemas.auth import (
    LoginRequest,
    RegisterRequest,
    TokenPair,
    RefreshTokenRequest,
)
from carwash.schemas.user import UserResponse
from carwash.models.user import UserRole
from carwash.services.auth import AuthService


router = APIRouter()


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register staff",
    description="Create a staff account (managers and admins only)",
)
async def register(
    data: RegisterRequest,
    current_user: ManagerUser,
    db: DbSession,
) -> UserResponse:
    """Register a new staff member."""
    if data.role == UserRole.ADMIN and current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins can create admin accounts",
        )
    service = AuthService(db)
    user = await service.register(data)
    return UserResponse.model_validate(user)


@router.post(
    "/login",
    response_model=TokenPair,
    summary="Login",
    description="Log in with email and password",
)
async def login(
    data: LoginRequest,
    db: DbSession,
) -> TokenPair:
    """Log in and get JWT tokens."""
    service = AuthService(db)
    _, tokens = await service.login(data)
    return tokens


@router.post(
    "/refresh",
    response_model=TokenPair,
    summary="Refresh token",
    description="Get a new token pair from a refresh token",
)
async def refresh_token(
    data: RefreshTokenRequest,
    db: DbSession,
) -> TokenPair:
    """Refresh JWT tokens."""
    service = AuthService(db)
    return await service.refresh_token(data.refresh_token)


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Current profile",
    description="Get the logged-in staff member",
)
async def get_current_user(
    current_user: CurrentUser,
) -> UserResponse:
    """Get the logged-in staff member."""
    return UserResponse.model_validate(current_user)
