"""
Authentication service.
Handles staff registration, login, and token management.
"""

import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from fastapi import HTTPException, status

from carwash.core.config import settings
from carwash.models.user import User, UserRole
from carwash.schemas.auth import RegisterRequest, LoginRequest
from carwash.core.security import (
    get_password_hash,
    verify_password,
    create_token_pair,
    decode_token,
    TokenPair,
)

logger = logging.getLogger(__name__)


class AuthService:
    """Service for authentication operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(self, data: RegisterRequest) -> User:
        """
        Register a new staff member.

        Args:
            data: Registration data

        Returns:
            Created user

        Raises:
            HTTPException: If email already exists
        """
        if await self.get_user_by_email(data.email):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="An account with this email already exists",
            )

        user = User(
            email=data.email,
            hashed_password=get_password_hash(data.password),
            full_name=data.full_name,
            phone=data.phone,
            role=data.role,
        )

        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)

        logger.info(f"Registered {user.role.value} {user.email}")
        return user

    async def login(self, data: LoginRequest) -> tuple[User, TokenPair]:
        """
        Authenticate a staff member and generate tokens.

        Args:
            data: Login credentials

        Returns:
            Tuple of (user, token_pair)

        Raises:
            HTTPException: If credentials are invalid or the account is disabled
        """
        user = await self.get_user_by_email(data.email)

        if not user or not verify_password(data.password, user.hashed_password):
            logger.warning(f"Failed login for {data.email}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password",
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account disabled",
            )

        return user, create_token_pair(user.id, user.email, user.role.value)

    async def refresh_token(self, refresh_token: str) -> TokenPair:
        """
        Generate new token pair from refresh token.

        Raises:
            HTTPException: If refresh token is invalid
        """
        token_data = decode_token(refresh_token)

        if token_data is None or token_data.token_type != "refresh":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid refresh token",
            )

        user = await self.get_user_by_id(token_data.user_id)

        if not user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found",
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account disabled",
            )

        return create_token_pair(user.id, user.email, user.role.value)

    async def get_user_by_id(self, user_id: int) -> User | None:
        """Get user by ID."""
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> User | None:
        """Get user by email."""
        result = await self.db.execute(
            select(User).where(User.email == email)
        )
        return result.scalar_one_or_none()

    async def ensure_first_admin(self) -> User | None:
        """
        Create the admin from FIRST_ADMIN_EMAIL / FIRST_ADMIN_PASSWORD
        when no user exists yet.

        Returns:
            The created admin, or None if nothing was done
        """
        if not settings.FIRST_ADMIN_EMAIL or not settings.FIRST_ADMIN_PASSWORD:
            return None

        result = await self.db.execute(select(func.count(User.id)))
        if result.scalar():
            return None

        user = User(
            email=settings.FIRST_ADMIN_EMAIL,
            hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
            full_name="Administrator",
            role=UserRole.ADMIN,
        )
        self.db.add(user)
        await self.db.flush()

        logger.info(f"Created first admin {user.email}")
        return user
