"""
API Dependencies.
Common dependencies for authentication, roles, database sessions and
the M-Pesa gateway.
"""

import logging
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from carwash.core.database import get_db
from carwash.core.security import decode_token
from carwash.models.user import User, UserRole
from carwash.services.mpesa import MpesaClient, PaymentGateway


logger = logging.getLogger(__name__)

# Bearer token security scheme
security = HTTPBearer(auto_error=False)

_gateway: MpesaClient | None = None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the current staff member from the JWT.

    Raises:
        HTTPException: If the token is invalid or the user does not exist
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired authentication token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not credentials:
        logger.warning("Request without token")
        raise credentials_exception

    token_data = decode_token(credentials.credentials)

    if token_data is None:
        logger.warning("Invalid or expired token")
        raise credentials_exception

    if token_data.token_type != "access":
        logger.warning("Wrong token type")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if token_data.user_id is None:
        logger.warning("Token without user id")
        raise credentials_exception

    result = await db.execute(
        select(User).where(User.id == token_data.user_id)
    )
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning(f"User {token_data.user_id} not found")
        raise credentials_exception

    logger.debug(f"Authenticated user: {user.email}")
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """
    Current user, provided the account is active.

    Raises:
        HTTPException: If the account is disabled
    """
    if not current_user.is_active:
        logger.warning(f"Disabled account: {current_user.email}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account disabled",
        )
    return current_user


def require_roles(*roles: UserRole):
    """Dependency factory restricting an endpoint to some roles."""

    async def checker(current_user: User = Depends(get_current_active_user)) -> User:
        if current_user.role not in roles:
            logger.warning(f"{current_user.email} ({current_user.role.value}) denied")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return checker


def get_payment_gateway() -> PaymentGateway:
    """Shared Daraja client, so the OAuth token is reused across requests."""
    global _gateway
    if _gateway is None:
        _gateway = MpesaClient()
    return _gateway


async def close_payment_gateway() -> None:
    global _gateway
    if _gateway is not None:
        await _gateway.aclose()
        _gateway = None


# Type aliases for cleaner route signatures
CurrentUser = Annotated[User, Depends(get_current_active_user)]
ManagerUser = Annotated[User, Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER))]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Gateway = Annotated[PaymentGateway, Depends(get_payment_gateway)]
