"""
Authentication dependencies for FastAPI.

Authorization 헤더 -> authenticate() -> username -> User 조회.
"Bearer <token>" 과 토큰 단독 형식을 모두 허용한다.
"""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.exceptions import ForbiddenError
from app.models.user import User
from app.services.auth import AuthService
from app.utils.security import authenticate

logger = logging.getLogger("app.auth")

authorization_header = APIKeyHeader(name="Authorization", auto_error=False)


async def _resolve_principal(authorization: Optional[str], db: AsyncSession) -> Optional[User]:
    """User for the given Authorization header value, or None (reason is logged)."""
    if not authorization:
        logger.warning("Auth failed", extra={"event": "auth", "reason": "no_token"})
        return None

    username = authenticate(authorization)
    if username is None:
        logger.warning("Auth failed", extra={"event": "auth", "reason": "invalid_or_expired_token"})
        return None

    user = await AuthService(db).get_user_by_username(username)
    if user is None:
        logger.warning("Auth failed", extra={"event": "auth", "reason": "user_not_found", "username": username})
    return user


async def get_current_user(
    authorization: Optional[str] = Depends(authorization_header),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Authenticated principal for the request.

    Raises:
        HTTPException: 401 when the token is missing, invalid, expired or
            names a user that no longer exists
    """
    user = await _resolve_principal(authorization, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    if not current_user.is_active:
        logger.warning("Inactive user rejected", extra={"event": "auth", "reason": "inactive", "user_id": current_user.id})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user",
        )
    return current_user


async def get_optional_current_user(
    authorization: Optional[str] = Depends(authorization_header),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Principal when a valid token is sent, None for anonymous callers."""
    if not authorization:
        return None
    return await _resolve_principal(authorization, db)


def require_owner(username: str, current_user: User) -> User:
    """
    Path {username} must be the authenticated user.

    Raises:
        ForbiddenError: on mismatch
    """
    if current_user.username != username:
        logger.warning(
            "Owner mismatch",
            extra={"event": "auth", "reason": "owner_mismatch", "user_id": current_user.id},
        )
        raise ForbiddenError(message="You can only modify your own resources")
    return current_user
