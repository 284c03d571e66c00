"""
FastAPI dependencies for authentication.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth.core import config
from tenantauth.core.database.engine import get_db
from tenantauth.features.users.models import User
from tenantauth.features.users.auth import verify_jwt_token


security = HTTPBearer(auto_error=False)


def is_global_admin(user: User | None) -> bool:
    """
    The global admin bypasses every tenant grant check.

    A user is global admin when flagged ``is_admin`` or when their email matches ADMIN_EMAIL.
    """
    if user is None:
        return False
    if user.is_admin:
        return True
    return bool(config.ADMIN_EMAIL) and user.email.lower() == config.ADMIN_EMAIL.lower()


async def get_optional_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User | None:
    """
    Resolve the bearer token to a user, or ``None`` when no token was sent.

    Raises:
        HTTPException: 401 for an invalid token or unknown user, 403 for a deactivated account
    """
    if credentials is None:
        return None

    payload = verify_jwt_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return user


async def get_current_user(
    user: Annotated[User | None, Depends(get_optional_user)]
) -> User:
    """
    Require an authenticated user.

    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_current_admin_user(
    user: Annotated[User, Depends(get_current_user)]
) -> User:
    """Require global admin privileges."""
    if not is_global_admin(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return user


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"


limiter = Limiter(key_func=get_authorization_header)
