"""
User feature routes.
"""
from datetime import datetime, timezone
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from slowapi.util import get_remote_address
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth.core import config
from tenantauth.core.access import AccessContext, Decision, Operation, Visibility
from tenantauth.core.database.engine import get_db
from tenantauth.features.permissions.dependencies import get_access_context, get_visibility
from tenantauth.features.permissions.schemas import PermissionCheckResponse
from tenantauth.features.tenants.dependencies import load_tenants_in_order
from tenantauth.features.tenants.schemas import TenantPublic
from tenantauth.features.users.auth import create_access_token, hash_password, verify_password
from tenantauth.features.users.dependencies import get_current_user, get_current_admin_user, is_global_admin, limiter
from tenantauth.features.users.models import User
from tenantauth.features.users.schemas import LoginRequest, TokenResponse, UserCreate, UserPublic, UserResponse
from tenantauth.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["users"])


async def get_user_by_id(
    user_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


def ensure_self_or_admin(current: User, target: User) -> None:
    if current.id != target.id and not is_global_admin(current):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the user or the global admin can inspect these permissions"
        )


@router.post("/token", response_model=TokenResponse)
@limiter.limit(lambda: config.LOGIN_RATE_LIMIT, key_func=get_remote_address)
async def login(
    request: Request,
    credentials: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Exchange email and password for a bearer token."""
    result = await db.execute(select(User).where(User.email == credentials.email))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()
    return TokenResponse(access_token=create_access_token(user.id))


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return user


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a user (admin only)."""
    result = await db.execute(select(User).where(User.email == user_data.email))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User with this email already exists"
        )

    user = User(
        email=user_data.email,
        name=user_data.name,
        password_hash=hash_password(user_data.password),
        is_admin=user_data.is_admin,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    log.info("User %s created by %s", user.id, admin.id)
    return user


@router.get("/", response_model=list[UserPublic])
async def list_users(
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: int = 0,
    limit: int = 50
):
    """List all active users (public info only)."""
    result = await db.execute(
        select(User)
        .where(User.is_active == True)
        .order_by(User.name)
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all()


@router.get("/{user_id}", response_model=UserPublic)
async def get_user(
    user: Annotated[User, Depends(get_user_by_id)],
    current: Annotated[User, Depends(get_current_user)]
):
    """Get public user profile by ID."""
    return user


@router.get("/{user_id}/tenants", response_model=list[TenantPublic])
async def get_user_tenants(
    user: Annotated[User, Depends(get_user_by_id)],
    current: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[AccessContext, Depends(get_access_context)],
    visibility: Annotated[Visibility, Depends(get_visibility)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Tenants the user can read: Read grants plus their sub-tenants."""
    ensure_self_or_admin(current, user)
    ids = await visibility.tenants_visible_to(ctx, user.id)
    tenants = await load_tenants_in_order(db, sorted(ids))
    return sorted(tenants, key=lambda t: t.title)


@router.get("/{user_id}/can", response_model=PermissionCheckResponse)
async def user_can(
    tenant_id: str,
    operation: Operation,
    user: Annotated[User, Depends(get_user_by_id)],
    current: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[AccessContext, Depends(get_access_context)],
    visibility: Annotated[Visibility, Depends(get_visibility)]
):
    """Whether the user may perform ``operation`` on ``tenant_id``."""
    ensure_self_or_admin(current, user)
    if is_global_admin(user):
        allowed = True
    else:
        allowed = await visibility.has_grant(ctx, user.id, tenant_id, operation)
    return PermissionCheckResponse(
        tenant_id=tenant_id,
        operation=operation,
        decision=Decision.ALLOW if allowed else Decision.DENY,
        allowed=allowed,
    )


@router.patch("/{user_id}/admin", response_model=UserResponse)
async def toggle_admin_status(
    user: Annotated[User, Depends(get_user_by_id)],
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Toggle admin status for a user (admin only)."""
    if user.id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot modify your own admin status"
        )

    user.is_admin = not user.is_admin
    await db.commit()
    await db.refresh(user)
    return user


@router.delete("/{user_id}")
async def deactivate_user(
    user: Annotated[User, Depends(get_user_by_id)],
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Deactivate a user account (admin only)."""
    if user.id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot deactivate your own account"
        )

    user.is_active = False
    await db.commit()

    return {"message": "User deactivated successfully"}
