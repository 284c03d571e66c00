"""
Access-engine wiring for FastAPI.

Implements:
- Per-request Visibility built over the request's database session
- Explicit AccessContext (caller identity + deadline) for every engine call
- Dependencies for route protection
"""
import asyncio
from typing import Annotated
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth.core import config
from tenantauth.core.access import AccessContext, Operation, OverridePredicate, Visibility, no_override
from tenantauth.core.database.engine import get_db
from tenantauth.features.permissions.store import SqlPermissionStore
from tenantauth.features.tenants.store import SqlTenantStore
from tenantauth.features.users.dependencies import get_optional_user, is_global_admin
from tenantauth.features.users.models import User
from tenantauth.utils import get_logger


log = get_logger(__name__)


def admin_override(user: User | None) -> OverridePredicate:
    """Override predicate that matches ``user`` when they are the global admin."""
    if not is_global_admin(user):
        return no_override
    admin_id = user.id
    return lambda identity: identity == admin_id


def build_visibility(db: AsyncSession, is_override: OverridePredicate = no_override) -> Visibility:
    """Engine over one session; both stores share the session lock."""
    lock = asyncio.Lock()
    return Visibility(SqlTenantStore(db, lock), SqlPermissionStore(db, lock), is_override=is_override)


async def get_access_context(
    user: Annotated[User | None, Depends(get_optional_user)]
) -> AccessContext:
    return AccessContext.with_timeout(user.id if user else None, config.ACCESS_TIMEOUT_SECONDS)


async def get_visibility(
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User | None, Depends(get_optional_user)]
) -> Visibility:
    return build_visibility(db, admin_override(user))


async def ensure_allowed(
    visibility: Visibility,
    ctx: AccessContext,
    tenant_id: str | None,
    operation: Operation,
    detail: str | None = None,
) -> None:
    """
    Raise unless the caller may perform ``operation`` on ``tenant_id``.

    Raises:
        HTTPException: 401 without an identity, 403 when denied
    """
    if not ctx.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not await visibility.authorize(ctx, tenant_id, operation):
        log.info("Denied %s on %s for %s", operation.value, tenant_id, ctx.identity)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail or f"Permission denied: {operation.label} on tenant {tenant_id}"
        )


def require_operation(operation: Operation):
    """
    FastAPI dependency requiring ``operation`` on the ``tenant_id`` path parameter.

    Usage:
        @router.get("/{tenant_id}/descendants")
        async def descendants(
            tenant_id: str,
            ctx: AccessContext = Depends(require_operation(Operation.READ))
        ):
            ...

    Returns:
        Dependency function that returns the caller's AccessContext
    """
    async def operation_dependency(
        tenant_id: str,
        ctx: Annotated[AccessContext, Depends(get_access_context)],
        visibility: Annotated[Visibility, Depends(get_visibility)]
    ) -> AccessContext:
        await ensure_allowed(visibility, ctx, tenant_id, operation)
        return ctx

    return operation_dependency
