"""
Grant management API routes.

Grants are managed by whoever holds Update on the grant's tenant (or an ancestor);
deleting a grant requires Delete.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth.core.access import AccessContext, Decision, Operation, Visibility
from tenantauth.core.database.engine import get_db
from tenantauth.features.permissions.dependencies import ensure_allowed, get_access_context, get_visibility
from tenantauth.features.permissions.models import Permission
from tenantauth.features.permissions.schemas import (
    AddDelegate,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionCreate,
    PermissionResponse,
)
from tenantauth.features.tenants.dependencies import get_tenant_by_id
from tenantauth.features.users.dependencies import get_current_user
from tenantauth.features.users.models import User
from tenantauth.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def get_permission_by_id(
    permission_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Permission:
    result = await db.execute(select(Permission).where(Permission.id == permission_id))
    permission = result.scalars().first()
    if permission is None:
        raise HTTPException(status_code=404, detail="Permission not found")
    return permission


async def get_user_or_404(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")
    return user


@router.get("/", response_model=list[PermissionResponse])
async def list_permissions(
    user: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[AccessContext, Depends(get_access_context)],
    visibility: Annotated[Visibility, Depends(get_visibility)],
    db: Annotated[AsyncSession, Depends(get_db)],
    tenant_id: Optional[str] = None,
    operation: Optional[Operation] = None,
    skip: int = 0,
    limit: int = 100
):
    """List grants on tenants visible to the current user."""
    scope = await visibility.scope_filter(ctx)
    stmt = select(Permission)
    if not scope.unrestricted:
        if not scope.tenant_ids:
            return []
        stmt = stmt.where(Permission.tenant_id.in_(scope.tenant_ids))
    if tenant_id:
        stmt = stmt.where(Permission.tenant_id == tenant_id)
    if operation:
        stmt = stmt.where(Permission.operation == operation)

    stmt = stmt.order_by(Permission.tenant_id, Permission.operation).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check: PermissionCheckRequest,
    user: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[AccessContext, Depends(get_access_context)],
    visibility: Annotated[Visibility, Depends(get_visibility)]
):
    """Check whether the current user may perform an operation on a tenant."""
    decision = await visibility.authorize(ctx, check.tenant_id, check.operation)
    return PermissionCheckResponse(
        tenant_id=check.tenant_id,
        operation=check.operation,
        decision=decision,
        allowed=decision is Decision.ALLOW,
    )


@router.post("/", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission: PermissionCreate,
    user: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[AccessContext, Depends(get_access_context)],
    visibility: Annotated[Visibility, Depends(get_visibility)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create the grant for a (tenant, operation) pair."""
    await get_tenant_by_id(permission.tenant_id, db)
    await ensure_allowed(visibility, ctx, permission.tenant_id, Operation.UPDATE)

    delegates = [await get_user_or_404(db, user_id) for user_id in dict.fromkeys(permission.delegate_ids)]
    db_permission = Permission(
        tenant_id=permission.tenant_id,
        operation=permission.operation,
        delegates=delegates,
    )
    db.add(db_permission)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A grant for this tenant and operation already exists"
        )
    await db.refresh(db_permission)

    log.info(
        "Grant %s %s on %s created by %s",
        db_permission.id, db_permission.operation.value, db_permission.tenant_id, user.id,
    )
    return db_permission


@router.get("/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission: Annotated[Permission, Depends(get_permission_by_id)],
    ctx: Annotated[AccessContext, Depends(get_access_context)],
    visibility: Annotated[Visibility, Depends(get_visibility)]
):
    """Get a specific grant by ID."""
    await ensure_allowed(visibility, ctx, permission.tenant_id, Operation.READ)
    return permission


@router.post("/{permission_id}/delegates", response_model=PermissionResponse)
async def add_delegate(
    body: AddDelegate,
    permission: Annotated[Permission, Depends(get_permission_by_id)],
    user: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[AccessContext, Depends(get_access_context)],
    visibility: Annotated[Visibility, Depends(get_visibility)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Add a delegate to a grant. Adding an existing delegate is a no-op."""
    await ensure_allowed(visibility, ctx, permission.tenant_id, Operation.UPDATE)
    delegate = await get_user_or_404(db, body.user_id)

    if all(d.id != delegate.id for d in permission.delegates):
        permission.delegates.append(delegate)
        await db.commit()
        await db.refresh(permission)
        log.info("User %s added to grant %s by %s", delegate.id, permission.id, user.id)

    return permission


@router.delete("/{permission_id}/delegates/{user_id}", response_model=PermissionResponse)
async def remove_delegate(
    user_id: str,
    permission: Annotated[Permission, Depends(get_permission_by_id)],
    user: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[AccessContext, Depends(get_access_context)],
    visibility: Annotated[Visibility, Depends(get_visibility)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Remove a delegate from a grant."""
    await ensure_allowed(visibility, ctx, permission.tenant_id, Operation.UPDATE)

    remaining = [d for d in permission.delegates if d.id != user_id]
    if len(remaining) == len(permission.delegates):
        raise HTTPException(status_code=404, detail="User is not a delegate of this grant")

    permission.delegates = remaining
    await db.commit()
    await db.refresh(permission)
    log.info("User %s removed from grant %s by %s", user_id, permission.id, user.id)
    return permission


@router.delete("/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission: Annotated[Permission, Depends(get_permission_by_id)],
    user: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[AccessContext, Depends(get_access_context)],
    visibility: Annotated[Visibility, Depends(get_visibility)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a grant."""
    await ensure_allowed(visibility, ctx, permission.tenant_id, Operation.DELETE)
    await db.delete(permission)
    await db.commit()
    log.info("Grant %s deleted by %s", permission.id, user.id)
