"""
Tenant feature routes.

Listing is scoped to the caller's visibility set. Create, update and delete are
authorized against the tenant's parent, so operators manage the sub-tenants of
the nodes they were granted on.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth.core.access import AccessContext, Operation, Visibility
from tenantauth.core.database.engine import get_db
from tenantauth.features.permissions.dependencies import (
    ensure_allowed,
    get_access_context,
    get_visibility,
    require_operation,
)
from tenantauth.features.permissions.models import Permission
from tenantauth.features.tenants.dependencies import get_tenant_by_id, load_tenants_in_order
from tenantauth.features.tenants.models import Tenant
from tenantauth.features.tenants.schemas import TenantCreate, TenantPublic, TenantResponse, TenantUpdate
from tenantauth.features.users.dependencies import get_current_user
from tenantauth.features.users.models import User
from tenantauth.features.users.schemas import UserPublic
from tenantauth.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["tenants"])


@router.get("/", response_model=list[TenantResponse])
async def list_tenants(
    user: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[AccessContext, Depends(get_access_context)],
    visibility: Annotated[Visibility, Depends(get_visibility)],
    db: Annotated[AsyncSession, Depends(get_db)],
    parent_id: str | None = None,
    skip: int = 0,
    limit: int = 50
):
    """List tenants visible to the current user."""
    scope = await visibility.scope_filter(ctx)
    query = select(Tenant)
    if not scope.unrestricted:
        if not scope.tenant_ids:
            return []
        query = query.where(Tenant.id.in_(scope.tenant_ids))
    if parent_id:
        query = query.where(Tenant.parent_id == parent_id)

    query = query.order_by(Tenant.title).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.post("/", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    tenant_data: TenantCreate,
    user: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[AccessContext, Depends(get_access_context)],
    visibility: Annotated[Visibility, Depends(get_visibility)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Create a tenant under ``parent_id``.

    Requires Create on the parent; root tenants can only be created by the global admin.
    An empty grant is created for each operation on the new tenant.
    """
    if tenant_data.parent_id:
        await get_tenant_by_id(tenant_data.parent_id, db)
    await ensure_allowed(
        visibility, ctx, tenant_data.parent_id, Operation.CREATE,
        detail="Create permission on the parent tenant required",
    )

    new_tenant = Tenant(title=tenant_data.title, parent_id=tenant_data.parent_id)
    db.add(new_tenant)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Tenant with this title already exists"
        )

    db.add_all(Permission(tenant_id=new_tenant.id, operation=op) for op in Operation)
    await db.commit()
    await db.refresh(new_tenant)

    log.info("Tenant %s (%s) created under %s by %s", new_tenant.id, new_tenant.title, new_tenant.parent_id, user.id)
    return new_tenant


@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant(
    tenant: Annotated[Tenant, Depends(get_tenant_by_id)],
    ctx: Annotated[AccessContext, Depends(require_operation(Operation.READ))]
):
    """Get tenant by ID."""
    return tenant


@router.patch("/{tenant_id}", response_model=TenantResponse)
async def update_tenant(
    update_data: TenantUpdate,
    tenant: Annotated[Tenant, Depends(get_tenant_by_id)],
    user: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[AccessContext, Depends(get_access_context)],
    visibility: Annotated[Visibility, Depends(get_visibility)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Update a tenant.

    Requires Update on the current parent, and on the new parent when moving the tenant.
    """
    changes = update_data.model_dump(exclude_unset=True)

    await ensure_allowed(
        visibility, ctx, tenant.parent_id, Operation.UPDATE,
        detail="Update permission on the parent tenant required",
    )

    if "parent_id" in changes and changes["parent_id"] != tenant.parent_id:
        new_parent_id = changes["parent_id"]
        if new_parent_id:
            await get_tenant_by_id(new_parent_id, db)
            if new_parent_id == tenant.id or new_parent_id in await visibility.descendant_set(ctx, tenant.id):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="A tenant cannot be moved under itself or its descendants"
                )
        await ensure_allowed(
            visibility, ctx, new_parent_id, Operation.UPDATE,
            detail="Update permission on the new parent tenant required",
        )
        tenant.parent_id = new_parent_id

    if changes.get("title") is not None:
        tenant.title = changes["title"]

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Tenant with this title already exists"
        )
    await db.refresh(tenant)
    return tenant


@router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tenant(
    tenant: Annotated[Tenant, Depends(get_tenant_by_id)],
    user: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[AccessContext, Depends(get_access_context)],
    visibility: Annotated[Visibility, Depends(get_visibility)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Delete a tenant. Requires Delete on its parent.

    Children become roots and grants scoped to the tenant are left orphaned.
    """
    await ensure_allowed(
        visibility, ctx, tenant.parent_id, Operation.DELETE,
        detail="Delete permission on the parent tenant required",
    )
    await db.delete(tenant)
    await db.commit()
    log.info("Tenant %s deleted by %s", tenant.id, user.id)


@router.get("/{tenant_id}/ancestors", response_model=list[TenantPublic])
async def get_ancestors(
    tenant_id: str,
    ctx: Annotated[AccessContext, Depends(require_operation(Operation.READ))],
    visibility: Annotated[Visibility, Depends(get_visibility)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Ancestors of the tenant, root first."""
    chain = await visibility.ancestor_chain(ctx, tenant_id)
    return await load_tenants_in_order(db, chain)


@router.get("/{tenant_id}/descendants", response_model=list[TenantPublic])
async def get_descendants(
    tenant_id: str,
    ctx: Annotated[AccessContext, Depends(require_operation(Operation.READ))],
    visibility: Annotated[Visibility, Depends(get_visibility)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """All sub-tenants of the tenant."""
    ids = sorted(await visibility.descendant_set(ctx, tenant_id))
    tenants = await load_tenants_in_order(db, ids)
    return sorted(tenants, key=lambda t: t.title)


@router.get("/{tenant_id}/users", response_model=list[UserPublic])
async def get_tenant_users(
    tenant_id: str,
    ctx: Annotated[AccessContext, Depends(require_operation(Operation.READ))],
    visibility: Annotated[Visibility, Depends(get_visibility)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Users holding Read on the tenant or one of its ancestors."""
    ids = await visibility.users_visible_to(ctx, tenant_id)
    if not ids:
        return []
    result = await db.execute(select(User).where(User.id.in_(ids)).order_by(User.name))
    return result.scalars().all()
