"""
Tenant-related dependency injection functions.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth.core.database.engine import get_db
from tenantauth.features.tenants.models import Tenant


async def get_tenant_by_id(
    tenant_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Tenant:
    """
    Get tenant by ID or raise 404.

    Raises:
        HTTPException: 404 if tenant not found
    """
    result = await db.execute(
        select(Tenant).where(Tenant.id == tenant_id)
    )
    tenant = result.scalar_one_or_none()

    if tenant is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tenant not found"
        )

    return tenant


async def load_tenants_in_order(db: AsyncSession, tenant_ids: list[str]) -> list[Tenant]:
    """Fetch tenants by id, returned in the order of ``tenant_ids``; missing ids are skipped."""
    if not tenant_ids:
        return []
    result = await db.execute(select(Tenant).where(Tenant.id.in_(tenant_ids)))
    by_id = {tenant.id: tenant for tenant in result.scalars().all()}
    return [by_id[tenant_id] for tenant_id in tenant_ids if tenant_id in by_id]
