"""
SQLAlchemy implementation of the engine's TenantStore.
"""
import asyncio
from collections.abc import Sequence
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth.core.access import StoreUnavailableError, TenantNode
from tenantauth.features.tenants.models import Tenant
from tenantauth.utils import get_logger


log = get_logger(__name__)


class SqlTenantStore:
    """
    Reads tenants through a request's AsyncSession.

    An AsyncSession cannot run two statements at once, so lookups issued
    concurrently by the engine are serialized on ``lock``.
    """

    def __init__(self, db: AsyncSession, lock: asyncio.Lock | None = None):
        self.db = db
        self.lock = lock or asyncio.Lock()

    async def find_tenant(self, tenant_id: str) -> TenantNode | None:
        stmt = select(Tenant.id, Tenant.title, Tenant.parent_id).where(Tenant.id == tenant_id)
        try:
            async with self.lock:
                row = (await self.db.execute(stmt)).first()
        except SQLAlchemyError as exc:
            log.error("Tenant lookup %s failed: %s", tenant_id, exc)
            raise StoreUnavailableError("Tenant store unavailable") from exc
        if row is None:
            return None
        return TenantNode(id=row.id, title=row.title, parent_id=row.parent_id)

    async def find_children(self, parent_id: str) -> Sequence[TenantNode]:
        stmt = (
            select(Tenant.id, Tenant.title, Tenant.parent_id)
            .where(Tenant.parent_id == parent_id)
            .order_by(Tenant.id)
        )
        try:
            async with self.lock:
                rows = (await self.db.execute(stmt)).all()
        except SQLAlchemyError as exc:
            log.error("Child lookup for %s failed: %s", parent_id, exc)
            raise StoreUnavailableError("Tenant store unavailable") from exc
        return [TenantNode(id=row.id, title=row.title, parent_id=row.parent_id) for row in rows]
