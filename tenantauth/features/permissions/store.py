"""
SQLAlchemy implementation of the engine's PermissionStore.
"""
import asyncio
from collections import defaultdict
from collections.abc import Sequence
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth.core.access import Grant, GrantFilter, StoreUnavailableError
from tenantauth.features.permissions.models import Permission, permission_delegates
from tenantauth.utils import get_logger


log = get_logger(__name__)


class SqlPermissionStore:
    def __init__(self, db: AsyncSession, lock: asyncio.Lock | None = None):
        self.db = db
        self.lock = lock or asyncio.Lock()

    async def find_grants(self, where: GrantFilter) -> Sequence[Grant]:
        """
        Grants matching every set field of ``where``.

        With ``delegate`` set, only grants listing that user are returned (the
        delegate index), each still carrying its full delegate set.
        """
        stmt = select(Permission.id, Permission.tenant_id, Permission.operation)
        if where.tenant_ids is not None:
            if not where.tenant_ids:
                return []
            stmt = stmt.where(Permission.tenant_id.in_(where.tenant_ids))
        if where.operation is not None:
            stmt = stmt.where(Permission.operation == where.operation)
        if where.delegate is not None:
            stmt = stmt.join(
                permission_delegates, permission_delegates.c.permission_id == Permission.id
            ).where(permission_delegates.c.user_id == where.delegate)

        try:
            async with self.lock:
                rows = (await self.db.execute(stmt)).all()
                ids = [row.id for row in rows]
                delegates: dict[str, set[str]] = defaultdict(set)
                if ids:
                    pairs = await self.db.execute(
                        select(permission_delegates.c.permission_id, permission_delegates.c.user_id)
                        .where(permission_delegates.c.permission_id.in_(ids))
                    )
                    for permission_id, user_id in pairs:
                        delegates[permission_id].add(user_id)
        except SQLAlchemyError as exc:
            log.error("Grant lookup %s failed: %s", where, exc)
            raise StoreUnavailableError("Permission store unavailable") from exc

        return [
            Grant(
                id=row.id,
                tenant_id=row.tenant_id,
                operation=row.operation,
                delegates=frozenset(delegates[row.id]),
            )
            for row in rows
        ]
