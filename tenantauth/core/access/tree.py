"""
Ancestor and descendant traversal over the tenant tree.

The tree is edited by other parts of the application, so both walks carry a
visited set and terminate even when the parent links contain a cycle.
"""
import asyncio
from collections.abc import Sequence

from tenantauth.core.access.stores import TenantStore
from tenantauth.core.access.types import TenantNode
from tenantauth.utils import get_logger


log = get_logger(__name__)


class TreeWalker:
    def __init__(self, tenants: TenantStore):
        self.tenants = tenants

    async def ancestor_chain(self, tenant_id: str) -> list[str]:
        """
        Return the ids from the root down to the immediate parent of ``tenant_id``.

        A missing tenant yields ``[]``. A missing parent ends the chain at the last
        tenant that resolved. A parent link that points back into the chain is
        treated as absent.
        """
        current = await self.tenants.find_tenant(tenant_id)
        if current is None:
            return []

        seen = {current.id}
        chain: list[str] = []
        while current.parent_id:
            parent_id = current.parent_id
            if parent_id in seen:
                log.warning(
                    "Tenant cycle detected: %s -> %s while walking ancestors of %s",
                    current.id, parent_id, tenant_id,
                )
                break
            seen.add(parent_id)
            parent = await self.tenants.find_tenant(parent_id)
            if parent is None:
                log.warning("Dangling parent %s referenced by tenant %s", parent_id, current.id)
                break
            chain.append(parent.id)
            current = parent

        chain.reverse()
        return chain

    async def descendant_set(self, tenant_id: str) -> set[str]:
        """
        Return every tenant reachable through child links, excluding ``tenant_id``.

        Children of one level are fetched concurrently. The results are merged into
        the shared visited set before the next level is expanded, so a node reached
        through two parents is expanded once.
        """
        visited = {tenant_id}
        descendants: set[str] = set()
        frontier = [tenant_id]

        while frontier:
            levels = await self._children_of(frontier)

            next_frontier: list[str] = []
            for parent_id, children in zip(frontier, levels):
                for child in children:
                    if child.id in visited:
                        log.warning("Tenant %s reached twice (via %s); possible cycle", child.id, parent_id)
                        continue
                    visited.add(child.id)
                    descendants.add(child.id)
                    next_frontier.append(child.id)
            frontier = next_frontier

        return descendants

    async def _children_of(self, parent_ids: list[str]) -> list[Sequence[TenantNode]]:
        if len(parent_ids) == 1:
            return [await self.tenants.find_children(parent_ids[0])]
        try:
            async with asyncio.TaskGroup() as group:
                lookups = [group.create_task(self.tenants.find_children(pid)) for pid in parent_ids]
        except BaseExceptionGroup as errors:
            # Surface the store's own exception rather than the group wrapper
            raise _first_leaf(errors) from errors
        return [lookup.result() for lookup in lookups]


def _first_leaf(group: BaseExceptionGroup) -> BaseException:
    exc: BaseException = group
    while isinstance(exc, BaseExceptionGroup):
        exc = exc.exceptions[0]
    return exc
