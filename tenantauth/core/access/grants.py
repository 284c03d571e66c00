"""
Grant resolution: combines tree walks with permission store lookups.

Grants are purely additive. A grant on a tenant applies to the tenant and to every
descendant, and any matching grant is sufficient.
"""
from tenantauth.core.access.stores import PermissionStore
from tenantauth.core.access.tree import TreeWalker
from tenantauth.core.access.types import GrantFilter, Operation
from tenantauth.utils import get_logger, unique_by_key


log = get_logger(__name__)


class GrantResolver:
    def __init__(self, walker: TreeWalker, permissions: PermissionStore):
        self.walker = walker
        self.permissions = permissions

    async def _holds_on(self, identity: str, tenant_id: str, operation: Operation) -> bool:
        grants = await self.permissions.find_grants(
            GrantFilter(tenant_ids=(tenant_id,), operation=operation, delegate=identity)
        )
        return any(identity in grant.delegates for grant in grants)

    async def has_grant(self, identity: str, tenant_id: str, operation: Operation) -> bool:
        """
        True when ``identity`` is a delegate on an ``operation`` grant scoped to
        ``tenant_id`` or to any of its ancestors.

        The tenant itself is checked first, then ancestors from the nearest parent up.
        """
        operation = Operation.parse(operation)
        if await self._holds_on(identity, tenant_id, operation):
            log.debug("Grant %s on %s held directly by %s", operation.value, tenant_id, identity)
            return True

        chain = await self.walker.ancestor_chain(tenant_id)
        for ancestor_id in reversed(chain):
            if await self._holds_on(identity, ancestor_id, operation):
                log.debug(
                    "Grant %s on %s held by %s via ancestor %s",
                    operation.value, tenant_id, identity, ancestor_id,
                )
                return True
        return False

    async def tenants_visible_to(self, identity: str) -> set[str]:
        """
        Tenants on which ``identity`` holds Read directly, plus all their descendants.
        """
        grants = await self.permissions.find_grants(GrantFilter(operation=Operation.READ, delegate=identity))
        matching = (grant for grant in grants if grant.tenant_id and identity in grant.delegates)
        granted = [grant.tenant_id for grant in unique_by_key(matching, lambda g: g.tenant_id)]

        covered: set[str] = set()
        for tenant_id in granted:
            # already inside another granted subtree
            if tenant_id in covered:
                continue
            covered |= await self.walker.descendant_set(tenant_id)
        return covered.union(granted)

    async def users_visible_to(self, tenant_id: str) -> set[str]:
        """
        Identities holding Read on ``tenant_id`` or on any of its ancestors.
        """
        chain = await self.walker.ancestor_chain(tenant_id)
        grants = await self.permissions.find_grants(
            GrantFilter(tenant_ids=(*chain, tenant_id), operation=Operation.READ)
        )
        users: set[str] = set()
        for grant in grants:
            users |= grant.delegates
        return users
