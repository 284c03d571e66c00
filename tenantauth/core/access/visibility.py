"""
Public decision API used by routes, list filters and seeding.

Every entry point takes an ``AccessContext`` and checks, in order:
1. no identity -> deny / empty, without touching any store
2. override identity (global admin) -> allow / unrestricted, without touching any store
3. grant resolution against the stores, bounded by the context deadline
"""
import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from tenantauth.core.access.errors import StoreUnavailableError
from tenantauth.core.access.grants import GrantResolver
from tenantauth.core.access.stores import PermissionStore, TenantStore
from tenantauth.core.access.tree import TreeWalker
from tenantauth.core.access.types import AccessContext, Decision, Operation
from tenantauth.utils import get_logger


log = get_logger(__name__)

OverridePredicate = Callable[[str], bool]


def no_override(identity: str) -> bool:
    return False


@dataclass(frozen=True)
class ScopeFilter:
    """
    Predicate over tenant ids. ``unrestricted`` scopes match every tenant.

    Query layers read ``tenant_ids`` directly to build an ``IN`` clause.
    """
    tenant_ids: frozenset[str] = frozenset()
    unrestricted: bool = False

    def __call__(self, tenant_id: str | None) -> bool:
        if self.unrestricted:
            return True
        return tenant_id is not None and tenant_id in self.tenant_ids

    @classmethod
    def everything(cls) -> "ScopeFilter":
        return cls(unrestricted=True)

    @classmethod
    def nothing(cls) -> "ScopeFilter":
        return cls()


@asynccontextmanager
async def _bounded(ctx: AccessContext, what: str) -> AsyncIterator[None]:
    try:
        async with asyncio.timeout_at(ctx.deadline):
            yield
    except TimeoutError as exc:
        log.error("Access resolution timed out: %s for %s", what, ctx.identity)
        raise StoreUnavailableError(f"Timed out resolving {what}") from exc
    except StoreUnavailableError as exc:
        log.error("Access store unavailable during %s: %s", what, exc.message)
        raise


class Visibility:
    def __init__(
        self,
        tenants: TenantStore,
        permissions: PermissionStore,
        is_override: OverridePredicate = no_override,
    ):
        self.tenants = tenants
        self.walker = TreeWalker(tenants)
        self.resolver = GrantResolver(self.walker, permissions)
        self.is_override = is_override

    def _overrides(self, ctx: AccessContext) -> bool:
        return bool(ctx.identity) and self.is_override(ctx.identity)

    async def authorize(self, ctx: AccessContext, tenant_id: str | None, operation: Operation | str) -> Decision:
        """
        Gate for a tenant-scoped operation. Denial is a normal result, not an error.

        Raises:
            InvalidOperationError: ``operation`` is not one of C/R/U/D
            StoreUnavailableError: the stores failed or the deadline passed
        """
        operation = Operation.parse(operation)
        if not ctx.is_authenticated:
            return Decision.DENY
        if self._overrides(ctx):
            log.debug("Override identity %s allowed %s on %s", ctx.identity, operation.value, tenant_id)
            return Decision.ALLOW
        if not tenant_id:
            return Decision.DENY

        async with _bounded(ctx, f"authorize {operation.value} on {tenant_id}"):
            if await self.tenants.find_tenant(tenant_id) is None:
                log.debug("Deny %s on missing tenant %s", operation.value, tenant_id)
                return Decision.DENY
            allowed = await self.resolver.has_grant(ctx.identity, tenant_id, operation)

        decision = Decision.ALLOW if allowed else Decision.DENY
        log.debug("%s %s on %s for %s", decision.value, operation.value, tenant_id, ctx.identity)
        return decision

    async def scope_filter(self, ctx: AccessContext) -> ScopeFilter:
        if not ctx.is_authenticated:
            return ScopeFilter.nothing()
        if self._overrides(ctx):
            return ScopeFilter.everything()
        return ScopeFilter(tenant_ids=frozenset(await self.tenants_visible_to(ctx)))

    async def tenants_visible_to(self, ctx: AccessContext, identity: str | None = None) -> set[str]:
        """
        Visibility set of ``identity`` (defaults to the caller).

        The override is not applied; an override identity sees only what it was granted.
        Use ``scope_filter`` for the unrestricted view.
        """
        if not ctx.is_authenticated:
            return set()
        target = identity or ctx.identity
        async with _bounded(ctx, f"tenants visible to {target}"):
            return await self.resolver.tenants_visible_to(target)

    async def users_visible_to(self, ctx: AccessContext, tenant_id: str) -> set[str]:
        if not ctx.is_authenticated:
            return set()
        async with _bounded(ctx, f"users visible on {tenant_id}"):
            return await self.resolver.users_visible_to(tenant_id)

    async def has_grant(self, ctx: AccessContext, identity: str, tenant_id: str, operation: Operation | str) -> bool:
        """Grant check for an arbitrary identity, ignoring the override."""
        operation = Operation.parse(operation)
        if not ctx.is_authenticated:
            return False
        async with _bounded(ctx, f"grant {operation.value} on {tenant_id} for {identity}"):
            return await self.resolver.has_grant(identity, tenant_id, operation)

    async def ancestor_chain(self, ctx: AccessContext, tenant_id: str) -> list[str]:
        if not ctx.is_authenticated:
            return []
        async with _bounded(ctx, f"ancestors of {tenant_id}"):
            return await self.walker.ancestor_chain(tenant_id)

    async def descendant_set(self, ctx: AccessContext, tenant_id: str) -> set[str]:
        if not ctx.is_authenticated:
            return set()
        async with _bounded(ctx, f"descendants of {tenant_id}"):
            return await self.walker.descendant_set(tenant_id)
