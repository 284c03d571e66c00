"""Pytest configuration and in-memory store fakes for tenantauth tests."""

import asyncio
from collections import Counter

import pytest

from tenantauth.core.access import (
    AccessContext,
    Grant,
    GrantFilter,
    Operation,
    StoreUnavailableError,
    TenantNode,
    Visibility,
)


class MemoryStore:
    """TenantStore and PermissionStore over plain dicts, recording every lookup."""

    def __init__(self):
        self.tenants: dict[str, TenantNode] = {}
        self.grants: list[Grant] = []
        self.extra_children: dict[str, list[str]] = {}
        self.calls: list[tuple[str, object]] = []

    # setup helpers

    def add_tenant(self, tenant_id: str, parent_id: str | None = None) -> TenantNode:
        node = TenantNode(id=tenant_id, title=tenant_id, parent_id=parent_id)
        self.tenants[tenant_id] = node
        return node

    def set_parent(self, tenant_id: str, parent_id: str | None) -> None:
        self.tenants[tenant_id] = TenantNode(id=tenant_id, title=tenant_id, parent_id=parent_id)

    def remove_tenant(self, tenant_id: str) -> None:
        del self.tenants[tenant_id]

    def grant(self, tenant_id: str, operation: Operation, *delegates: str) -> None:
        for index, existing in enumerate(self.grants):
            if existing.tenant_id == tenant_id and existing.operation == operation:
                self.grants[index] = Grant(
                    id=existing.id,
                    tenant_id=tenant_id,
                    operation=operation,
                    delegates=existing.delegates | frozenset(delegates),
                )
                return
        self.grants.append(
            Grant(
                id=f"g{len(self.grants)}",
                tenant_id=tenant_id,
                operation=operation,
                delegates=frozenset(delegates),
            )
        )

    @property
    def child_lookups(self) -> Counter:
        return Counter(arg for name, arg in self.calls if name == "find_children")

    # store protocol

    async def find_tenant(self, tenant_id: str) -> TenantNode | None:
        self.calls.append(("find_tenant", tenant_id))
        await asyncio.sleep(0)
        return self.tenants.get(tenant_id)

    async def find_children(self, parent_id: str) -> list[TenantNode]:
        self.calls.append(("find_children", parent_id))
        await asyncio.sleep(0)
        children = [t for t in self.tenants.values() if t.parent_id == parent_id]
        for extra in self.extra_children.get(parent_id, []):
            children.append(self.tenants[extra])
        return children

    async def find_grants(self, where: GrantFilter) -> list[Grant]:
        self.calls.append(("find_grants", where))
        await asyncio.sleep(0)
        found = []
        for grant in self.grants:
            if where.tenant_ids is not None and grant.tenant_id not in where.tenant_ids:
                continue
            if where.operation is not None and grant.operation != where.operation:
                continue
            if where.delegate is not None and where.delegate not in grant.delegates:
                continue
            found.append(grant)
        return found


class ExplodingStore:
    """Fails the test if the engine touches it."""

    async def find_tenant(self, tenant_id):
        raise AssertionError("tenant store must not be called")

    async def find_children(self, parent_id):
        raise AssertionError("tenant store must not be called")

    async def find_grants(self, where):
        raise AssertionError("permission store must not be called")


class UnavailableStore(MemoryStore):
    """MemoryStore whose lookups fail after ``fail_after`` successful calls."""

    def __init__(self, fail_after: int = 0):
        super().__init__()
        self.fail_after = fail_after

    def _maybe_fail(self):
        if len(self.calls) > self.fail_after:
            raise StoreUnavailableError("connection refused")

    async def find_tenant(self, tenant_id):
        result = await super().find_tenant(tenant_id)
        self._maybe_fail()
        return result

    async def find_children(self, parent_id):
        result = await super().find_children(parent_id)
        self._maybe_fail()
        return result

    async def find_grants(self, where):
        result = await super().find_grants(where)
        self._maybe_fail()
        return result


@pytest.fixture
def store():
    """Empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def org_store():
    """
    Root -> RegionA -> OfficeA1
                    -> OfficeA2
         -> RegionB -> OfficeB1
    """
    store = MemoryStore()
    store.add_tenant("Root")
    store.add_tenant("RegionA", "Root")
    store.add_tenant("RegionB", "Root")
    store.add_tenant("OfficeA1", "RegionA")
    store.add_tenant("OfficeA2", "RegionA")
    store.add_tenant("OfficeB1", "RegionB")
    return store


def make_visibility(store, is_override=None) -> Visibility:
    if is_override is None:
        return Visibility(store, store)
    return Visibility(store, store, is_override=is_override)


@pytest.fixture
def visibility(org_store):
    return make_visibility(org_store)


@pytest.fixture
def ctx_for():
    def build(identity):
        return AccessContext(identity=identity)
    return build
