"""
Data-access boundary consumed by the access engine.

Implementations raise ``StoreUnavailableError`` when the backing store fails.
A missing tenant is ``None`` / an empty sequence, never an exception.
"""
from collections.abc import Sequence
from typing import Protocol

from tenantauth.core.access.types import Grant, GrantFilter, TenantNode


class TenantStore(Protocol):
    async def find_tenant(self, tenant_id: str) -> TenantNode | None:
        ...

    async def find_children(self, parent_id: str) -> Sequence[TenantNode]:
        ...


class PermissionStore(Protocol):
    async def find_grants(self, where: GrantFilter) -> Sequence[Grant]:
        ...
