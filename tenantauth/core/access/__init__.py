"""
Hierarchical tenant authorization engine.

Tenants form a tree; grants of C/R/U/D scoped to a tenant apply to that tenant and
all of its descendants.
"""
from tenantauth.core.access.errors import AccessError, InvalidOperationError, StoreUnavailableError
from tenantauth.core.access.grants import GrantResolver
from tenantauth.core.access.stores import PermissionStore, TenantStore
from tenantauth.core.access.tree import TreeWalker
from tenantauth.core.access.types import AccessContext, Decision, Grant, GrantFilter, Operation, TenantNode
from tenantauth.core.access.visibility import OverridePredicate, ScopeFilter, Visibility, no_override

__all__ = [
    "AccessContext",
    "AccessError",
    "Decision",
    "Grant",
    "GrantFilter",
    "GrantResolver",
    "InvalidOperationError",
    "Operation",
    "OverridePredicate",
    "PermissionStore",
    "ScopeFilter",
    "StoreUnavailableError",
    "TenantNode",
    "TenantStore",
    "TreeWalker",
    "Visibility",
    "no_override",
]
