"""Tests for the public decision API."""

import asyncio

import pytest

from tenantauth.core.access import (
    AccessContext,
    Decision,
    InvalidOperationError,
    Operation,
    ScopeFilter,
    StoreUnavailableError,
    Visibility,
)

from tests.conftest import ExplodingStore, UnavailableStore, make_visibility

R = Operation.READ
U = Operation.UPDATE


def admin_only(identity):
    return identity == "admin"


class TestAuthorize:
    async def test_allows_through_ancestor_grant(self, org_store, visibility, ctx_for):
        org_store.grant("RegionA", R, "alice")

        assert await visibility.authorize(ctx_for("alice"), "OfficeA1", R) is Decision.ALLOW
        assert await visibility.authorize(ctx_for("alice"), "Root", R) is Decision.DENY
        assert await visibility.authorize(ctx_for("alice"), "OfficeA1", U) is Decision.DENY

    async def test_decision_is_truthy_only_when_allowed(self, org_store, visibility, ctx_for):
        org_store.grant("RegionA", R, "alice")
        assert await visibility.authorize(ctx_for("alice"), "OfficeA2", "R")
        assert not await visibility.authorize(ctx_for("bob"), "OfficeA2", "R")

    async def test_missing_tenant_denied(self, org_store, visibility, ctx_for):
        org_store.grant("Root", R, "alice")
        assert await visibility.authorize(ctx_for("alice"), "Nowhere", R) is Decision.DENY

    async def test_no_tenant_denied(self, visibility, ctx_for):
        assert await visibility.authorize(ctx_for("alice"), None, R) is Decision.DENY

    async def test_unauthenticated_denied_without_store_access(self):
        visibility = Visibility(ExplodingStore(), ExplodingStore(), is_override=admin_only)

        assert await visibility.authorize(AccessContext(identity=None), "Root", R) is Decision.DENY
        assert await visibility.authorize(AccessContext(identity=""), "Root", R) is Decision.DENY

    async def test_override_allows_without_store_access(self):
        visibility = Visibility(ExplodingStore(), ExplodingStore(), is_override=admin_only)
        ctx = AccessContext(identity="admin")

        for operation in Operation:
            assert await visibility.authorize(ctx, "anything", operation) is Decision.ALLOW
        assert await visibility.authorize(ctx, None, R) is Decision.ALLOW

    async def test_override_is_not_applied_to_others(self, org_store, ctx_for):
        visibility = make_visibility(org_store, is_override=admin_only)
        assert await visibility.authorize(ctx_for("alice"), "Root", R) is Decision.DENY

    async def test_invalid_operation_raises(self, visibility, ctx_for):
        with pytest.raises(InvalidOperationError):
            await visibility.authorize(ctx_for("alice"), "Root", "X")
        with pytest.raises(ValueError):
            await visibility.authorize(ctx_for("alice"), "Root", None)

    async def test_store_failure_raises(self, ctx_for):
        store = UnavailableStore(fail_after=1)
        store.add_tenant("Root")
        store.add_tenant("Leaf", "Root")
        visibility = make_visibility(store)

        with pytest.raises(StoreUnavailableError):
            await visibility.authorize(ctx_for("alice"), "Leaf", R)

    async def test_deadline_raises_unavailable(self, org_store):
        async def stalled(where):
            await asyncio.sleep(10)

        org_store.find_grants = stalled
        visibility = make_visibility(org_store)
        ctx = AccessContext.with_timeout("alice", 0.01)

        with pytest.raises(StoreUnavailableError):
            await visibility.authorize(ctx, "OfficeA1", R)

    async def test_expired_deadline_raises(self, org_store):
        loop = asyncio.get_running_loop()
        ctx = AccessContext(identity="alice", deadline=loop.time() - 1)

        with pytest.raises(StoreUnavailableError):
            await make_visibility(org_store).authorize(ctx, "OfficeA1", R)


class TestScopeFilter:
    async def test_scope_matches_visible_tenants(self, org_store, visibility, ctx_for):
        org_store.grant("RegionB", R, "alice")

        scope = await visibility.scope_filter(ctx_for("alice"))

        assert scope.tenant_ids == {"RegionB", "OfficeB1"}
        assert scope("OfficeB1")
        assert not scope("OfficeA1")
        assert not scope(None)

    async def test_override_is_unrestricted(self):
        visibility = Visibility(ExplodingStore(), ExplodingStore(), is_override=admin_only)

        scope = await visibility.scope_filter(AccessContext(identity="admin"))

        assert scope.unrestricted
        assert scope("anything")

    async def test_unauthenticated_matches_nothing(self):
        visibility = Visibility(ExplodingStore(), ExplodingStore())

        scope = await visibility.scope_filter(AccessContext(identity=None))

        assert scope == ScopeFilter.nothing()
        assert not scope("Root")

    async def test_no_grants_matches_nothing(self, visibility, ctx_for):
        scope = await visibility.scope_filter(ctx_for("bob"))
        assert scope.tenant_ids == frozenset()
        assert not scope.unrestricted


class TestQueries:
    async def test_tenants_visible_to_other_identity(self, org_store, visibility, ctx_for):
        org_store.grant("RegionA", R, "alice")

        assert await visibility.tenants_visible_to(ctx_for("bob"), "alice") == {"RegionA", "OfficeA1", "OfficeA2"}
        assert await visibility.tenants_visible_to(ctx_for("alice")) == {"RegionA", "OfficeA1", "OfficeA2"}

    async def test_visible_tenants_are_readable(self, org_store, visibility, ctx_for):
        org_store.grant("RegionA", R, "alice")
        org_store.grant("OfficeB1", R, "alice")
        ctx = ctx_for("alice")

        for tenant_id in await visibility.tenants_visible_to(ctx):
            assert await visibility.authorize(ctx, tenant_id, R)

    async def test_unauthenticated_queries_are_empty(self):
        visibility = Visibility(ExplodingStore(), ExplodingStore())
        ctx = AccessContext(identity=None)

        assert await visibility.tenants_visible_to(ctx) == set()
        assert await visibility.users_visible_to(ctx, "Root") == set()
        assert await visibility.ancestor_chain(ctx, "Root") == []
        assert await visibility.descendant_set(ctx, "Root") == set()
        assert await visibility.has_grant(ctx, "alice", "Root", R) is False

    async def test_users_visible_to(self, org_store, visibility, ctx_for):
        org_store.grant("Root", R, "carol")
        org_store.grant("RegionA", R, "alice")
        org_store.grant("RegionB", R, "bob")

        assert await visibility.users_visible_to(ctx_for("carol"), "OfficeA2") == {"carol", "alice"}

    async def test_has_grant_ignores_override(self, org_store, ctx_for):
        visibility = make_visibility(org_store, is_override=admin_only)
        org_store.grant("RegionA", U, "alice")

        assert await visibility.has_grant(ctx_for("admin"), "admin", "OfficeA1", U) is False
        assert await visibility.has_grant(ctx_for("admin"), "alice", "OfficeA1", U) is True

    async def test_tree_queries(self, visibility, ctx_for):
        ctx = ctx_for("alice")
        assert await visibility.ancestor_chain(ctx, "OfficeB1") == ["Root", "RegionB"]
        assert await visibility.descendant_set(ctx, "RegionB") == {"OfficeB1"}
