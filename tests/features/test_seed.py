"""Tests for the seed script."""

from sqlalchemy import func, select

from scripts.seed import (
    SAMPLE_USERS,
    SEED_CONTEXT,
    build_hierarchy,
    seed_admin,
    seed_permissions,
    seed_tenants,
    seed_users,
)
from tenantauth.core import config
from tenantauth.core.access import Operation
from tenantauth.features.permissions.dependencies import build_visibility
from tenantauth.features.permissions.models import Permission
from tenantauth.features.tenants.models import Tenant
from tenantauth.features.users.models import User


async def tenant_id(db, title):
    return (await db.execute(select(Tenant.id).where(Tenant.title == title))).scalar_one()


async def user_id(db, email):
    return (await db.execute(select(User.id).where(User.email == email))).scalar_one()


class TestBuildHierarchy:
    def test_links_children(self):
        tenants = [
            Tenant(id="a", title="A"),
            Tenant(id="b", title="B", parent_id="a"),
            Tenant(id="c", title="C", parent_id="b"),
        ]
        (root,) = build_hierarchy(tenants)
        assert root.id == "a"
        assert [child.id for child in root.children] == ["b"]
        assert [child.id for child in root.children[0].children] == ["c"]

    def test_missing_parent_is_root(self):
        tenants = [Tenant(id="a", title="A"), Tenant(id="b", title="B", parent_id="gone")]
        assert [node.id for node in build_hierarchy(tenants)] == ["a", "b"]


class TestSeed:
    async def test_tenants_get_empty_grants(self, sessionmaker):
        async with sessionmaker() as db:
            created = await seed_tenants(db)
            again = await seed_tenants(db)
            grants = (await db.execute(select(func.count()).select_from(Permission))).scalar_one()
            boston = (await db.execute(select(Tenant).where(Tenant.title == "Acme Boston"))).scalar_one()
            north_america = await tenant_id(db, "Acme North America")

        assert len(created) == 10
        assert again == []
        assert grants == 40
        assert boston.parent_id == north_america

    async def test_admin_from_environment(self, sessionmaker, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_EMAIL", "root@example.com")
        async with sessionmaker() as db:
            admin = await seed_admin(db)
            again = await seed_admin(db)

        assert admin.is_admin
        assert again.id == admin.id

    async def test_admin_skipped_without_email(self, sessionmaker):
        async with sessionmaker() as db:
            assert await seed_admin(db) is None

    async def test_round_robin_roles(self, sessionmaker):
        async with sessionmaker() as db:
            await seed_users(db)
            await seed_tenants(db)
            assigned = await seed_permissions(db)

            visibility = build_visibility(db)
            holdings = await tenant_id(db, "Acme Holdings")
            lisbon = await tenant_id(db, "Acme Lisbon")
            alice = await user_id(db, "alice@example.com")
            dave = await user_id(db, "dave@example.com")

            # alice gets the admin role on the first root, inherited by every sub-tenant
            assert await visibility.has_grant(SEED_CONTEXT, alice, lisbon, Operation.DELETE)
            # dave is view only there
            assert await visibility.has_grant(SEED_CONTEXT, dave, holdings, Operation.READ)
            assert not await visibility.has_grant(SEED_CONTEXT, dave, holdings, Operation.UPDATE)

        assert assigned > 0

    async def test_permissions_idempotent(self, sessionmaker):
        async with sessionmaker() as db:
            users = await seed_users(db)
            await seed_tenants(db)
            first = await seed_permissions(db)
            second = await seed_permissions(db)
            again = await seed_users(db)

        assert len(users) == len(SAMPLE_USERS)
        assert [u.id for u in again] == [u.id for u in users]
        assert first > 0
        assert second == 0

    async def test_no_users(self, sessionmaker):
        async with sessionmaker() as db:
            await seed_tenants(db)
            assert await seed_permissions(db) == 0
