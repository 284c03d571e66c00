"""
Fixtures for HTTP tests: an in-memory SQLite database wired into the app.
"""
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.pool import StaticPool

from tenantauth.core import config
from tenantauth.core.access import Operation
from tenantauth.core.database.engine import build_engine, build_sessionmaker, get_db, init_db
from tenantauth.features.permissions.models import Permission
from tenantauth.features.tenants.models import Tenant
from tenantauth.features.users.auth import create_access_token, hash_password
from tenantauth.features.users.dependencies import limiter
from tenantauth.features.users.models import User
from tenantauth.main import app


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(config, "BCRYPT_ROUNDS", 4)
    monkeypatch.setattr(config, "ADMIN_EMAIL", None)


@pytest.fixture
async def engine():
    test_engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def client(sessionmaker):
    async def override_get_db():
        async with sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def client_at(host: str) -> AsyncClient:
    """Client whose requests come from ``host``. Pair with the ``client`` fixture for the database override."""
    return AsyncClient(transport=ASGITransport(app=app, client=(host, 5000)), base_url="http://test")


@pytest.fixture
def make_user(sessionmaker):
    async def create(name: str, is_admin: bool = False, password: str = "password123", is_active: bool = True) -> User:
        async with sessionmaker() as session:
            user = User(
                email=f"{name.lower()}@example.com",
                name=name,
                password_hash=hash_password(password),
                is_admin=is_admin,
                is_active=is_active,
            )
            session.add(user)
            await session.commit()
            return user
    return create


@pytest.fixture
def make_tenant(sessionmaker):
    async def create(title: str, parent: Tenant | None = None) -> Tenant:
        async with sessionmaker() as session:
            tenant = Tenant(title=title, parent_id=parent.id if parent else None)
            session.add(tenant)
            await session.flush()
            session.add_all(Permission(tenant_id=tenant.id, operation=op) for op in Operation)
            await session.commit()
            return tenant
    return create


@pytest.fixture
def give(sessionmaker):
    """Add users as delegates on the (tenant, operation) grant."""
    async def add(tenant: Tenant, operation: Operation, *users: User) -> None:
        async with sessionmaker() as session:
            result = await session.execute(
                select(Permission).where(Permission.tenant_id == tenant.id, Permission.operation == operation)
            )
            permission = result.scalars().one()
            for user in users:
                permission.delegates.append(await session.get(User, user.id))
            await session.commit()
    return add


@pytest.fixture
async def admin(make_user):
    return await make_user("Admin", is_admin=True)


@pytest.fixture
async def alice(make_user):
    return await make_user("Alice")


@pytest.fixture
async def bob(make_user):
    return await make_user("Bob")


@pytest.fixture
async def org(make_tenant):
    """
    Root -> RegionA -> OfficeA1
                    -> OfficeA2
         -> RegionB -> OfficeB1
    """
    root = await make_tenant("Root")
    region_a = await make_tenant("RegionA", root)
    region_b = await make_tenant("RegionB", root)
    return {
        "Root": root,
        "RegionA": region_a,
        "RegionB": region_b,
        "OfficeA1": await make_tenant("OfficeA1", region_a),
        "OfficeA2": await make_tenant("OfficeA2", region_a),
        "OfficeB1": await make_tenant("OfficeB1", region_b),
    }
