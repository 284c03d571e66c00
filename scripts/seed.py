"""
Seed script to populate the global admin, a sample tenant tree, sample users and grants.

Run this script after database initialization to create:
- The global admin user (ADMIN_EMAIL / ADMIN_NAME / ADMIN_PASSWORD)
- A sample tenant hierarchy with one empty grant per operation on each tenant
- Sample operators, assigned round-robin to roles on every tenant

Usage:
    python -m scripts.seed
"""
import asyncio
from dataclasses import dataclass, field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantauth.core import config
from tenantauth.core.access import AccessContext, Operation
from tenantauth.core.database.engine import get_db, init_db
from tenantauth.features.permissions.dependencies import build_visibility
from tenantauth.features.permissions.models import Permission
from tenantauth.features.tenants.models import Tenant
from tenantauth.features.users.auth import hash_password
from tenantauth.features.users.models import User
from tenantauth.utils import get_logger


log = get_logger(__name__)


# Operations granted by each role
ROLES: dict[str, tuple[Operation, ...]] = {
    "view_only": (Operation.READ,),
    "editor": (Operation.READ, Operation.UPDATE),
    "creator": (Operation.CREATE, Operation.READ, Operation.UPDATE),
    "admin": (Operation.CREATE, Operation.READ, Operation.UPDATE, Operation.DELETE),
}

ROOT_ROLE_PATTERN = ["admin", "creator", "editor", "view_only"]

SAMPLE_TENANTS = {
    "Acme Holdings": {
        "Acme North America": {
            "Acme Boston": {},
            "Acme Chicago": {},
        },
        "Acme Europe": {
            "Acme Berlin": {},
            "Acme Lisbon": {},
        },
    },
    "Globex": {
        "Globex Retail": {},
        "Globex Logistics": {},
    },
}

SAMPLE_USERS = [
    ("Alice Operator", "alice@example.com"),
    ("Bob Operator", "bob@example.com"),
    ("Carol Operator", "carol@example.com"),
    ("Dave Operator", "dave@example.com"),
    ("Erin Operator", "erin@example.com"),
]

SEED_CONTEXT = AccessContext(identity="seed")


@dataclass
class TreeNode:
    """Tenant with its children, built from the flat tenant table."""
    id: str
    title: str
    children: list["TreeNode"] = field(default_factory=list)


def build_hierarchy(tenants: list[Tenant]) -> list[TreeNode]:
    """
    Link tenants to their parents and return the roots.

    Tenants whose parent is missing are treated as roots.
    """
    nodes = {tenant.id: TreeNode(id=tenant.id, title=tenant.title) for tenant in tenants}
    roots: list[TreeNode] = []
    for tenant in tenants:
        node = nodes[tenant.id]
        parent = nodes.get(tenant.parent_id) if tenant.parent_id else None
        if parent is None:
            roots.append(node)
        else:
            parent.children.append(node)
    return roots


async def seed_admin(db: AsyncSession) -> User | None:
    """Create or refresh the global admin from the environment."""
    if not config.ADMIN_EMAIL:
        log.warning("ADMIN_EMAIL not set, skipping admin user")
        return None

    result = await db.execute(select(User).where(User.email == config.ADMIN_EMAIL))
    admin = result.scalar_one_or_none()
    if admin is None:
        admin = User(
            email=config.ADMIN_EMAIL,
            name=config.ADMIN_NAME,
            password_hash=hash_password(config.ADMIN_PASSWORD),
            is_admin=True,
        )
        db.add(admin)
        log.info("Created admin user %s", config.ADMIN_EMAIL)
    else:
        admin.name = config.ADMIN_NAME
        admin.password_hash = hash_password(config.ADMIN_PASSWORD)
        admin.is_admin = True
        log.info("Updated admin user %s", config.ADMIN_EMAIL)

    await db.commit()
    await db.refresh(admin)
    return admin


async def seed_users(db: AsyncSession, password: str = "password123") -> list[User]:
    """Create the sample operators that do not exist yet."""
    users = []
    for name, email in SAMPLE_USERS:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user is None:
            user = User(email=email, name=name, password_hash=hash_password(password))
            db.add(user)
            log.info("Created user %s", email)
        users.append(user)
    await db.commit()
    return users


async def seed_tenants(db: AsyncSession, tree: dict = SAMPLE_TENANTS) -> list[Tenant]:
    """
    Create the tenant tree breadth-first. Each new tenant gets an empty grant per operation.
    """
    created: list[Tenant] = []
    pending: list[tuple[str | None, str, dict]] = [(None, title, children) for title, children in tree.items()]

    while pending:
        parent_id, title, children = pending.pop(0)
        result = await db.execute(select(Tenant).where(Tenant.title == title))
        tenant = result.scalar_one_or_none()
        if tenant is None:
            tenant = Tenant(title=title, parent_id=parent_id)
            db.add(tenant)
            await db.flush()
            db.add_all(Permission(tenant_id=tenant.id, operation=op) for op in Operation)
            created.append(tenant)
            log.info("Created tenant %s", title)
        pending.extend((tenant.id, child_title, grandchildren) for child_title, grandchildren in children.items())

    await db.commit()
    return created


async def grant(db: AsyncSession, tenant_id: str, operation: Operation, user: User) -> None:
    """Add ``user`` to the (tenant, operation) grant, creating the grant if missing."""
    result = await db.execute(
        select(Permission).where(Permission.tenant_id == tenant_id, Permission.operation == operation)
    )
    permission = result.scalars().first()
    if permission is None:
        permission = Permission(tenant_id=tenant_id, operation=operation, delegates=[user])
        db.add(permission)
    elif all(d.id != user.id for d in permission.delegates):
        permission.delegates.append(user)
    await db.flush()


async def seed_permissions(db: AsyncSession, admin_email: str | None = None) -> int:
    """
    Assign roles round-robin to every non-admin user on each tenant.

    A delegate is added only when the user does not already hold the operation
    through the tenant or one of its ancestors.

    Returns:
        Number of delegate assignments made
    """
    admin_email = admin_email if admin_email is not None else config.ADMIN_EMAIL
    stmt = select(User).where(User.is_active == True, User.is_admin == False).order_by(User.email)
    if admin_email:
        stmt = stmt.where(User.email != admin_email)
    users = list((await db.execute(stmt)).scalars().all())
    if not users:
        log.warning("No users to assign permissions to")
        return 0

    tenants = list((await db.execute(select(Tenant).order_by(Tenant.title))).scalars().all())
    visibility = build_visibility(db)
    user_index = 0
    assigned = 0

    async def assign(node: TreeNode, roles: list[str]) -> None:
        nonlocal user_index, assigned
        for role in roles:
            user = users[user_index % len(users)]
            user_index += 1
            for operation in ROLES[role]:
                if await visibility.has_grant(SEED_CONTEXT, user.id, node.id, operation):
                    continue
                await grant(db, node.id, operation, user)
                assigned += 1

        for child in node.children:
            await assign(child, roles)

    for root in build_hierarchy(tenants):
        await assign(root, ROOT_ROLE_PATTERN)

    await db.commit()
    log.info("Assigned %d delegate grants", assigned)
    return assigned


async def main():
    """Main function to seed the database."""
    log.info("Starting seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    # Get database session
    async for db in get_db():
        try:
            await seed_admin(db)
            await seed_users(db)
            await seed_tenants(db)
            await seed_permissions(db)
            log.info("Seeding completed successfully!")
        except Exception as e:
            log.error(f"Error seeding database: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
