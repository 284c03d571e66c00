"""
Permission (grant) model.

A grant binds one operation on one tenant to a set of delegate users. The grant
applies to the tenant and to all of its descendants.
"""
from sqlalchemy import String, ForeignKey, Table, Column, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tenantauth.core.access import Operation
from tenantauth.core.database.base import Base, TimestampMixin, generate_ulid


# Users listed on a grant
permission_delegates = Table(
    "permission_delegates",
    Base.metadata,
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class Permission(Base, TimestampMixin):
    """
    Grant of one operation (C/R/U/D) on a tenant subtree.

    At most one grant exists per (tenant, operation).
    """
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("tenant_id", "operation", name="uq_permissions_tenant_operation"),
    )

    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Scope of the grant; null once the tenant has been deleted
    tenant_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    operation: Mapped[Operation] = mapped_column(
        SQLEnum(Operation, values_callable=lambda ops: [op.value for op in ops], name="operation"),
        nullable=False,
        index=True
    )

    # Relationships
    delegates: Mapped[list["User"]] = relationship(  # type: ignore
        "User",
        secondary=permission_delegates,
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, tenant_id={self.tenant_id}, operation={self.operation.value})>"
