"""
Tenant model.

Tenants form a forest through ``parent_id``. Deleting a tenant detaches its
children and orphans grants scoped to it.
"""
from sqlalchemy import String, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from tenantauth.core.database.base import Base, TimestampMixin, generate_ulid


class Tenant(Base, TimestampMixin):
    """
    Organization node in the tenant hierarchy.
    """
    __tablename__ = "tenants"

    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    title: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    # Owning tenant (null for roots)
    parent_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, title={self.title!r}, parent_id={self.parent_id})>"
