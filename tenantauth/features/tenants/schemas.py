"""
Pydantic schemas for tenant requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, Field


class TenantBase(BaseModel):
    """Base tenant schema."""
    title: str = Field(..., min_length=1, max_length=255)


class TenantCreate(TenantBase):
    """Schema for creating a tenant; a missing parent creates a root (global admin only)."""
    parent_id: str | None = Field(None, min_length=26, max_length=26, description="Parent tenant ULID")


class TenantUpdate(BaseModel):
    """
    Schema for updating a tenant.

    Sending ``parent_id`` moves the tenant; an explicit null makes it a root.
    """
    title: str | None = Field(None, min_length=1, max_length=255)
    parent_id: str | None = Field(None, min_length=26, max_length=26)


class TenantPublic(TenantBase):
    """Minimal tenant information used in tree views."""
    id: str

    model_config = {"from_attributes": True}


class TenantResponse(TenantPublic):
    """Schema for tenant responses."""
    parent_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
