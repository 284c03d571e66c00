"""
Pydantic schemas for grant management.
"""
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, field_validator

from tenantauth.core.access import Decision, Operation
from tenantauth.features.users.schemas import UserPublic


class OperationField(BaseModel):
    """Accepts exactly "C", "R", "U" or "D"."""
    operation: Operation = Field(..., description="One of C, R, U, D")

    @field_validator("operation", mode="before")
    @classmethod
    def parse_operation(cls, v):
        return Operation.parse(v)


class PermissionCreate(OperationField):
    """Schema for creating a grant."""
    tenant_id: str = Field(..., description="Tenant the grant is scoped to")
    delegate_ids: list[str] = Field(default_factory=list, description="Initial delegate user IDs")


class PermissionResponse(BaseModel):
    """Schema for grant response."""
    id: str
    tenant_id: str | None
    operation: Operation
    delegates: list[UserPublic] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AddDelegate(BaseModel):
    user_id: str = Field(..., description="User to add as delegate")


class PermissionCheckRequest(OperationField):
    """Check whether the current user may perform an operation on a tenant."""
    tenant_id: str


class PermissionCheckResponse(BaseModel):
    tenant_id: str
    operation: Operation
    decision: Decision
    allowed: bool
