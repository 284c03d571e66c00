"""
Value types shared by the tree walker, grant resolver and visibility facade.
"""
import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any

from tenantauth.core.access.errors import InvalidOperationError


class Operation(str, enum.Enum):
    """The four operations a grant can authorize."""
    CREATE = "C"
    READ = "R"
    UPDATE = "U"
    DELETE = "D"

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, value: Any) -> "Operation":
        """
        Coerce a wire value ("R" or Operation.READ) into an Operation.

        Raises:
            InvalidOperationError: for anything other than exactly "C", "R", "U" or "D"
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for op in cls:
                if value == op.value:
                    return op
        raise InvalidOperationError(value)


class Decision(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"

    def __bool__(self) -> bool:
        return self is Decision.ALLOW


@dataclass(frozen=True)
class TenantNode:
    id: str
    title: str = ""
    parent_id: str | None = None


@dataclass(frozen=True)
class Grant:
    id: str
    tenant_id: str | None
    operation: Operation
    delegates: frozenset[str] = frozenset()


@dataclass(frozen=True)
class GrantFilter:
    """Lookup keys for ``PermissionStore.find_grants``; ``None`` means unconstrained."""
    tenant_ids: tuple[str, ...] | None = None
    operation: Operation | None = None
    delegate: str | None = None


@dataclass(frozen=True)
class AccessContext:
    """
    Caller identity and deadline, passed explicitly to every engine entry point.

    ``deadline`` is an absolute event-loop time (``loop.time()``), or ``None`` for no deadline.
    """
    identity: str | None
    deadline: float | None = field(default=None)

    @classmethod
    def with_timeout(cls, identity: str | None, seconds: float | None) -> "AccessContext":
        if seconds is None:
            return cls(identity=identity)
        return cls(identity=identity, deadline=asyncio.get_running_loop().time() + seconds)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.identity)
