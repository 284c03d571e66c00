"""
Errors raised by the access engine.

Denial is never an error: ``authorize`` returns ``Decision.DENY``. These exceptions
mean the engine could not produce an answer at all.
"""
from typing import Any


class AccessError(Exception):
    """Base class for access engine failures."""


class StoreUnavailableError(AccessError):
    """A tenant or permission store lookup failed or exceeded the caller's deadline."""

    def __init__(self, message: str = "Access store unavailable"):
        super().__init__(message)
        self.message = message


class InvalidOperationError(AccessError, ValueError):
    """An operation value outside C/R/U/D reached the engine boundary."""

    def __init__(self, value: Any):
        super().__init__(f"Invalid operation {value!r}; expected one of C, R, U, D")
        self.value = value
