"""
Shared helpers: logger factory and key-based deduplication.
"""
import logging
import os
import sys
from collections.abc import Hashable, Iterable, Iterator
from typing import Callable, TypeVar

T = TypeVar("T")

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    root = logging.getLogger("tenantauth")
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Return a module logger under the ``tenantauth`` hierarchy.

    Usage:
        log = get_logger(__name__)
    """
    _configure_root()
    if not name.startswith("tenantauth"):
        name = f"tenantauth.{name}"
    return logging.getLogger(name)


def unique_by_key(items: Iterable[T], key: Callable[[T], Hashable]) -> Iterator[T]:
    """
    Yield items whose ``key(item)`` has not been seen before, keeping first occurrence order.
    """
    seen: set[Hashable] = set()
    for item in items:
        value = key(item)
        if value in seen:
            continue
        seen.add(value)
        yield item
