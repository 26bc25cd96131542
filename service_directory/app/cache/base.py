"""
Cache contract shared by all Directory Service cache backends.
"""

from abc import ABC, abstractmethod
from typing import Any, Tuple


class Cache(ABC):
    """Process-wide key-value store with per-entry absolute expiration.

    Backends know nothing about what a key encodes. Expiration is fixed when
    the entry is written and is never extended by reads.
    """

    @abstractmethod
    async def try_get(self, key: str) -> Tuple[Any, bool]:
        """Return ``(value, True)`` on a live hit, ``(None, False)`` otherwise."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store ``value`` under ``key``, replacing any entry, expiring at now + ttl."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete the entry if present."""

    async def ping(self) -> bool:
        """Return True if the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release backend resources."""
