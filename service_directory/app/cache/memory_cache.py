"""
In-process TTL cache for the Directory Service.
"""

import copy
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple

from shared.logging import get_logger

from .base import Cache


@dataclass
class _Entry:
    value: Any
    expires_at: float


class MemoryCache(Cache):
    """Thread-safe dict cache with absolute expiration deadlines.

    Expired entries are dropped lazily when read, and swept when the cache is
    full. If a sweep frees nothing, the entry closest to expiry is evicted.
    Values are deep-copied on the way in and out so callers can never mutate
    what another request will be served.
    """

    def __init__(self, max_entries: int = 10000, clock: Callable[[], float] = time.monotonic):
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self.logger = get_logger("directory.cache.memory")

    async def try_get(self, key: str) -> Tuple[Any, bool]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, False
            if entry.expires_at <= now:
                del self._entries[key]
                return None, False
            value = entry.value
        return copy.deepcopy(value), True

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        stored = copy.deepcopy(value)
        now = self._clock()
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._make_room(now)
            self._entries[key] = _Entry(value=stored, expires_at=now + ttl_seconds)

    async def remove(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _make_room(self, now: float) -> None:
        # Caller holds the lock
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]

        if len(self._entries) >= self.max_entries:
            victim = min(self._entries, key=lambda k: self._entries[k].expires_at)
            del self._entries[victim]
            self.logger.debug("Evicted cache entry", key=victim, reason="capacity")
