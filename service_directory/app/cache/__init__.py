"""
Cache package for the Directory Service.

Provides the cache contract, an in-process TTL cache (default) and a Redis
backend. Entries carry an absolute expiration and are removed explicitly by
the directory service when a mutation makes them stale.
"""

from .base import Cache
from .keys import entity_key, search_key
from .memory_cache import MemoryCache
from .redis_cache import RedisCache

__all__ = ["Cache", "MemoryCache", "RedisCache", "entity_key", "search_key"]
