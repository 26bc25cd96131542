"""
Directory core: cached reads and invalidating writes over the freelancer store.
"""

from .service import CachedDirectoryService, SearchPage

__all__ = ["CachedDirectoryService", "SearchPage"]
