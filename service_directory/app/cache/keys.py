"""
Cache key builders for the Directory Service.

Point lookups and searches are the only cached reads; both the read path and
the invalidation path build their keys here so they always agree.
"""

ENTITY_PREFIX = "entity"
SEARCH_PREFIX = "search"


def entity_key(entity_id: int) -> str:
    """Key for a single freelancer projection."""
    return f"{ENTITY_PREFIX}:{entity_id}"


def search_key(query: str, page: int, page_size: int) -> str:
    """Key for one page of search results.

    Page and page size are part of the key: page 1 must never be served for
    page 2. The query is escaped so a ``:`` inside it cannot shift segments.
    """
    return f"{SEARCH_PREFIX}:{_escape_segment(query)}:{page}:{page_size}"


def _escape_segment(value: str) -> str:
    # "%" first, otherwise the escapes themselves would be re-escaped
    return value.replace("%", "%25").replace(":", "%3A")
