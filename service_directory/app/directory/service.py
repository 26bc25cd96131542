"""
Cache-consistent data access for the freelancer directory.

Point lookups and searches are read through the cache. Every mutation is
persisted first and then removes the entity key, so a later lookup never
serves the state from before the write. Search pages are only ever expired by
their TTL; a write can leave a cached page stale for up to that long.
"""

import asyncio
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from shared.errors import InvalidInputError, NotFoundError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..cache import Cache, entity_key, search_key
from ..models import Freelancer, FreelancerInput, FreelancerResponse, Hobby, Skillset, StatusMessage
from ..persistence import FreelancerRepository

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_PAGE_SIZE = None


@dataclass
class SearchPage:
    """One page of search results plus the unpaginated match count."""
    items: List[FreelancerResponse] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 10


class CachedDirectoryService:
    """Read-through cache in front of a freelancer repository."""

    def __init__(
        self,
        repository: FreelancerRepository,
        cache: Cache,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_page_size: Optional[int] = DEFAULT_MAX_PAGE_SIZE,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.repository = repository
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.max_page_size = max_page_size
        self.metrics = metrics
        self.logger = get_logger("directory.service")

        # Loads currently running per cache key; followers await the same task
        self._inflight: Dict[str, asyncio.Task] = {}

    # Reads

    async def get_by_id(self, entity_id: int) -> FreelancerResponse:
        """Return the projection for ``entity_id``.

        Raises NotFoundError when no such freelancer exists; nothing is
        cached in that case.
        """
        key = entity_key(entity_id)
        cached, found = await self._safe_get(key, "get_by_id")
        if found:
            self._count("cache_hits_total", "get_by_id")
            return FreelancerResponse.model_validate(cached)

        self._count("cache_misses_total", "get_by_id")
        payload = await self._load(key, "get_by_id", lambda: self._fetch_entity(entity_id))
        if payload is None:
            raise NotFoundError(entity_id)
        return FreelancerResponse.model_validate(payload)

    async def search(self, query: Optional[str], page: int = 1, page_size: int = 10) -> SearchPage:
        """Return one page of freelancers whose username or email contains ``query``."""
        if not query:
            raise InvalidInputError("Search query is required.")
        if page < 1:
            raise InvalidInputError("Page must be 1 or greater.", {"page": page})
        if page_size < 1:
            raise InvalidInputError("Page size must be 1 or greater.", {"pageSize": page_size})
        if self.max_page_size is not None and page_size > self.max_page_size:
            raise InvalidInputError(
                f"Page size must be between 1 and {self.max_page_size}.",
                {"pageSize": page_size},
            )

        key = search_key(query, page, page_size)
        cached, found = await self._safe_get(key, "search")
        if found:
            self._count("cache_hits_total", "search")
        else:
            self._count("cache_misses_total", "search")
            cached = await self._load(
                key,
                "search",
                lambda: self._fetch_search_page(query, page, page_size),
                cache_if=lambda payload: payload["total_count"] > 0,
            )

        return SearchPage(
            items=[FreelancerResponse.model_validate(item) for item in cached["items"]],
            total_count=cached["total_count"],
            page=page,
            page_size=page_size,
        )

    async def list_all(self) -> List[FreelancerResponse]:
        """Every freelancer, straight from the store."""
        self._count("store_reads_total", "list_all")
        with self._timed("list_all"):
            freelancers = await self.repository.get_all()
        return [FreelancerResponse.from_entity(f) for f in freelancers]

    # Mutations

    async def register(self, data: FreelancerInput) -> FreelancerResponse:
        self._require_identity(data)

        freelancer = Freelancer(
            username=data.username,
            email=data.email,
            phone_number=data.phone_number,
            is_archived=False,
            skillsets=[Skillset(name=name) for name in data.skillsets or []],
            hobbies=[Hobby(name=name) for name in data.hobbies or []],
        )
        with self._timed("register"):
            new_id = await self.repository.create(freelancer)

        await self._invalidate_after_write(entity_key(new_id), "register")
        self.logger.info("Freelancer registered", freelancer_id=new_id)
        return FreelancerResponse.from_entity(freelancer)

    async def update(self, entity_id: int, data: FreelancerInput) -> StatusMessage:
        self._require_identity(data)
        freelancer = await self._require_entity(entity_id)

        freelancer.username = data.username
        freelancer.email = data.email
        freelancer.phone_number = data.phone_number
        freelancer.skillsets = [Skillset(name=name) for name in data.skillsets or []]
        freelancer.hobbies = [Hobby(name=name) for name in data.hobbies or []]

        with self._timed("update"):
            await self.repository.update(freelancer)

        await self._invalidate_after_write(entity_key(entity_id), "update")
        self.logger.info("Freelancer updated", freelancer_id=entity_id)
        return StatusMessage(status=200, message=f"Freelancer with ID {entity_id} successfully updated.")

    async def delete(self, entity_id: int) -> None:
        freelancer = await self._require_entity(entity_id)
        with self._timed("delete"):
            await self.repository.delete(freelancer)

        await self._invalidate_after_write(entity_key(entity_id), "delete")
        self.logger.info("Freelancer deleted", freelancer_id=entity_id)

    async def archive(self, entity_id: int) -> None:
        await self._set_archived(entity_id, True, "archive")

    async def unarchive(self, entity_id: int) -> None:
        await self._set_archived(entity_id, False, "unarchive")

    async def _set_archived(self, entity_id: int, archived: bool, operation: str) -> None:
        freelancer = await self._require_entity(entity_id)
        freelancer.is_archived = archived
        with self._timed(operation):
            await self.repository.update(freelancer)

        await self._invalidate_after_write(entity_key(entity_id), operation)
        self.logger.info("Freelancer archive flag changed", freelancer_id=entity_id, is_archived=archived)

    # Helpers

    @staticmethod
    def _require_identity(data: FreelancerInput) -> None:
        if not data.username or not data.username.strip() or not data.email or not data.email.strip():
            raise InvalidInputError("Username and Email are required.")

    async def _require_entity(self, entity_id: int) -> Freelancer:
        self._count("store_reads_total", "load_for_write")
        freelancer = await self.repository.get_by_id(entity_id)
        if freelancer is None:
            raise NotFoundError(entity_id)
        return freelancer

    async def _fetch_entity(self, entity_id: int) -> Optional[Dict[str, Any]]:
        self._count("store_reads_total", "get_by_id")
        with self._timed("get_by_id"):
            freelancer = await self.repository.get_by_id(entity_id)
        if freelancer is None:
            return None
        return FreelancerResponse.from_entity(freelancer).to_cache()

    async def _fetch_search_page(self, query: str, page: int, page_size: int) -> Dict[str, Any]:
        self._count("store_reads_total", "search")
        with self._timed("search"):
            matches = await self.repository.search_text(query)

        start = (page - 1) * page_size
        items = matches[start:start + page_size]
        return {
            "items": [FreelancerResponse.from_entity(f).to_cache() for f in items],
            "total_count": len(matches),
        }

    async def _load(
        self,
        key: str,
        operation: str,
        loader: Callable[[], Awaitable[Any]],
        cache_if: Callable[[Any], bool] = lambda payload: payload is not None,
    ) -> Any:
        """Run ``loader`` once per key no matter how many callers miss at once."""
        task = self._inflight.get(key)
        if task is not None:
            self._count("coalesced_loads_total", operation)
        else:
            task = asyncio.create_task(self._run_load(key, operation, loader, cache_if))
            task.add_done_callback(_consume_result)
            self._inflight[key] = task

        # Shielded so one caller going away does not cancel the others' load
        return await asyncio.shield(task)

    async def _run_load(self, key, operation, loader, cache_if) -> Any:
        me = asyncio.current_task()
        try:
            payload = await loader()
            # A mutation may have detached this load; its result is then stale
            if cache_if(payload) and self._inflight.get(key) is me:
                await self._safe_set(key, payload, operation)
            return payload
        finally:
            if self._inflight.get(key) is me:
                del self._inflight[key]

    async def _invalidate_after_write(self, key: str, operation: str) -> None:
        """Invalidate after a persisted write, even if the caller is cancelled meanwhile."""
        task = asyncio.create_task(self._invalidate(key, operation))
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            await task
            raise

    async def _invalidate(self, key: str, operation: str) -> None:
        self._inflight.pop(key, None)
        try:
            await self.cache.remove(key)
            self._count("cache_invalidations_total", operation)
        except Exception as exc:
            self.logger.error("Cache invalidation error", key=key, operation=operation, error=str(exc))
            self._count("cache_errors_total", "remove")

    async def _safe_get(self, key: str, operation: str):
        """Cache read that treats any backend failure as a miss."""
        try:
            return await self.cache.try_get(key)
        except Exception as exc:
            self.logger.error("Cache fetch error", key=key, operation=operation, error=str(exc))
            self._count("cache_errors_total", "get")
            return None, False

    async def _safe_set(self, key: str, value: Any, operation: str) -> None:
        try:
            await self.cache.set(key, value, self.ttl_seconds)
        except Exception as exc:
            self.logger.error("Cache store error", key=key, operation=operation, error=str(exc))
            self._count("cache_errors_total", "set")

    def _count(self, metric_name: str, operation: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, operation=operation)

    def _timed(self, operation: str):
        if self.metrics:
            return self.metrics.time_operation("store_operation_duration_seconds", operation=operation)
        return nullcontext()


def _consume_result(task: asyncio.Task) -> None:
    # Marks a load failure as retrieved when every waiter has gone away
    if not task.cancelled():
        task.exception()
