"""
Unit tests for the cached directory core.
"""

import asyncio
import gc
from typing import Any, Tuple

import pytest

from service_directory.app.cache import Cache, MemoryCache, entity_key, search_key
from service_directory.app.directory import CachedDirectoryService
from service_directory.app.models import FreelancerInput
from service_directory.app.persistence import InMemoryFreelancerRepository
from shared.errors import InvalidInputError, NotFoundError, StoreError
from shared.metrics import MetricsCollector


class CountingRepository(InMemoryFreelancerRepository):
    """In-memory repository that counts reads and can stall them."""

    def __init__(self, delay: float = 0.0):
        super().__init__()
        self.delay = delay
        self.hold = None
        self.get_calls = 0
        self.search_calls = 0

    async def get_by_id(self, entity_id):
        self.get_calls += 1
        result = await super().get_by_id(entity_id)
        hold = self.hold
        if hold is not None:
            await hold.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        return result

    async def search_text(self, query):
        self.search_calls += 1
        return await super().search_text(query)


class FailingCache(Cache):
    """Cache whose backend is unreachable."""

    async def try_get(self, key: str) -> Tuple[Any, bool]:
        raise ConnectionError("cache unavailable")

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        raise ConnectionError("cache unavailable")

    async def remove(self, key: str) -> None:
        raise ConnectionError("cache unavailable")


class SlowRemoveCache(MemoryCache):
    """Memory cache whose removals take a network round-trip."""

    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    async def remove(self, key: str) -> None:
        await asyncio.sleep(self.delay)
        await super().remove(key)


class SlowFailingRepository(InMemoryFreelancerRepository):
    """Repository whose reads fail after a delay."""

    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    async def get_by_id(self, entity_id):
        await asyncio.sleep(self.delay)
        raise StoreError("Database error occurred while retrieving the freelancer.")


def make_input(username="john.doe", email="john.doe@example.com", **kwargs) -> FreelancerInput:
    return FreelancerInput(username=username, email=email, **kwargs)


class TestCachedDirectoryService:
    """Test cases for CachedDirectoryService."""

    @pytest.fixture
    def repository(self):
        return CountingRepository()

    @pytest.fixture
    def cache(self):
        return MemoryCache()

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("directory")

    @pytest.fixture
    def service(self, repository, cache, metrics):
        return CachedDirectoryService(repository, cache, ttl_seconds=300, metrics=metrics)

    # get_by_id

    @pytest.mark.asyncio
    async def test_unknown_id_raises_and_does_not_populate_cache(self, service, cache):
        with pytest.raises(NotFoundError) as exc_info:
            await service.get_by_id(99)

        assert exc_info.value.entity_id == 99
        assert exc_info.value.message == "Freelancer with ID 99 not found."
        assert await cache.try_get(entity_key(99)) == (None, False)

    @pytest.mark.asyncio
    async def test_registered_freelancer_is_immediately_fetchable(self, service):
        created = await service.register(
            make_input(phone_number="555-0100", skillsets=["python", "sql"], hobbies=["chess"])
        )

        fetched = await service.get_by_id(created.id)

        assert fetched == created
        assert fetched.username == "john.doe"
        assert fetched.email == "john.doe@example.com"
        assert fetched.phone_number == "555-0100"
        assert fetched.is_archived is False
        assert fetched.skillsets == ["python", "sql"]
        assert fetched.hobbies == ["chess"]

    @pytest.mark.asyncio
    async def test_repeated_reads_hit_store_once(self, service, repository, metrics):
        created = await service.register(make_input())
        repository.get_calls = 0

        for _ in range(5):
            await service.get_by_id(created.id)

        assert repository.get_calls == 1
        assert metrics.get_sample_value("cache_misses_total", operation="get_by_id") == 1
        assert metrics.get_sample_value("cache_hits_total", operation="get_by_id") == 4

    @pytest.mark.asyncio
    async def test_concurrent_cold_reads_are_coalesced(self, cache, metrics):
        repository = CountingRepository(delay=0.05)
        service = CachedDirectoryService(repository, cache, metrics=metrics)
        created = await service.register(make_input())
        repository.get_calls = 0

        results = await asyncio.gather(*[service.get_by_id(created.id) for _ in range(10)])

        assert repository.get_calls == 1
        assert all(r == results[0] for r in results)
        assert metrics.get_sample_value("coalesced_loads_total", operation="get_by_id") == 9
        assert service._inflight == {}

    @pytest.mark.asyncio
    async def test_concurrent_reads_of_unknown_id_all_fail(self, cache):
        repository = CountingRepository(delay=0.01)
        service = CachedDirectoryService(repository, cache)

        results = await asyncio.gather(*[service.get_by_id(5) for _ in range(3)], return_exceptions=True)

        assert all(isinstance(r, NotFoundError) for r in results)
        assert repository.get_calls == 1

    # Mutations and invalidation

    @pytest.mark.asyncio
    async def test_update_is_visible_on_warm_cache(self, service):
        created = await service.register(make_input(skillsets=["python"]))
        await service.get_by_id(created.id)

        ack = await service.update(created.id, make_input("johnny", "johnny@example.com", skillsets=["rust"]))
        fetched = await service.get_by_id(created.id)

        assert ack.status == 200
        assert ack.message == f"Freelancer with ID {created.id} successfully updated."
        assert fetched.username == "johnny"
        assert fetched.email == "johnny@example.com"
        assert fetched.skillsets == ["rust"]
        assert fetched.hobbies == []

    @pytest.mark.asyncio
    async def test_update_is_visible_on_cold_cache(self, service):
        created = await service.register(make_input())

        await service.update(created.id, make_input("johnny", "johnny@example.com"))

        assert (await service.get_by_id(created.id)).username == "johnny"

    @pytest.mark.asyncio
    async def test_delete_after_cached_read_is_not_found(self, service):
        created = await service.register(make_input())
        await service.get_by_id(created.id)

        await service.delete(created.id)

        with pytest.raises(NotFoundError):
            await service.get_by_id(created.id)

    @pytest.mark.asyncio
    async def test_archive_and_unarchive_invalidate(self, service):
        created = await service.register(make_input())
        await service.get_by_id(created.id)

        await service.archive(created.id)
        assert (await service.get_by_id(created.id)).is_archived is True

        await service.unarchive(created.id)
        assert (await service.get_by_id(created.id)).is_archived is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["delete", "archive", "unarchive"])
    async def test_mutating_unknown_id_raises_not_found(self, service, operation):
        with pytest.raises(NotFoundError):
            await getattr(service, operation)(404)

    @pytest.mark.asyncio
    async def test_update_unknown_id_raises_not_found(self, service):
        with pytest.raises(NotFoundError):
            await service.update(404, make_input())

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "username,email",
        [(None, "a@example.com"), ("alice", None), ("", "a@example.com"), ("alice", "   ")],
    )
    async def test_register_requires_username_and_email(self, service, repository, username, email):
        with pytest.raises(InvalidInputError) as exc_info:
            await service.register(FreelancerInput(username=username, email=email))

        assert exc_info.value.message == "Username and Email are required."
        assert await repository.get_all() == []

    @pytest.mark.asyncio
    async def test_update_validates_before_touching_store(self, service, repository):
        created = await service.register(make_input())
        repository.get_calls = 0

        with pytest.raises(InvalidInputError):
            await service.update(created.id, FreelancerInput(username="x", email=""))

        assert repository.get_calls == 0

    @pytest.mark.asyncio
    async def test_mutation_detaches_inflight_load(self, service, repository, cache):
        created = await service.register(make_input())
        hold = asyncio.Event()
        repository.hold = hold

        reader = asyncio.create_task(service.get_by_id(created.id))
        await asyncio.sleep(0.01)
        repository.hold = None

        await service.update(created.id, make_input("johnny", "johnny@example.com"))
        hold.set()
        stale = await reader

        # The in-flight reader may see the old state, but must not cache it
        assert stale.username == "john.doe"
        assert await cache.try_get(entity_key(created.id)) == (None, False)
        assert (await service.get_by_id(created.id)).username == "johnny"

    @pytest.mark.asyncio
    async def test_cancelled_update_still_invalidates(self, repository):
        cache = SlowRemoveCache(delay=0.05)
        service = CachedDirectoryService(repository, cache)
        created = await service.register(make_input())
        assert (await service.get_by_id(created.id)).username == "john.doe"

        updating = asyncio.create_task(service.update(created.id, make_input("johnny", "johnny@example.com")))
        await asyncio.sleep(0.01)
        updating.cancel()

        with pytest.raises(asyncio.CancelledError):
            await updating

        assert (await repository.get_by_id(created.id)).username == "johnny"
        assert (await service.get_by_id(created.id)).username == "johnny"

    @pytest.mark.asyncio
    async def test_abandoned_load_failure_is_retrieved(self, cache):
        loop = asyncio.get_running_loop()
        reported = []
        previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        try:
            service = CachedDirectoryService(SlowFailingRepository(delay=0.03), cache)

            reader = asyncio.create_task(service.get_by_id(1))
            await asyncio.sleep(0.01)
            reader.cancel()
            with pytest.raises(asyncio.CancelledError):
                await reader

            await asyncio.sleep(0.05)
            del reader
            gc.collect()
        finally:
            loop.set_exception_handler(previous_handler)

        assert service._inflight == {}
        assert not [c for c in reported if "never retrieved" in c.get("message", "")]

    @pytest.mark.asyncio
    async def test_store_error_propagates_from_mutation(self, service, repository):
        async def broken_create(entity):
            raise StoreError("Database error occurred while creating the freelancer.")

        repository.create = broken_create

        with pytest.raises(StoreError):
            await service.register(make_input())

    # Cache failure degradation

    @pytest.mark.asyncio
    async def test_cache_failures_degrade_to_store(self, repository, metrics):
        service = CachedDirectoryService(repository, FailingCache(), metrics=metrics)

        created = await service.register(make_input())
        await service.get_by_id(created.id)
        await service.get_by_id(created.id)
        page = await service.search("john", 1, 10)

        assert page.total_count == 1
        assert repository.get_calls == 2
        assert metrics.get_sample_value("cache_errors_total", operation="get") == 3
        assert metrics.get_sample_value("cache_errors_total", operation="set") == 3
        assert metrics.get_sample_value("cache_errors_total", operation="remove") == 1

    # search

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", None])
    async def test_search_requires_query(self, service, repository, query):
        with pytest.raises(InvalidInputError) as exc_info:
            await service.search(query, 1, 10)

        assert exc_info.value.message == "Search query is required."
        assert repository.search_calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page,page_size", [(0, 10), (-1, 10), (1, 0), (1, -5)])
    async def test_search_rejects_bad_paging(self, service, repository, page, page_size):
        with pytest.raises(InvalidInputError):
            await service.search("john", page, page_size)

        assert repository.search_calls == 0

    @pytest.mark.asyncio
    async def test_large_page_size_is_accepted_by_default(self, service):
        for i in range(3):
            await service.register(make_input(f"john{i}", f"john{i}@example.com"))

        page = await service.search("john", 1, 5000)

        assert (len(page.items), page.total_count) == (3, 3)

    @pytest.mark.asyncio
    async def test_configured_page_size_cap_is_enforced(self, repository, cache):
        service = CachedDirectoryService(repository, cache, max_page_size=50)

        with pytest.raises(InvalidInputError):
            await service.search("john", 1, 51)

        assert repository.search_calls == 0

    @pytest.mark.asyncio
    async def test_search_single_match(self, service):
        await service.register(make_input())
        await service.register(make_input("jane", "jane@example.com"))

        page = await service.search("john", 1, 10)

        assert page.total_count == 1
        assert [f.username for f in page.items] == ["john.doe"]

    @pytest.mark.asyncio
    async def test_search_paginates_with_total(self, service):
        for i in range(15):
            await service.register(make_input(f"john{i:02d}", f"john{i:02d}@example.com"))

        first = await service.search("john", 1, 10)
        second = await service.search("john", 2, 10)
        third = await service.search("john", 3, 10)

        assert (len(first.items), first.total_count) == (10, 15)
        assert (len(second.items), second.total_count) == (5, 15)
        assert (len(third.items), third.total_count) == (0, 15)
        assert [f.username for f in first.items][:2] == ["john00", "john01"]
        assert second.items[0].username == "john10"

    @pytest.mark.asyncio
    async def test_cached_search_keeps_total_count(self, service, repository, cache):
        for i in range(15):
            await service.register(make_input(f"john{i:02d}", f"john{i:02d}@example.com"))

        await service.search("john", 1, 10)
        cached = await service.search("john", 1, 10)

        assert repository.search_calls == 1
        assert cached.total_count == 15
        assert len(cached.items) == 10
        assert (await cache.try_get(search_key("john", 1, 10)))[1] is True

    @pytest.mark.asyncio
    async def test_empty_search_result_is_not_cached(self, service, repository, cache):
        first = await service.search("nobody", 1, 10)
        await service.search("nobody", 1, 10)

        assert first.total_count == 0
        assert first.items == []
        assert repository.search_calls == 2
        assert await cache.try_get(search_key("nobody", 1, 10)) == (None, False)

    @pytest.mark.asyncio
    async def test_search_pages_are_not_invalidated_by_writes(self, service):
        await service.register(make_input())
        before = await service.search("john", 1, 10)

        await service.register(make_input("john.two", "john.two@example.com"))
        after = await service.search("john", 1, 10)

        assert before.total_count == 1
        assert after.total_count == 1

    @pytest.mark.asyncio
    async def test_search_page_expires_after_ttl(self, repository):
        now = [0.0]
        service = CachedDirectoryService(repository, MemoryCache(clock=lambda: now[0]), ttl_seconds=300)
        await service.register(make_input())
        await service.search("john", 1, 10)
        await service.register(make_input("john.two", "john.two@example.com"))

        now[0] = 300.0

        assert (await service.search("john", 1, 10)).total_count == 2

    @pytest.mark.asyncio
    async def test_list_all_is_uncached(self, service, repository):
        await service.register(make_input())
        await service.register(make_input("jane", "jane@example.com"))

        listed = await service.list_all()
        await service.register(make_input("bob", "bob@example.com"))
        relisted = await service.list_all()

        assert [f.username for f in listed] == ["john.doe", "jane"]
        assert len(relisted) == 3
