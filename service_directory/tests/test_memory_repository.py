"""
Unit tests for the in-memory freelancer repository.
"""

import pytest

from service_directory.app.models import Freelancer, Hobby, Skillset
from service_directory.app.persistence.memory import InMemoryFreelancerRepository
from shared.errors import StoreError


def make_freelancer(username="john.doe", email="john.doe@example.com", **kwargs) -> Freelancer:
    return Freelancer(username=username, email=email, **kwargs)


class TestInMemoryFreelancerRepository:
    """Test cases for InMemoryFreelancerRepository."""

    @pytest.fixture
    def repository(self):
        return InMemoryFreelancerRepository()

    @pytest.mark.asyncio
    async def test_create_assigns_increasing_ids(self, repository):
        first = make_freelancer()
        second = make_freelancer("jane", "jane@example.com")

        assert await repository.create(first) == 1
        assert await repository.create(second) == 2
        assert first.id == 1

    @pytest.mark.asyncio
    async def test_get_by_id_returns_children(self, repository):
        freelancer = make_freelancer(
            skillsets=[Skillset(name="python"), Skillset(name="go")],
            hobbies=[Hobby(name="chess")],
        )
        entity_id = await repository.create(freelancer)

        stored = await repository.get_by_id(entity_id)

        assert [s.name for s in stored.skillsets] == ["python", "go"]
        assert [h.name for h in stored.hobbies] == ["chess"]
        assert all(s.freelancer_id == entity_id for s in stored.skillsets)

    @pytest.mark.asyncio
    async def test_get_by_id_unknown(self, repository):
        assert await repository.get_by_id(99) is None

    @pytest.mark.asyncio
    async def test_returned_entities_are_copies(self, repository):
        entity_id = await repository.create(make_freelancer())

        loaded = await repository.get_by_id(entity_id)
        loaded.username = "changed"

        assert (await repository.get_by_id(entity_id)).username == "john.doe"

    @pytest.mark.asyncio
    async def test_update_replaces_children(self, repository):
        entity_id = await repository.create(make_freelancer(skillsets=[Skillset(name="python")]))
        loaded = await repository.get_by_id(entity_id)
        loaded.skillsets = [Skillset(name="rust")]
        loaded.is_archived = True

        await repository.update(loaded)

        stored = await repository.get_by_id(entity_id)
        assert [s.name for s in stored.skillsets] == ["rust"]
        assert stored.is_archived is True

    @pytest.mark.asyncio
    async def test_update_missing_row_is_store_error(self, repository):
        with pytest.raises(StoreError):
            await repository.update(make_freelancer(id=7))

    @pytest.mark.asyncio
    async def test_delete(self, repository):
        freelancer = make_freelancer()
        await repository.create(freelancer)

        await repository.delete(freelancer)

        assert await repository.get_by_id(freelancer.id) is None
        assert await repository.get_all() == []

    @pytest.mark.asyncio
    async def test_search_is_case_sensitive_substring_ordered_by_id(self, repository):
        await repository.create(make_freelancer("bob", "bob@johnson.io"))
        await repository.create(make_freelancer("John", "j@example.com"))
        await repository.create(make_freelancer("john.doe", "jd@example.com"))

        results = await repository.search_text("john")

        assert [f.username for f in results] == ["bob", "john.doe"]
        assert [f.id for f in results] == sorted(f.id for f in results)
