"""
Repository contracts for the Directory Service.
"""

from abc import ABC, abstractmethod
from typing import Generic, List, Optional, TypeVar

from ..models import Freelancer

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """Create/read/update/delete over one entity kind.

    Implementations raise ``StoreError`` for any persistence failure. No
    caching and no business rules live here.
    """

    @abstractmethod
    async def create(self, entity: T) -> int:
        """Persist ``entity``, assign its id and return it."""

    @abstractmethod
    async def get_by_id(self, entity_id: int) -> Optional[T]:
        """Entity with its owned children, or None."""

    @abstractmethod
    async def get_all(self) -> List[T]:
        """Every entity with its owned children."""

    @abstractmethod
    async def update(self, entity: T) -> None:
        """Replace mutable fields and owned children of an existing entity."""

    @abstractmethod
    async def delete(self, entity: T) -> None:
        """Remove the entity; owned children go with it."""

    async def check_health(self) -> bool:
        return True


class FreelancerRepository(Repository[Freelancer]):
    """Repository for freelancers, with substring search."""

    @abstractmethod
    async def search_text(self, query: str) -> List[Freelancer]:
        """Freelancers whose username or email contains ``query``.

        Matching is a literal, case-sensitive substring test. Results are
        ordered by id so that pagination over them is stable.
        """
