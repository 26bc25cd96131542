"""
In-process freelancer store, used for local runs and tests.
"""

import asyncio
import copy
from typing import Dict, List, Optional

from shared.errors import StoreError
from shared.logging import get_logger

from ..models import Freelancer
from .repository import FreelancerRepository


class InMemoryFreelancerRepository(FreelancerRepository):
    """Dict-backed freelancer repository.

    Entities are deep-copied on the way in and out, so nothing a caller does
    to a returned object changes stored state.
    """

    def __init__(self):
        self.logger = get_logger("directory.persistence.memory")
        self._rows: Dict[int, Freelancer] = {}
        self._next_id = 1
        self._next_child_id = 1
        self._lock = asyncio.Lock()

    async def create(self, entity: Freelancer) -> int:
        async with self._lock:
            entity_id = self._next_id
            self._next_id += 1
            entity.id = entity_id
            stored = copy.deepcopy(entity)
            self._assign_children(stored)
            self._rows[entity_id] = stored

        self.logger.debug("Freelancer created", freelancer_id=entity_id)
        return entity_id

    async def get_by_id(self, entity_id: int) -> Optional[Freelancer]:
        async with self._lock:
            row = self._rows.get(entity_id)
            return copy.deepcopy(row) if row is not None else None

    async def get_all(self) -> List[Freelancer]:
        async with self._lock:
            return [copy.deepcopy(self._rows[k]) for k in sorted(self._rows)]

    async def update(self, entity: Freelancer) -> None:
        async with self._lock:
            if entity.id not in self._rows:
                raise StoreError("Database error occurred while updating the freelancer.")
            stored = copy.deepcopy(entity)
            self._assign_children(stored)
            self._rows[entity.id] = stored

    async def delete(self, entity: Freelancer) -> None:
        async with self._lock:
            self._rows.pop(entity.id, None)

    async def search_text(self, query: str) -> List[Freelancer]:
        async with self._lock:
            return [
                copy.deepcopy(self._rows[k])
                for k in sorted(self._rows)
                if query in self._rows[k].username or query in self._rows[k].email
            ]

    def _assign_children(self, entity: Freelancer) -> None:
        # Caller holds the lock
        for child in list(entity.skillsets) + list(entity.hobbies):
            child.freelancer_id = entity.id
            if child.id is None:
                child.id = self._next_child_id
                self._next_child_id += 1
