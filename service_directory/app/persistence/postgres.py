"""
PostgreSQL persistence layer for the Directory Service.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import asyncpg

from shared.errors import StoreError
from shared.logging import get_logger

from ..models import Freelancer, Hobby, Skillset
from .repository import FreelancerRepository

# Driver and transport failures that are reported to callers as StoreError
DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

_SELECT_FREELANCER = """
    SELECT id, username, email, phone_number, is_archived FROM freelancers
"""


class PostgresFreelancerRepository(FreelancerRepository):
    """Freelancer repository over an asyncpg pool.

    Every mutation runs in a single transaction. Tag collections are replaced
    wholesale (delete, then insert) on update.
    """

    def __init__(
        self,
        dsn: str,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 30.0,
        pool: Optional[asyncpg.Pool] = None,
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("directory.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = pool

    async def start(self):
        """Create the pool and the tables."""
        try:
            if self.pool is None:
                self.pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=self.min_size,
                    max_size=self.max_size,
                    command_timeout=self.command_timeout,
                )

            await self._create_tables()

            self.logger.info("PostgreSQL persistence started")

        except DRIVER_ERRORS as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise StoreError("Database is unavailable.") from e

    async def stop(self):
        """Close the pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        """Create database tables."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS freelancers (
                    id SERIAL PRIMARY KEY,
                    username TEXT NOT NULL,
                    email TEXT NOT NULL,
                    phone_number TEXT,
                    is_archived BOOLEAN NOT NULL DEFAULT FALSE
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS skillsets (
                    id SERIAL PRIMARY KEY,
                    freelancer_id INTEGER NOT NULL REFERENCES freelancers(id) ON DELETE CASCADE,
                    name TEXT NOT NULL
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS hobbies (
                    id SERIAL PRIMARY KEY,
                    freelancer_id INTEGER NOT NULL REFERENCES freelancers(id) ON DELETE CASCADE,
                    name TEXT NOT NULL
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_skillsets_freelancer ON skillsets(freelancer_id);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_hobbies_freelancer ON hobbies(freelancer_id);
            """)

    @asynccontextmanager
    async def _connection(self, action: str):
        """Acquire a connection, translating driver failures to StoreError."""
        if self.pool is None:
            raise StoreError(f"Database error occurred while {action} the freelancer.")
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except DRIVER_ERRORS as e:
            # Raw driver text stays in the log
            self.logger.error("Database operation failed", action=action, error=str(e))
            raise StoreError(f"Database error occurred while {action} the freelancer.") from e

    async def create(self, entity: Freelancer) -> int:
        async with self._connection("creating") as conn:
            async with conn.transaction():
                entity_id = await conn.fetchval(
                    """
                    INSERT INTO freelancers (username, email, phone_number, is_archived)
                    VALUES ($1, $2, $3, $4)
                    RETURNING id
                    """,
                    entity.username, entity.email, entity.phone_number, entity.is_archived,
                )
                await self._insert_children(conn, entity_id, entity)

        entity.id = entity_id
        self.logger.info("Freelancer created", freelancer_id=entity_id)
        return entity_id

    async def get_by_id(self, entity_id: int) -> Optional[Freelancer]:
        async with self._connection("retrieving") as conn:
            row = await conn.fetchrow(_SELECT_FREELANCER + " WHERE id = $1", entity_id)
            if not row:
                return None
            return (await self._hydrate(conn, [row]))[0]

    async def get_all(self) -> List[Freelancer]:
        async with self._connection("retrieving") as conn:
            rows = await conn.fetch(_SELECT_FREELANCER + " ORDER BY id")
            return await self._hydrate(conn, rows)

    async def update(self, entity: Freelancer) -> None:
        async with self._connection("updating") as conn:
            async with conn.transaction():
                status = await conn.execute(
                    """
                    UPDATE freelancers
                    SET username = $2, email = $3, phone_number = $4, is_archived = $5
                    WHERE id = $1
                    """,
                    entity.id, entity.username, entity.email, entity.phone_number, entity.is_archived,
                )
                if status.endswith(" 0"):
                    self.logger.warning("Update matched no row", freelancer_id=entity.id)
                    raise StoreError("Database error occurred while updating the freelancer.")

                await conn.execute("DELETE FROM skillsets WHERE freelancer_id = $1", entity.id)
                await conn.execute("DELETE FROM hobbies WHERE freelancer_id = $1", entity.id)
                await self._insert_children(conn, entity.id, entity)

    async def delete(self, entity: Freelancer) -> None:
        async with self._connection("deleting") as conn:
            async with conn.transaction():
                await conn.execute("DELETE FROM freelancers WHERE id = $1", entity.id)

        self.logger.info("Freelancer deleted", freelancer_id=entity.id)

    async def search_text(self, query: str) -> List[Freelancer]:
        async with self._connection("searching for") as conn:
            # strpos is a literal, case-sensitive test; LIKE would treat % and _ as wildcards
            rows = await conn.fetch(
                _SELECT_FREELANCER + " WHERE strpos(username, $1) > 0 OR strpos(email, $1) > 0 ORDER BY id",
                query,
            )
            return await self._hydrate(conn, rows)

    async def check_health(self) -> bool:
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except DRIVER_ERRORS as e:
            self.logger.warning("PostgreSQL health check failed", error=str(e))
            return False

    async def _insert_children(self, conn, entity_id: int, entity: Freelancer) -> None:
        if entity.skillsets:
            await conn.executemany(
                "INSERT INTO skillsets (freelancer_id, name) VALUES ($1, $2)",
                [(entity_id, s.name) for s in entity.skillsets],
            )
        if entity.hobbies:
            await conn.executemany(
                "INSERT INTO hobbies (freelancer_id, name) VALUES ($1, $2)",
                [(entity_id, h.name) for h in entity.hobbies],
            )

    async def _hydrate(self, conn, rows) -> List[Freelancer]:
        """Attach owned tags to freelancer rows, keeping row order."""
        if not rows:
            return []

        ids = [row["id"] for row in rows]
        skill_rows = await conn.fetch(
            "SELECT id, freelancer_id, name FROM skillsets WHERE freelancer_id = ANY($1::int[]) ORDER BY id",
            ids,
        )
        hobby_rows = await conn.fetch(
            "SELECT id, freelancer_id, name FROM hobbies WHERE freelancer_id = ANY($1::int[]) ORDER BY id",
            ids,
        )

        skills: Dict[int, List[Skillset]] = {i: [] for i in ids}
        for r in skill_rows:
            skills[r["freelancer_id"]].append(Skillset(name=r["name"], id=r["id"], freelancer_id=r["freelancer_id"]))

        hobbies: Dict[int, List[Hobby]] = {i: [] for i in ids}
        for r in hobby_rows:
            hobbies[r["freelancer_id"]].append(Hobby(name=r["name"], id=r["id"], freelancer_id=r["freelancer_id"]))

        return [
            Freelancer(
                id=row["id"],
                username=row["username"],
                email=row["email"],
                phone_number=row["phone_number"],
                is_archived=row["is_archived"],
                skillsets=skills[row["id"]],
                hobbies=hobbies[row["id"]],
            )
            for row in rows
        ]
