"""
Directory service for the Freelancer Directory.
"""

from typing import Optional

from fastapi import Depends, Query
from fastapi.responses import JSONResponse, Response

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config

from .auth import AuthContext, JWTRequestGate
from .cache import Cache, MemoryCache, RedisCache
from .directory import CachedDirectoryService
from .models import FreelancerCreateRequest, FreelancerUpdateRequest
from .persistence import FreelancerRepository, InMemoryFreelancerRepository, PostgresFreelancerRepository

SERVICE_NAME = "directory"
SERVICE_PORT = 8020
ROUTE_PREFIX = "/api/freelancers"


class DirectoryService(BaseService):
    """Directory service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        repository: Optional[FreelancerRepository] = None,
        cache: Optional[Cache] = None,
    ):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config or get_config(SERVICE_NAME, SERVICE_PORT))

        self.repository = repository if repository is not None else self._build_repository()
        self.cache = cache if cache is not None else self._build_cache()
        self.directory = CachedDirectoryService(
            self.repository,
            self.cache,
            ttl_seconds=self.config.cache_ttl_seconds,
            max_page_size=self.config.search_max_page_size,
            metrics=self.metrics,
        )
        self.gate = JWTRequestGate(
            self.config.jwt_secret,
            algorithm=self.config.jwt_algorithm,
            issuer=self.config.jwt_issuer,
            audience=self.config.jwt_audience,
        )

        self._setup_directory_routes()

    def _build_repository(self) -> FreelancerRepository:
        if self.config.storage_backend == "postgres":
            return PostgresFreelancerRepository(
                self.config.postgres_dsn,
                min_size=self.config.postgres_min_pool_size,
                max_size=self.config.postgres_max_pool_size,
                command_timeout=self.config.postgres_command_timeout,
            )
        return InMemoryFreelancerRepository()

    def _build_cache(self) -> Cache:
        if self.config.cache_backend == "redis":
            return RedisCache(self.config.redis_url, key_prefix=self.config.cache_key_prefix)
        return MemoryCache(max_entries=self.config.cache_max_entries)

    def _setup_directory_routes(self):
        """Set up directory-specific routes."""

        write_dependencies = [Depends(self.gate)] if self.config.require_auth_for_writes else []

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Freelancer Directory - Directory Service",
                "version": "1.0.0",
                "capabilities": ["read_through_cache", "search", "persistence"],
                "storage_backend": self.config.storage_backend,
                "cache_backend": self.config.cache_backend,
            }

        @self.app.get(ROUTE_PREFIX)
        async def list_freelancers():
            """List every freelancer."""
            freelancers = await self.directory.list_all()
            return [f.model_dump(by_alias=True) for f in freelancers]

        @self.app.get(f"{ROUTE_PREFIX}/search")
        async def search_freelancers(
            query: Optional[str] = Query(None),
            page: int = Query(1),
            page_size: int = Query(self.config.search_default_page_size, alias="pageSize"),
        ):
            """Search freelancers by username or email substring."""
            result = await self.directory.search(query, page, page_size)
            if result.total_count == 0:
                return {"status": 200, "message": "No data found."}

            return JSONResponse(
                content=[item.model_dump(by_alias=True) for item in result.items],
                headers={"X-Total-Count": str(result.total_count)},
            )

        @self.app.get(f"{ROUTE_PREFIX}/{{freelancer_id}}")
        async def get_freelancer(freelancer_id: int, auth: AuthContext = Depends(self.gate)):
            """Get one freelancer. Requires a bearer token."""
            freelancer = await self.directory.get_by_id(freelancer_id)
            return freelancer.model_dump(by_alias=True)

        @self.app.post(f"{ROUTE_PREFIX}/register", status_code=201, dependencies=write_dependencies)
        async def register_freelancer(request: FreelancerCreateRequest):
            """Register a new freelancer."""
            created = await self.directory.register(request)
            return JSONResponse(
                status_code=201,
                content=created.model_dump(by_alias=True),
                headers={"Location": f"{ROUTE_PREFIX}/{created.id}"},
            )

        @self.app.put(f"{ROUTE_PREFIX}/update/{{freelancer_id}}", dependencies=write_dependencies)
        async def update_freelancer(freelancer_id: int, request: FreelancerUpdateRequest):
            """Replace a freelancer's profile."""
            ack = await self.directory.update(freelancer_id, request)
            return ack.model_dump()

        @self.app.delete(f"{ROUTE_PREFIX}/delete/{{freelancer_id}}", status_code=204, dependencies=write_dependencies)
        async def delete_freelancer(freelancer_id: int):
            """Delete a freelancer and its tags."""
            await self.directory.delete(freelancer_id)
            return Response(status_code=204)

        @self.app.put(f"{ROUTE_PREFIX}/{{freelancer_id}}/archive", status_code=204, dependencies=write_dependencies)
        async def archive_freelancer(freelancer_id: int):
            """Mark a freelancer archived."""
            await self.directory.archive(freelancer_id)
            return Response(status_code=204)

        @self.app.put(f"{ROUTE_PREFIX}/{{freelancer_id}}/unarchive", status_code=204, dependencies=write_dependencies)
        async def unarchive_freelancer(freelancer_id: int):
            """Clear a freelancer's archived flag."""
            await self.directory.unarchive(freelancer_id)
            return Response(status_code=204)

    async def startup(self) -> None:
        """Start directory service components."""
        if isinstance(self.repository, PostgresFreelancerRepository):
            await self.repository.start()

    async def shutdown(self) -> None:
        """Stop directory service components."""
        if isinstance(self.repository, PostgresFreelancerRepository):
            await self.repository.stop()
        await self.cache.close()

    async def _check_dependencies(self) -> dict:
        """Check directory service dependencies."""
        dependencies = {}

        dependencies["store"] = "ok" if await self.repository.check_health() else "error"

        try:
            dependencies["cache"] = "ok" if await self.cache.ping() else "error"
        except Exception as e:
            self.logger.warning("Cache health check failed", error=str(e))
            dependencies["cache"] = "error"

        return dependencies


def create_app(config: Optional[ServiceConfig] = None, **components):
    """Create directory service application."""
    service = DirectoryService(config, **components)
    return service.app


if __name__ == "__main__":
    service = DirectoryService()
    service.run()
