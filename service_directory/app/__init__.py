"""
Directory Service package for the Freelancer Directory.

This package serves freelancer profiles with read-through caching. It
provides:

- app.main: API surface for profile CRUD, archive flags, search and health.
- app.directory: Cached directory core (lookups, searches, invalidation).
- app.cache: In-process and Redis caches with absolute expiration.
- app.persistence: Repository contract, PostgreSQL and in-memory stores.
- app.auth: Bearer token gate for protected routes.

Guidelines:
- Persist first, then invalidate; never the other way around.
- Cache failures degrade to store reads, they never fail a request.
- Search pages are cached for their TTL and are not invalidated by writes.
"""
