"""Job cache protocol definition.

The job cache is the only state shared across requests: deferred search
markers and results live there with a TTL.  There are no transactions;
callers rely on plain get/set/invalidate.

Usage:
    from brapi_mapper.cache.base import JobCache

    async def remember(cache: JobCache) -> None:
        await cache.set("brapi_search:abc", {"state": "pending"}, 3600, ["brapi_search"])
        entry = await cache.get("brapi_search:abc")
        await cache.invalidate_all(["brapi_search"])
"""

from typing import Any, Protocol


class JobCache(Protocol):
    """Key-value cache with per-entry TTL and tag invalidation.

    Values are JSON-compatible structures.
    """

    async def get(self, key: str) -> Any | None:
        """Return the value stored under *key*, or None if absent or expired."""
        ...

    async def set(
        self, key: str, value: Any, ttl_seconds: int, tags: list[str] | None = None
    ) -> None:
        """Store *value* for *ttl_seconds* seconds, tagged with *tags*."""
        ...

    async def invalidate_all(self, tags: list[str]) -> int:
        """Remove every entry carrying one of *tags*; return how many."""
        ...

    async def close(self) -> None:
        """Release connections."""
        ...
