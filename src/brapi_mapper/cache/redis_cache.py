"""Redis job cache.

Provides ``RedisJobCache``, an async implementation of the ``JobCache``
protocol using ``redis.asyncio``.  Values are stored as JSON strings with
a native Redis TTL; each tag is a Redis set of the keys carrying it,
expiring with the longest-lived of those keys.

The client is created lazily on first use with an ``asyncio.Lock`` so it
is created exactly once.

Usage:
    from brapi_mapper.cache.redis_cache import RedisJobCache

    cache = RedisJobCache("redis://localhost:6379/0", namespace="brapi")
    await cache.set("brapi_search:abc", {"state": "pending"}, 3600, ["brapi_search"])
    await cache.close()
"""

import asyncio
import json
import logging
from typing import Any

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisJobCache:
    """Redis implementation of the ``JobCache`` protocol.

    Args:
        url: Redis connection URL.
        namespace: Prefix for every key written by this cache.
    """

    def __init__(self, url: str, namespace: str = "brapi") -> None:
        self._url: str = url
        self._namespace: str = namespace
        self._client: redis.Redis | None = None
        self._lock: asyncio.Lock = asyncio.Lock()

    async def _get_client(self) -> redis.Redis:
        """Get or create the Redis client."""
        if self._client is None:
            async with self._lock:
                # Double-check after acquiring lock
                if self._client is None:
                    self._client = redis.from_url(
                        self._url,
                        encoding="utf-8",
                        decode_responses=True,
                    )
                    logger.info(f"Connected to Redis job cache ({self._namespace})")
        return self._client

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def _tag_key(self, tag: str) -> str:
        return f"{self._namespace}:tag:{tag}"

    async def get(self, key: str) -> Any | None:
        client = await self._get_client()
        raw = await client.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def set(
        self, key: str, value: Any, ttl_seconds: int, tags: list[str] | None = None
    ) -> None:
        """Store *value* and list its key under *tags*.

        A tag set expires no earlier than its longest-lived key, so tags of
        expired jobs do not accumulate (``EXPIRE`` NX/GT needs Redis 7).
        """
        client = await self._get_client()
        full_key = self._key(key)
        ttl = max(1, int(ttl_seconds))
        async with client.pipeline(transaction=False) as pipe:
            pipe.set(full_key, json.dumps(value), ex=ttl)
            for tag in tags or []:
                tag_key = self._tag_key(tag)
                pipe.sadd(tag_key, full_key)
                pipe.expire(tag_key, ttl, nx=True)
                pipe.expire(tag_key, ttl, gt=True)
            await pipe.execute()

    async def invalidate_all(self, tags: list[str]) -> int:
        client = await self._get_client()
        removed = 0
        for tag in tags:
            tag_key = self._tag_key(tag)
            members = await client.smembers(tag_key)
            if members:
                removed += await client.delete(*members)
            await client.delete(tag_key)
        return removed

    async def close(self) -> None:
        """Close the Redis client; a no-op if it was never created."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
