"""In-process job cache."""

import copy
import time
from collections.abc import Callable
from typing import Any


class InMemoryJobCache:
    """Dict-backed implementation of the ``JobCache`` protocol.

    Entries expire lazily on read.  Values are deep-copied on the way in
    and out, so cached results behave like serialized data.

    Args:
        clock: Returns the current time in seconds (default ``time.time``).

    Example:
        cache = InMemoryJobCache(clock=lambda: now)
        await cache.set("k", {"state": "pending"}, ttl_seconds=60)
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[Any, float, frozenset[str]]] = {}

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at, _tags = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return copy.deepcopy(value)

    async def set(
        self, key: str, value: Any, ttl_seconds: int, tags: list[str] | None = None
    ) -> None:
        expires_at = self._clock() + ttl_seconds
        self._entries[key] = (copy.deepcopy(value), expires_at, frozenset(tags or []))

    async def invalidate_all(self, tags: list[str]) -> int:
        wanted = set(tags)
        doomed = [key for key, (_v, _e, entry_tags) in self._entries.items() if entry_tags & wanted]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    async def close(self) -> None:
        self._entries.clear()
