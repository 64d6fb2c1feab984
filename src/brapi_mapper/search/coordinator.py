"""Deferred search lifecycle.

A deferred search is identified by a hash of the call, the normalized
filters, and the caller's roles, so resubmitting the same search returns
the same identifier.  Its state lives in the job cache:

- ``{"state": "pending", "expires_at": ...}`` while the search runs
- ``{"state": "done", "result": [...], "total_count": N, "completed_at": ...}``
- nothing once the entry expired (the identifier is then unknown)

The first submission writes the pending marker and queues the executor
on the ``DeferredTaskQueue``.  The presence of the cache entry is the only
concurrency guard; two simultaneous first submissions may both run the
executor, which is harmless because the result depends only on the
filters.

Usage:
    from brapi_mapper.search.coordinator import SearchJobCoordinator

    coordinator = SearchJobCoordinator(cache, queue, lifetime=86400)
    outcome = await coordinator.submit("/search/germplasm", body, roles, executor)
    await queue.drain()
    outcome = await coordinator.fetch(outcome.job_id, page=0, page_size=10)
"""

import hashlib
import json
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from brapi_mapper.cache.base import JobCache
from brapi_mapper.errors import NotFoundError, TooManyRequestsError
from brapi_mapper.search.queue import DeferredTaskQueue

logger = logging.getLogger(__name__)

SEARCH_TAG = "brapi_search"
KEY_PREFIX = "brapi_search:"

# Returns (all matching objects, total count)
SearchExecutor = Callable[[], Awaitable[tuple[list[dict[str, Any]], int]]]


class SearchStatus(str, Enum):
    ACCEPTED = "accepted"
    RUNNING = "running"
    DONE = "done"
    NOT_FOUND = "not_found"


class SearchOutcome(BaseModel):
    """What a client gets back for a submission or a poll."""

    status: SearchStatus
    job_id: str
    items: list[dict[str, Any]] = Field(default_factory=list)
    total_count: int = 0


def normalize_filters(value: Any) -> Any:
    """Drop None, empty strings, and empty containers, recursively.

    Dict keys are sorted; list order is kept.

    Example:
        >>> normalize_filters({"b": [], "a": {"x": "", "y": 1}})
        {'a': {'y': 1}}
    """
    if isinstance(value, dict):
        cleaned = {}
        for key in sorted(value, key=str):
            item = normalize_filters(value[key])
            if item is None or item == "" or item == [] or item == {}:
                continue
            cleaned[key] = item
        return cleaned
    if isinstance(value, list):
        items = [normalize_filters(v) for v in value]
        return [v for v in items if not (v is None or v == "" or v == [] or v == {})]
    return value


def derive_job_id(call: str, filters: Any, roles: list[str] | set[str]) -> str:
    """Return the stable search identifier for a call, filters, and roles."""
    payload = json.dumps(
        [call, normalize_filters(filters), sorted(set(roles))],
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:32]


class SearchJobCoordinator:
    """Submit, run, and poll deferred searches.

    Args:
        cache: Job cache holding markers and results.
        queue: Queue the executors are scheduled on.
        lifetime: Seconds a job (pending or done) stays available.
        max_concurrent: Jobs of this process allowed to be pending at once.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        cache: JobCache,
        queue: DeferredTaskQueue,
        lifetime: int = 86400,
        max_concurrent: int = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache
        self._queue = queue
        self._lifetime = lifetime
        self._max_concurrent = max_concurrent
        self._clock = clock
        self._active: set[str] = set()

    @staticmethod
    def cache_key(job_id: str) -> str:
        return KEY_PREFIX + job_id

    def accept(self, job_id: str) -> bool:
        """Admission decision for a new job."""
        return len(self._active) < self._max_concurrent

    async def submit_or_fetch(
        self,
        call: str,
        filters: Any,
        roles: list[str],
        executor: SearchExecutor,
        job_id: str | None = None,
        page: int = 0,
        page_size: int | None = None,
    ) -> SearchOutcome:
        """Poll *job_id* when given, else submit the search."""
        if job_id:
            return await self.fetch(job_id, page, page_size)
        return await self.submit(call, filters, roles, executor, page, page_size)

    async def submit(
        self,
        call: str,
        filters: Any,
        roles: list[str],
        executor: SearchExecutor,
        page: int = 0,
        page_size: int | None = None,
    ) -> SearchOutcome:
        """Submit a search; an existing job with the same identity is reused.

        Raises:
            TooManyRequestsError: If too many jobs are already pending.
        """
        job_id = derive_job_id(call, filters, roles)
        entry = await self._cache.get(self.cache_key(job_id))
        if entry is not None:
            logger.debug(f"Search {job_id} already known ({entry.get('state')})")
            return self._outcome(job_id, entry, page, page_size)

        if not self.accept(job_id):
            raise TooManyRequestsError("Too many searches in progress, retry later.")

        expires_at = self._clock() + self._lifetime
        await self._cache.set(
            self.cache_key(job_id),
            {"state": "pending", "expires_at": expires_at},
            self._lifetime,
            [SEARCH_TAG],
        )
        self._active.add(job_id)
        self._queue.enqueue(
            lambda: self._run(job_id, expires_at, executor), name=f"search {job_id}"
        )
        logger.info(f"Search {job_id} accepted for {call}")
        return SearchOutcome(status=SearchStatus.ACCEPTED, job_id=job_id)

    async def fetch(
        self, job_id: str, page: int = 0, page_size: int | None = None
    ) -> SearchOutcome:
        """Return the state of a job and, when done, the requested page."""
        entry = await self._cache.get(self.cache_key(job_id))
        if entry is None:
            return SearchOutcome(status=SearchStatus.NOT_FOUND, job_id=job_id)
        return self._outcome(job_id, entry, page, page_size)

    def _outcome(
        self, job_id: str, entry: Any, page: int, page_size: int | None
    ) -> SearchOutcome:
        if not isinstance(entry, dict):
            logger.error(f"Corrupted search data for {job_id}")
            return SearchOutcome(status=SearchStatus.NOT_FOUND, job_id=job_id)
        if entry.get("state") == "pending":
            return SearchOutcome(status=SearchStatus.RUNNING, job_id=job_id)

        items = entry.get("result") or []
        if page_size:
            items = items[page * page_size:(page + 1) * page_size]
        return SearchOutcome(
            status=SearchStatus.DONE,
            job_id=job_id,
            items=items,
            total_count=int(entry.get("total_count", 0)),
        )

    async def _run(self, job_id: str, expires_at: float, executor: SearchExecutor) -> None:
        """Execute a search and store its result; failures store an empty result."""
        try:
            items, total_count = await executor()
        except NotFoundError as e:
            logger.info(f"Search {job_id} found nothing: {e}")
            items, total_count = [], 0
        except Exception:
            logger.exception(f"Search {job_id} failed")
            items, total_count = [], 0
        finally:
            self._active.discard(job_id)

        remaining = int(expires_at - self._clock())
        if remaining <= 0:
            logger.info(f"Search {job_id} completed after its expiry, result dropped")
            return
        await self._cache.set(
            self.cache_key(job_id),
            {
                "state": "done",
                "result": items,
                "total_count": total_count,
                "completed_at": self._clock(),
            },
            remaining,
            [SEARCH_TAG],
        )

    async def clear(self) -> int:
        """Forget every search job; return how many entries were removed."""
        return await self._cache.invalidate_all([SEARCH_TAG])
