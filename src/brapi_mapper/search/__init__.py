"""Deferred search: job coordination and the end-of-request task queue."""

from brapi_mapper.search.coordinator import (
    SearchJobCoordinator,
    SearchOutcome,
    SearchStatus,
    derive_job_id,
    normalize_filters,
)
from brapi_mapper.search.queue import DeferredTaskQueue

__all__ = [
    "SearchJobCoordinator",
    "SearchOutcome",
    "SearchStatus",
    "derive_job_id",
    "normalize_filters",
    "DeferredTaskQueue",
]
