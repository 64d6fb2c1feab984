"""Job cache package.

Provides the ``JobCache`` Protocol and ``InMemoryJobCache``.
``RedisJobCache`` is only available when the ``redis`` extra is installed.

Usage:
    from brapi_mapper.cache import JobCache, InMemoryJobCache

    # With redis extra installed:
    from brapi_mapper.cache import RedisJobCache
"""

from brapi_mapper.cache.base import JobCache
from brapi_mapper.cache.memory import InMemoryJobCache

__all__ = [
    "JobCache",
    "InMemoryJobCache",
]

try:
    from brapi_mapper.cache.redis_cache import RedisJobCache

    __all__.append("RedisJobCache")
except ImportError:
    # redis extra not installed -- RedisJobCache unavailable
    pass
