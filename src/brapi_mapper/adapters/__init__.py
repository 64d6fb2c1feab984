"""Record store adapters package.

Provides the ``RecordStore`` Protocol, the ``Record`` model, and concrete
async stores for memory and PostgreSQL.

Usage:
    from brapi_mapper.adapters import RecordStore, Record, InMemoryRecordStore
    from brapi_mapper.adapters import AsyncPostgresRecordStore
"""

from brapi_mapper.adapters.base import QueryResult, Record, RecordStore
from brapi_mapper.adapters.memory import InMemoryRecordStore
from brapi_mapper.adapters.postgres import AsyncPostgresRecordStore

__all__ = [
    "RecordStore",
    "Record",
    "QueryResult",
    "InMemoryRecordStore",
    "AsyncPostgresRecordStore",
]
