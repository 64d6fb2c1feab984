"""brapi-mapper: BrAPI object mapping and query translation engine.

Maps BrAPI datatypes onto backend records through declarative mappings,
translates BrAPI filters into store queries, runs deferred searches, and
wraps every answer in the BrAPI envelope.

Usage:
    from brapi_mapper import BrapiService, BrapiRequest, build_service
    from brapi_mapper import DatatypeMapping, MappingRegistry, ObjectProjector
    from brapi_mapper import RecordStore, InMemoryRecordStore, AsyncPostgresRecordStore
    from brapi_mapper import load_brapi_config, BrapiSettings, CallSetting
"""

__version__ = "0.1.0"

# Adapters
from brapi_mapper.adapters.base import Record, RecordStore
from brapi_mapper.adapters.memory import InMemoryRecordStore
from brapi_mapper.adapters.postgres import AsyncPostgresRecordStore

# Cache
from brapi_mapper.cache.base import JobCache
from brapi_mapper.cache.memory import InMemoryJobCache

# Config
from brapi_mapper.config.loader import load_brapi_config, load_definitions, load_mappings
from brapi_mapper.config.models import BrapiSettings, CallSetting, Method

# Errors
from brapi_mapper.errors import BrapiError, NotFoundError

# Factory
from brapi_mapper.factory import ConfigNotFoundError, build_service, resolve_url

# Mapping
from brapi_mapper.mapping.custom import CustomValueResolver
from brapi_mapper.mapping.models import DatatypeMapping, MappingId
from brapi_mapper.mapping.registry import MappingRegistry

# Engine
from brapi_mapper.projection.projector import ObjectProjector
from brapi_mapper.query.translator import QueryTranslator
from brapi_mapper.schema.comparator import validate_mapping
from brapi_mapper.schema.models import BrapiDefinition, DefinitionTable
from brapi_mapper.search.coordinator import SearchJobCoordinator
from brapi_mapper.service import BrapiRequest, BrapiResponse, BrapiService, call_signature

__all__ = [
    # Adapters
    "Record",
    "RecordStore",
    "InMemoryRecordStore",
    "AsyncPostgresRecordStore",
    # Cache
    "JobCache",
    "InMemoryJobCache",
    # Config
    "load_brapi_config",
    "load_definitions",
    "load_mappings",
    "BrapiSettings",
    "CallSetting",
    "Method",
    # Errors
    "BrapiError",
    "NotFoundError",
    # Factory
    "ConfigNotFoundError",
    "build_service",
    "resolve_url",
    # Mapping
    "CustomValueResolver",
    "DatatypeMapping",
    "MappingId",
    "MappingRegistry",
    # Engine
    "ObjectProjector",
    "QueryTranslator",
    "validate_mapping",
    "BrapiDefinition",
    "DefinitionTable",
    "SearchJobCoordinator",
    "BrapiRequest",
    "BrapiResponse",
    "BrapiService",
    "call_signature",
]

# Optional: RedisJobCache (only available with redis extra)
try:
    from brapi_mapper.cache.redis_cache import RedisJobCache

    __all__.append("RedisJobCache")
except ImportError:
    # redis extra not installed -- RedisJobCache unavailable
    pass
