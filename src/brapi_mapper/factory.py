"""Service factory.

Builds a ``BrapiService`` and its collaborators (record store, job cache,
definitions, mappings) from brapi.toml.

Config file lookup:
1. Explicit path argument
2. ``{env_prefix}BRAPI_CONFIG`` environment variable
3. ``brapi.toml`` in the current directory
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from brapi_mapper.adapters.base import RecordStore
from brapi_mapper.adapters.memory import InMemoryRecordStore
from brapi_mapper.adapters.postgres import AsyncPostgresRecordStore
from brapi_mapper.cache.base import JobCache
from brapi_mapper.cache.memory import InMemoryJobCache
from brapi_mapper.config.loader import load_brapi_config, load_definitions, load_mappings
from brapi_mapper.config.models import BrapiSettings, CacheProfile, StoreProfile
from brapi_mapper.mapping.registry import MappingRegistry
from brapi_mapper.schema.models import DefinitionTable
from brapi_mapper.service import BrapiService, CredentialService, LoginThrottle

logger = logging.getLogger(__name__)


class ConfigNotFoundError(Exception):
    """Raised when no brapi.toml can be located."""

    pass


# ============================================================================
# Config Resolution
# ============================================================================


def resolve_config_path(config_path: str | Path | None = None, env_prefix: str = "") -> Path:
    """Locate the configuration file.

    Args:
        config_path: Explicit path (highest priority).
        env_prefix: Prefix for the environment variable lookup
            (``env_prefix="APP_"`` reads ``APP_BRAPI_CONFIG``).

    Returns:
        Path of an existing config file.

    Raises:
        ConfigNotFoundError: If no config file exists.
    """
    if config_path:
        candidate = Path(config_path)
    else:
        env_path = os.environ.get(f"{env_prefix}BRAPI_CONFIG")
        candidate = Path(env_path) if env_path else Path.cwd() / "brapi.toml"

    if not candidate.exists():
        raise ConfigNotFoundError(
            f"BrAPI config not found: {candidate}\n"
            f"Pass --config, set {env_prefix}BRAPI_CONFIG, or create ./brapi.toml"
        )
    return candidate


def resolve_url(profile: StoreProfile | CacheProfile) -> str:
    """Resolve a profile URL with password substitution.

    Example:
        >>> resolve_url(StoreProfile(provider="postgres",
        ...     url="postgresql://u:[YOUR-PASSWORD]@db/brapi", db_password="p@ss"))
        'postgresql://u:p%40ss@db/brapi'
    """
    url = profile.url
    password = getattr(profile, "db_password", None)
    if password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(password, safe=""))
    return url


# ============================================================================
# Collaborator Factories
# ============================================================================


def get_record_store(profile: StoreProfile) -> RecordStore:
    """Create the record store described by *profile*.

    Raises:
        ValueError: If a postgres store has no URL.
    """
    if profile.provider == "postgres":
        if not profile.url:
            raise ValueError("Store provider 'postgres' requires a url.")
        return AsyncPostgresRecordStore(
            database_url=resolve_url(profile),
            references=profile.references,
            id_column=profile.id_column,
        )
    if profile.fixtures:
        return InMemoryRecordStore.from_fixtures(profile.fixtures, profile.references)
    return InMemoryRecordStore(references=profile.references)


def get_job_cache(profile: CacheProfile) -> JobCache:
    """Create the job cache described by *profile*.

    Raises:
        ValueError: If a redis cache has no URL.
        ImportError: If the ``redis`` extra is not installed.
    """
    if profile.provider == "redis":
        if not profile.url:
            raise ValueError("Cache provider 'redis' requires a url.")
        from brapi_mapper.cache.redis_cache import RedisJobCache

        return RedisJobCache(resolve_url(profile), namespace=profile.namespace)
    return InMemoryJobCache()


def build_service(
    config_path: str | Path | None = None,
    env_prefix: str = "",
    settings: BrapiSettings | None = None,
    credentials: CredentialService | None = None,
    throttle: LoginThrottle | None = None,
) -> BrapiService:
    """Build a ready-to-use service from configuration.

    Args:
        config_path: Path to brapi.toml (see ``resolve_config_path``).
        env_prefix: Environment variable prefix.
        settings: Already loaded settings (skips the config file).
        credentials: Authentication backend for v1 login.
        throttle: Failed-login flood control.

    Returns:
        BrapiService wired with store, cache, definitions and mappings.

    Example:
        >>> service = build_service("brapi.toml")
        >>> response = await service.handle(service.route("/brapi/v2/germplasm"))
    """
    if settings is None:
        settings = load_brapi_config(resolve_config_path(config_path, env_prefix))

    definitions = DefinitionTable(load_definitions(settings.definitions))
    registry = MappingRegistry(load_mappings(settings.mappings))
    logger.info(
        f"Loaded {len(definitions)} BrAPI definitions and {len(registry)} mappings "
        f"(store: {settings.store.provider}, cache: {settings.cache.provider})"
    )

    return BrapiService(
        settings,
        definitions,
        registry,
        get_record_store(settings.store),
        get_job_cache(settings.cache),
        credentials=credentials,
        throttle=throttle,
    )
