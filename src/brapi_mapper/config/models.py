"""Pydantic models for BrAPI server configuration."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from brapi_mapper.errors import NotFoundError

DEFAULT_PAGE_SIZE = 10
DEFAULT_PAGE_SIZE_MAX = 1000
DEFAULT_SEARCH_LIFETIME = 86400


class Method(str, Enum):
    """HTTP methods a BrAPI call can be enabled for."""

    GET = "get"
    POST = "post"
    PUT = "put"
    DELETE = "delete"


# ============================================================================
# Configuration Models
# ============================================================================


class ServerInfo(BaseModel):
    """Server description returned by v2 /serverinfo."""

    contact_email: str = ""
    documentation_url: str = ""
    location: str = ""
    organization_name: str = ""
    organization_url: str = ""
    server_name: str = ""
    server_description: str = ""


class CallSetting(BaseModel):
    """Settings of one enabled call path.

    ``roles`` restricts a method to callers holding one of the listed
    roles; a method without an entry falls back to the read/write default.
    ``filtering = "brapi"`` post-filters every filter of the call instead
    of pushing it to the store.
    """

    methods: set[Method]
    roles: dict[Method, set[str]] = Field(default_factory=dict)
    deferred: bool = False
    filtering: Literal["store", "brapi"] = "store"

    @model_validator(mode="after")
    def _check_roles(self) -> "CallSetting":
        extra = set(self.roles) - self.methods
        if extra:
            names = ", ".join(sorted(m.value for m in extra))
            raise ValueError(f"Roles configured for disabled methods: {names}")
        return self


class StoreProfile(BaseModel):
    """Backend record store connection."""

    provider: Literal["memory", "postgres"] = "memory"
    url: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    fixtures: str | None = None  # JSON fixtures for the memory store
    references: dict[str, dict[str, str]] = Field(default_factory=dict)  # kind -> field -> target kind
    id_column: str = "id"


class CacheProfile(BaseModel):
    """Search job cache connection."""

    provider: Literal["memory", "redis"] = "memory"
    url: str = ""
    namespace: str = "brapi"


class BrapiSettings(BaseModel):
    """Complete BrAPI configuration from brapi.toml."""

    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    page_size_max: int = Field(default=DEFAULT_PAGE_SIZE_MAX, ge=1)
    search_default_lifetime: int = Field(default=DEFAULT_SEARCH_LIFETIME, ge=1)
    max_concurrent_searches: int = Field(default=10, ge=1)
    insecure: bool = False
    releases: dict[str, str] = Field(default_factory=lambda: {"v2": "2.1"})
    server: ServerInfo = Field(default_factory=ServerInfo)
    calls: dict[str, dict[str, CallSetting]] = Field(default_factory=dict)
    store: StoreProfile = Field(default_factory=StoreProfile)
    cache: CacheProfile = Field(default_factory=CacheProfile)
    definitions: list[str] = Field(default_factory=list)
    mappings: str | None = None
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_calls(self) -> "BrapiSettings":
        for version, calls in self.calls.items():
            for call, setting in calls.items():
                if not call.startswith("/"):
                    raise ValueError(f"Call path must start with '/': {version} {call}")
                if setting.deferred and not call.startswith("/search/"):
                    raise ValueError(f"Only search calls can be deferred: {version} {call}")
        return self

    def release_for(self, version: str) -> str:
        """Return the active release of a major version.

        Raises:
            NotFoundError: If the version is not enabled.
        """
        release = self.releases.get(version)
        if not release:
            raise NotFoundError(f"BrAPI version '{version}' is not enabled.")
        return release

    def call_setting(self, version: str, call: str) -> CallSetting | None:
        return self.calls.get(version, {}).get(call)
