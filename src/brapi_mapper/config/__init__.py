"""Configuration management: TOML loading, definitions, mappings, and models.

Usage:
    >>> from brapi_mapper.config import load_brapi_config, BrapiSettings, CallSetting
"""

from brapi_mapper.config.loader import load_brapi_config, load_definitions, load_mappings
from brapi_mapper.config.models import (
    BrapiSettings,
    CacheProfile,
    CallSetting,
    Method,
    ServerInfo,
    StoreProfile,
)

__all__ = [
    "load_brapi_config",
    "load_definitions",
    "load_mappings",
    "BrapiSettings",
    "CacheProfile",
    "CallSetting",
    "Method",
    "ServerInfo",
    "StoreProfile",
]
