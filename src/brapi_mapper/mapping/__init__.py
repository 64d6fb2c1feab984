"""Datatype mappings: models, identifiers, inflection, and custom values.

Usage:
    from brapi_mapper.mapping import DatatypeMapping, MappingId, MappingRegistry
    from brapi_mapper.mapping import CustomValueResolver, plural, singular
"""

from brapi_mapper.mapping.custom import CustomValueResolver
from brapi_mapper.mapping.inflector import name_variants, plural, singular
from brapi_mapper.mapping.models import (
    CustomRule,
    DatatypeMapping,
    DirectRule,
    FieldRule,
    MappingId,
    StaticRule,
    SubMappingRule,
)
from brapi_mapper.mapping.registry import MappingRegistry

__all__ = [
    "CustomValueResolver",
    "plural",
    "singular",
    "name_variants",
    "DatatypeMapping",
    "MappingId",
    "FieldRule",
    "DirectRule",
    "StaticRule",
    "CustomRule",
    "SubMappingRule",
    "MappingRegistry",
]
