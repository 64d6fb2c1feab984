"""BrAPI definitions and mapping validation.

Provides the versioned BrAPI definition models (``BrapiDefinition``,
``DefinitionTable``) and mapping validation (``validate_mapping``).

Usage:
    from brapi_mapper.schema import BrapiDefinition, DefinitionTable
    from brapi_mapper.schema import validate_mapping, MappingValidationResult
"""

from brapi_mapper.schema.comparator import validate_mapping
from brapi_mapper.schema.models import (
    BrapiDefinition,
    CallDefinition,
    DatatypeDefinition,
    DefinitionTable,
    FieldDefinition,
    FieldIssue,
    MappingValidationResult,
    MethodDefinition,
    ParameterDefinition,
)

__all__ = [
    "validate_mapping",
    "BrapiDefinition",
    "CallDefinition",
    "DatatypeDefinition",
    "DefinitionTable",
    "FieldDefinition",
    "FieldIssue",
    "MappingValidationResult",
    "MethodDefinition",
    "ParameterDefinition",
]
