"""Mapping validation using set operations.

Compares the fields a datatype mapping provides against the fields the
BrAPI definition declares for that datatype.  Pure logic -- no I/O.

Usage:
    from brapi_mapper.schema.comparator import validate_mapping

    result = validate_mapping(mapping, definition, registry)
    if not result.valid:
        print(result.format_report())
"""

from brapi_mapper.mapping.models import DatatypeMapping, SubMappingRule
from brapi_mapper.mapping.registry import MappingRegistry
from brapi_mapper.schema.models import BrapiDefinition, FieldIssue, MappingValidationResult


def validate_mapping(
    mapping: DatatypeMapping,
    definition: BrapiDefinition,
    registry: MappingRegistry | None = None,
) -> MappingValidationResult:
    """Validate one mapping against its BrAPI datatype definition.

    Performs set operations to find:
    - Missing required fields: required in the definition, no rule
    - Unknown fields: rules for fields the definition does not declare
      (skipped when the datatype has no declared schema)
    - Dangling targets: sub-mapping rules whose target mapping is not
      registered (only checked when *registry* is given)
    - Unmapped optional fields (warning only -- does not affect ``valid``)

    Args:
        mapping: Mapping to check.
        definition: BrAPI definition for the mapping's version and release.
        registry: Optional registry used to resolve sub-mapping targets.

    Returns:
        ``MappingValidationResult`` for the mapping.

    Examples:
        >>> result = validate_mapping(mapping, definition)
        >>> result.missing_required
        ['germplasmDbId']
    """
    mapping_id = mapping.mapping_id
    schema = definition.datatype_fields(mapping_id.datatype, mapping_id.subfields)

    declared: set[str] = set(schema.keys())
    required: set[str] = {name for name, field_def in schema.items() if field_def.required}
    mapped: set[str] = set(mapping.field_rules.keys())

    missing_required: list[str] = sorted(required - mapped)
    unknown_fields: list[str] = sorted(mapped - declared) if declared else []
    unmapped_optional: list[str] = sorted(declared - required - mapped)

    dangling_targets: list[FieldIssue] = []
    if registry is not None:
        for name in sorted(mapped):
            rule = mapping.field_rules[name]
            if not isinstance(rule, SubMappingRule):
                continue
            target = mapping.submapping_target(name, rule)
            if target not in registry:
                dangling_targets.append(
                    FieldIssue(field=name, message=f"Target mapping '{target}' not found")
                )

    is_valid: bool = not missing_required and not unknown_fields and not dangling_targets

    return MappingValidationResult(
        mapping_id=mapping.id,
        valid=is_valid,
        missing_required=missing_required,
        unknown_fields=unknown_fields,
        dangling_targets=dangling_targets,
        unmapped_optional=unmapped_optional,
    )
