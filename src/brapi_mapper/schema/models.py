"""Pydantic models for versioned BrAPI definitions and mapping validation.

This module contains schema-domain models:
- Definition models: FieldDefinition, DatatypeDefinition,
  ParameterDefinition, MethodDefinition, CallDefinition, BrapiDefinition
- Lookup table: DefinitionTable
- Validation models: FieldIssue, MappingValidationResult

Settings models (BrapiSettings, CallSetting, ...) live in
brapi_mapper.config.models.
"""

from pydantic import BaseModel, ConfigDict, Field

from brapi_mapper.errors import NotFoundError

# Field types every BrAPI definition understands without a datatype entry
BASE_TYPES: frozenset[str] = frozenset({"string", "integer", "number", "boolean", "object"})


# ============================================================================
# Definition Models
# ============================================================================


class FieldDefinition(BaseModel):
    """One field of a BrAPI datatype.

    ``type`` is a base type or a datatype name, with a ``[]`` suffix for
    arrays (``"string[]"``, ``"ExternalReference[]"``).

    Example:
        >>> FieldDefinition(type="string[]").is_array
        True
    """

    type: str = "string"
    required: bool = False
    description: str = ""

    @property
    def is_array(self) -> bool:
        return self.type.endswith("[]")

    @property
    def base_type(self) -> str:
        return self.type[:-2] if self.is_array else self.type


class DatatypeDefinition(BaseModel):
    """Field schema of one BrAPI datatype."""

    fields: dict[str, FieldDefinition] = Field(default_factory=dict)


class ParameterDefinition(BaseModel):
    """A declared call parameter (``in`` is query, path, header or body)."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    location: str = Field(default="query", alias="in")
    required: bool = False


class MethodDefinition(BaseModel):
    """Declared parameters of a call for one HTTP method."""

    parameters: list[ParameterDefinition] = Field(default_factory=list)


class CallDefinition(BaseModel):
    """A call path declared by the BrAPI definition."""

    data_types: list[str] = Field(default_factory=list)
    definition: dict[str, MethodDefinition] = Field(default_factory=dict)

    def query_parameters(self, method: str) -> list[str]:
        """Names of ``in: query`` parameters, excluding output controls."""
        method_def = self.definition.get(method.lower())
        if method_def is None:
            return []
        return [
            p.name
            for p in method_def.parameters
            if p.location == "query" and p.name not in ("page", "pageSize", "Authorization")
        ]


class BrapiDefinition(BaseModel):
    """Read-only BrAPI definition for one (major version, release)."""

    version: str
    release: str
    data_types: dict[str, DatatypeDefinition] = Field(default_factory=dict)
    calls: dict[str, CallDefinition] = Field(default_factory=dict)

    def get_call(self, call: str) -> CallDefinition:
        """Return the definition of *call*.

        Raises:
            NotFoundError: If the call is not part of this release.
        """
        call_def = self.calls.get(call)
        if call_def is None:
            raise NotFoundError(
                f"No available definition for call '{call}' ({self.version}, {self.release})."
            )
        return call_def

    def call_datatype(self, call: str) -> str | None:
        """Return the datatype of a single-datatype call, else None."""
        data_types = self.get_call(call).data_types
        return data_types[0] if len(data_types) == 1 else None

    def datatype_fields(
        self, datatype: str, subfields: tuple[str, ...] = ()
    ) -> dict[str, FieldDefinition]:
        """Return the field schema of *datatype* or of one of its sub-objects.

        A sub-object is looked up first as an explicit
        ``Datatype-subfield`` entry, then through the subfield's declared
        type.  Unknown or untyped sub-objects have an empty schema.
        """
        explicit = "-".join([datatype, *subfields])
        if explicit in self.data_types:
            return self.data_types[explicit].fields
        current = self.data_types.get(datatype)
        for subfield in subfields:
            if current is None or subfield not in current.fields:
                return {}
            current = self.data_types.get(current.fields[subfield].base_type)
        return current.fields if current is not None else {}


class DefinitionTable:
    """Definitions indexed by ``(version, release)``."""

    def __init__(self, definitions: list[BrapiDefinition] | None = None) -> None:
        self._definitions: dict[tuple[str, str], BrapiDefinition] = {}
        for definition in definitions or []:
            self._definitions[(definition.version, definition.release)] = definition

    def __len__(self) -> int:
        return len(self._definitions)

    def all(self) -> list[BrapiDefinition]:
        return [self._definitions[key] for key in sorted(self._definitions)]

    def get(self, version: str, release: str) -> BrapiDefinition:
        """Return a definition.

        Raises:
            NotFoundError: If the version/release is not loaded.
        """
        definition = self._definitions.get((version, release))
        if definition is None:
            raise NotFoundError(f"No BrAPI definition loaded for {version} release {release}.")
        return definition


# ============================================================================
# Validation Result Models
# ============================================================================


class FieldIssue(BaseModel):
    """A field-level problem detected during mapping validation."""

    field: str
    message: str = ""


class MappingValidationResult(BaseModel):
    """Result of comparing a mapping with its BrAPI datatype definition.

    Example:
        >>> result = MappingValidationResult(mapping_id="v2-2.1-Germplasm", valid=True)
        >>> result.error_count
        0
        >>> result.format_report()
        'Mapping v2-2.1-Germplasm valid'
    """

    mapping_id: str
    valid: bool
    missing_required: list[str] = Field(default_factory=list)
    unknown_fields: list[str] = Field(default_factory=list)
    dangling_targets: list[FieldIssue] = Field(default_factory=list)
    unmapped_optional: list[str] = Field(default_factory=list)  # Warning only

    @property
    def error_count(self) -> int:
        """Count of critical errors."""
        return len(self.missing_required) + len(self.unknown_fields) + len(self.dangling_targets)

    def format_report(self) -> str:
        """Format validation result as human-readable report."""
        if self.valid:
            report = f"Mapping {self.mapping_id} valid"
            if self.unmapped_optional:
                report += f"\n  Unmapped optional fields (warning): {', '.join(self.unmapped_optional)}"
            return report

        lines = [f"Mapping {self.mapping_id} validation failed:"]

        if self.missing_required:
            lines.append(f"\n  Missing required fields ({len(self.missing_required)}):")
            for name in self.missing_required:
                lines.append(f"    - {name}")

        if self.unknown_fields:
            lines.append(f"\n  Unknown fields ({len(self.unknown_fields)}):")
            for name in self.unknown_fields:
                lines.append(f"    - {name}")

        if self.dangling_targets:
            lines.append(f"\n  Dangling sub-mapping targets ({len(self.dangling_targets)}):")
            for issue in self.dangling_targets:
                lines.append(f"    - {issue.field}: {issue.message}")

        if self.unmapped_optional:
            lines.append(
                f"\n  Unmapped optional fields (warning): {', '.join(self.unmapped_optional)}"
            )

        return "\n".join(lines)
