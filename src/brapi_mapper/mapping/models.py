"""Pydantic models for datatype mappings.

A ``DatatypeMapping`` ties one BrAPI datatype (for one version and release)
to one backend record kind.  Each BrAPI field is described by a
``FieldRule``, a tagged union discriminated on ``rule``:

- ``direct``      -- one backend field (scalar or reference)
- ``static``      -- constant value
- ``custom``      -- expression with embedded JSONPath tokens
- ``submapping``  -- related records projected through another mapping

Mapping files are JSON lists of mappings, for example::

    [{
        "id": "v2-2.1-Germplasm",
        "content_target": "germplasm:accession",
        "field_rules": {
            "germplasmDbId": {"rule": "direct", "field": "id"},
            "germplasmName": {"rule": "direct", "field": "name"},
            "commonCropName": {"rule": "static", "value": "rice"},
            "synonyms": {"rule": "submapping", "is_custom_submapping": true}
        }
    }]
"""

import re
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MAPPING_ID_PATTERN = re.compile(r"^(v\d)-(\d+(?:\.\d+)*)-([A-Za-z]\w*)((?:-\w+)*)$")

# Source value selecting identifiers computed by a custom expression
CUSTOM_SOURCE = "_custom"


def lower_first(name: str) -> str:
    """Lower-case the first character (``Germplasm`` -> ``germplasm``)."""
    return name[:1].lower() + name[1:]


# ============================================================================
# Mapping identifiers
# ============================================================================


class MappingId(BaseModel):
    """Parsed mapping identifier ``<version>-<release>-<Datatype>(-<subfield>)*``.

    Example:
        >>> mid = MappingId.parse("v2-2.1-Germplasm-synonyms")
        >>> mid.datatype, mid.subfields
        ('Germplasm', ('synonyms',))
        >>> str(mid.parent())
        'v2-2.1-Germplasm'
    """

    model_config = ConfigDict(frozen=True)

    version: str
    release: str
    datatype: str
    subfields: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> "MappingId":
        """Parse *text* into a ``MappingId``.

        Raises:
            ValueError: If *text* does not follow the identifier grammar.
        """
        match = MAPPING_ID_PATTERN.match(text or "")
        if not match:
            raise ValueError(f"Invalid datatype mapping identifier: {text!r}")
        subfields = tuple(part for part in match.group(4).split("-") if part)
        return cls(
            version=match.group(1),
            release=match.group(2),
            datatype=match.group(3),
            subfields=subfields,
        )

    @classmethod
    def generate(cls, version: str, release: str, datatype: str, *subfields: str) -> str:
        """Build an identifier string, validating it against the grammar."""
        text = "-".join([version, release, datatype, *subfields])
        return str(cls.parse(text))

    def parent(self) -> "MappingId | None":
        """Return the owning mapping identifier, or None for a top-level one."""
        if not self.subfields:
            return None
        return self.model_copy(update={"subfields": self.subfields[:-1]})

    def child(self, field_name: str) -> "MappingId":
        """Return the sub-mapping identifier for *field_name*."""
        return self.model_copy(update={"subfields": self.subfields + (field_name,)})

    @property
    def is_submapping(self) -> bool:
        return bool(self.subfields)

    def __str__(self) -> str:
        return "-".join([self.version, self.release, self.datatype, *self.subfields])


# ============================================================================
# Field rules
# ============================================================================


class _RuleBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hidden: bool = False
    cardinality: Literal["scalar", "array"] | None = None  # Overrides the schema type


class DirectRule(_RuleBase):
    """Read one backend field; reference fields yield referenced records."""

    rule: Literal["direct"] = "direct"
    field: str


class StaticRule(_RuleBase):
    """Constant value."""

    rule: Literal["static"] = "static"
    value: Any = None


class CustomRule(_RuleBase):
    """Expression over the record's plain data (see ``CustomValueResolver``)."""

    rule: Literal["custom"] = "custom"
    expression: str
    is_json: bool = False


class SubMappingRule(_RuleBase):
    """Related records projected through another mapping.

    ``source`` selects the records: ``None`` is the current record itself,
    ``"_custom"`` takes identifiers computed by ``expression``, anything
    else names a reference field of the current record.  The target is
    ``target`` or, for custom sub-mappings, ``<current mapping>-<field>``.
    """

    rule: Literal["submapping"] = "submapping"
    source: str | None = None
    expression: str | None = None
    target: str | None = None
    is_custom_submapping: bool = False

    @model_validator(mode="after")
    def _check_source_and_target(self) -> "SubMappingRule":
        if self.source == CUSTOM_SOURCE and not self.expression:
            raise ValueError("A '_custom' sub-mapping source needs an expression")
        if not self.is_custom_submapping and not self.target:
            raise ValueError("A sub-mapping needs a target unless it is a custom sub-mapping")
        if self.target:
            MappingId.parse(self.target)
        return self


FieldRule = Annotated[
    Union[DirectRule, StaticRule, CustomRule, SubMappingRule],
    Field(discriminator="rule"),
]


# ============================================================================
# Datatype mapping
# ============================================================================


class DatatypeMapping(BaseModel):
    """Mapping of one BrAPI datatype onto one backend record kind."""

    id: str
    label: str = ""
    content_target: str
    field_rules: dict[str, FieldRule] = Field(default_factory=dict)
    identifier_field: str | None = None

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        return str(MappingId.parse(value))

    @field_validator("content_target")
    @classmethod
    def _check_content_target(cls, value: str) -> str:
        kind = value.split(":", 1)[0]
        if not kind:
            raise ValueError(f"Invalid content target: {value!r}")
        return value

    @property
    def mapping_id(self) -> MappingId:
        return MappingId.parse(self.id)

    @property
    def datatype(self) -> str:
        return self.mapping_id.datatype

    @property
    def record_kind(self) -> str:
        """Backend record kind (part of ``content_target`` before ``:``)."""
        return self.content_target.split(":", 1)[0]

    @property
    def bundle(self) -> str | None:
        """Backend bundle/subtype (part after ``:``), if any."""
        parts = self.content_target.split(":", 1)
        return parts[1] if len(parts) == 2 and parts[1] else None

    @property
    def brapi_identifier(self) -> str:
        """BrAPI field holding the object identifier (``germplasmDbId``)."""
        if self.identifier_field:
            return self.identifier_field
        return lower_first(self.datatype) + "DbId"

    def has_identifier_rule(self) -> bool:
        return self.brapi_identifier in self.field_rules

    def backend_field_for(self, brapi_field: str) -> str:
        """Return the backend field a BrAPI filter can be pushed to.

        Only direct rules translate to a store predicate.  Every other rule,
        and a missing rule, yields an empty string.
        """
        rule = self.field_rules.get(brapi_field)
        if isinstance(rule, DirectRule):
            return rule.field
        return ""

    def reference_field_for(self, brapi_field: str) -> str:
        """Return the backend reference field behind a BrAPI object field.

        Direct rules and sub-mappings sourced from a reference field both
        read referenced records; an identifier filter on such a field can be
        pushed to that backend field.
        """
        rule = self.field_rules.get(brapi_field)
        if isinstance(rule, DirectRule):
            return rule.field
        if isinstance(rule, SubMappingRule) and rule.source not in (None, CUSTOM_SOURCE):
            return rule.source
        return ""

    def submapping_target(self, brapi_field: str, rule: SubMappingRule) -> str:
        """Return the mapping identifier a sub-mapping rule projects through."""
        if rule.is_custom_submapping:
            return str(self.mapping_id.child(brapi_field))
        return rule.target or ""

    def rules(self, include_hidden: bool = False) -> dict[str, FieldRule]:
        """Return field rules, without hidden ones unless requested."""
        return {
            name: rule
            for name, rule in self.field_rules.items()
            if include_hidden or not rule.hidden
        }
