"""Tests for mapping identifiers, field rules, datatype mappings, and the registry."""

import pytest
from pydantic import ValidationError

from brapi_mapper.errors import NotFoundError
from brapi_mapper.mapping.models import (
    CustomRule,
    DatatypeMapping,
    DirectRule,
    MappingId,
    StaticRule,
    SubMappingRule,
)
from brapi_mapper.mapping.registry import MappingRegistry


# ============================================================================
# MappingId
# ============================================================================


class TestMappingId:
    def test_parse_top_level(self):
        """A top-level identifier has no subfields and no parent."""
        mid = MappingId.parse("v2-2.1-Germplasm")
        assert (mid.version, mid.release, mid.datatype, mid.subfields) == (
            "v2", "2.1", "Germplasm", ()
        )
        assert mid.parent() is None
        assert not mid.is_submapping

    def test_parse_submapping(self):
        """Subfields follow the datatype; parent drops the last one."""
        mid = MappingId.parse("v2-2.1-Germplasm-donors-extra")
        assert mid.subfields == ("donors", "extra")
        assert str(mid.parent()) == "v2-2.1-Germplasm-donors"
        assert mid.is_submapping

    def test_generate_and_child(self):
        """generate() and child() build valid identifiers."""
        assert MappingId.generate("v1", "1.3", "Study") == "v1-1.3-Study"
        assert str(MappingId.parse("v2-2.1-Study").child("seasons")) == "v2-2.1-Study-seasons"

    @pytest.mark.parametrize("text", ["", "2-2.1-Germplasm", "v2-x-Germplasm", "v2-2.1-", "v2-2.1-1abc"])
    def test_invalid(self, text):
        """Identifiers outside the grammar are rejected."""
        with pytest.raises(ValueError):
            MappingId.parse(text)


# ============================================================================
# Field rules
# ============================================================================


class TestFieldRules:
    def test_discriminated_union(self):
        """The rule tag selects the rule model."""
        mapping = DatatypeMapping(
            id="v2-2.1-Germplasm",
            content_target="germplasm",
            field_rules={
                "germplasmDbId": {"rule": "direct", "field": "id"},
                "species": {"rule": "static", "value": "Oryza sativa"},
                "accessionNumber": {"rule": "custom", "expression": "$.accession"},
                "donors": {"rule": "submapping", "is_custom_submapping": True},
            },
        )
        rules = mapping.field_rules
        assert isinstance(rules["germplasmDbId"], DirectRule)
        assert isinstance(rules["species"], StaticRule)
        assert isinstance(rules["accessionNumber"], CustomRule)
        assert isinstance(rules["donors"], SubMappingRule)

    def test_unknown_rule_tag(self):
        """An unknown rule tag fails validation."""
        with pytest.raises(ValidationError):
            DatatypeMapping(
                id="v2-2.1-Germplasm",
                content_target="germplasm",
                field_rules={"x": {"rule": "magic"}},
            )

    def test_extra_keys_forbidden(self):
        """Misspelled rule keys are reported instead of ignored."""
        with pytest.raises(ValidationError):
            DirectRule(field="name", feild="oops")

    def test_custom_source_needs_expression(self):
        """A '_custom' sub-mapping source requires an expression."""
        with pytest.raises(ValidationError):
            SubMappingRule(source="_custom", target="v2-2.1-Study")

    def test_submapping_needs_target(self):
        """A regular sub-mapping needs a target mapping identifier."""
        with pytest.raises(ValidationError):
            SubMappingRule(source="study_ids")
        with pytest.raises(ValidationError):
            SubMappingRule(source="study_ids", target="not-an-id")


# ============================================================================
# DatatypeMapping
# ============================================================================


class TestDatatypeMapping:
    def test_content_target_parts(self):
        """content_target splits into record kind and bundle."""
        mapping = DatatypeMapping(id="v2-2.1-Germplasm", content_target="germplasm:accession")
        assert mapping.record_kind == "germplasm"
        assert mapping.bundle == "accession"
        assert DatatypeMapping(id="v2-2.1-Study", content_target="study").bundle is None

    def test_invalid_identifier(self):
        """Mapping ids must follow the identifier grammar."""
        with pytest.raises(ValidationError):
            DatatypeMapping(id="Germplasm", content_target="germplasm")

    def test_brapi_identifier(self, germplasm_mapping):
        """The identifier field defaults to <datatype>DbId."""
        assert germplasm_mapping.brapi_identifier == "germplasmDbId"
        assert germplasm_mapping.has_identifier_rule()
        custom = DatatypeMapping(
            id="v2-2.1-Variable", content_target="variable", identifier_field="observationVariableDbId"
        )
        assert custom.brapi_identifier == "observationVariableDbId"
        assert not custom.has_identifier_rule()

    def test_backend_field_for(self, germplasm_mapping):
        """Only direct rules expose a backend field."""
        assert germplasm_mapping.backend_field_for("germplasmName") == "name"
        assert germplasm_mapping.backend_field_for("accessionNumber") == ""
        assert germplasm_mapping.backend_field_for("unknown") == ""

    def test_submapping_target(self):
        """Custom sub-mappings target <mapping id>-<field>."""
        mapping = DatatypeMapping(
            id="v2-2.1-Germplasm",
            content_target="germplasm",
            field_rules={
                "donors": {"rule": "submapping", "is_custom_submapping": True},
                "studies": {"rule": "submapping", "source": "study_ids", "target": "v2-2.1-Study"},
            },
        )
        assert mapping.submapping_target("donors", mapping.field_rules["donors"]) == "v2-2.1-Germplasm-donors"
        assert mapping.submapping_target("studies", mapping.field_rules["studies"]) == "v2-2.1-Study"

    def test_hidden_rules(self):
        """rules() leaves hidden rules out unless asked."""
        mapping = DatatypeMapping(
            id="v2-2.1-Germplasm",
            content_target="germplasm",
            field_rules={
                "germplasmName": {"rule": "direct", "field": "name"},
                "internalCode": {"rule": "direct", "field": "code", "hidden": True},
            },
        )
        assert list(mapping.rules()) == ["germplasmName"]
        assert list(mapping.rules(include_hidden=True)) == ["germplasmName", "internalCode"]


# ============================================================================
# MappingRegistry
# ============================================================================


class TestMappingRegistry:
    def test_lookup(self, registry):
        """Mappings are found by id and by (version, release, datatype)."""
        assert "v2-2.1-Germplasm" in registry
        assert len(registry) == 2
        assert registry.get_for_datatype("v2", "2.1", "Study").id == "v2-2.1-Study"
        assert registry.find("v2-2.1-Trial") is None

    def test_unknown_mapping(self, registry):
        """An unknown mapping raises NotFoundError with the BrAPI message."""
        with pytest.raises(NotFoundError, match="No mapping available for data type 'v2-2.1-Trial'"):
            registry.get("v2-2.1-Trial")

    def test_last_duplicate_wins(self, germplasm_mapping):
        """A duplicate identifier replaces the earlier mapping."""
        replacement = germplasm_mapping.model_copy(update={"label": "replacement"})
        registry = MappingRegistry([germplasm_mapping, replacement])
        assert len(registry) == 1
        assert registry.get("v2-2.1-Germplasm").label == "replacement"
