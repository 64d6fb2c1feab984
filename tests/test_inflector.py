"""Tests for BrAPI field-name inflection."""

import pytest

from brapi_mapper.mapping.inflector import name_variants, plural, singular


class TestPlural:
    """plural() only touches the trailing camelCase word."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("germplasmDbId", "germplasmDbIds"),
            ("germplasmName", "germplasmNames"),
            ("study", "studies"),
            ("trialDbId", "trialDbIds"),
            ("locationAlias", "locationAliases"),
            ("programKey", "programKeys"),
        ],
    )
    def test_regular(self, name, expected):
        """Regular words get s, es or ies."""
        assert plural(name) == expected

    def test_irregular_keeps_case(self):
        """Irregular nouns keep the capitalization of the original word."""
        assert plural("contactPerson") == "contactPeople"

    def test_uncountable(self):
        """germplasm and species have no distinct plural."""
        assert plural("germplasm") == "germplasm"
        assert plural("species") == "species"

    def test_already_plural_ies(self):
        """Words already ending in ies are not pluralized again."""
        assert plural("studies") == "studies"
        assert plural("observationStudies") == "observationStudies"
        assert name_variants("studies") == ["studies", "study"]


class TestSingular:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("germplasmDbIds", "germplasmDbId"),
            ("studyNames", "studyName"),
            ("studies", "study"),
            ("contactPeople", "contactPerson"),
        ],
    )
    def test_singular(self, name, expected):
        """Plural names map back to their singular form."""
        assert singular(name) == expected

    def test_words_ending_in_s_that_are_singular(self):
        """Words ending in ss, us or is are left alone."""
        assert singular("status") == "status"
        assert singular("analysis") == "analysis"

    def test_empty_name(self):
        """An empty name comes back unchanged."""
        assert singular("") == ""
        assert plural("") == ""


class TestNameVariants:
    def test_order_and_uniqueness(self):
        """Variants are [name, plural, singular] without duplicates."""
        assert name_variants("germplasmDbId") == ["germplasmDbId", "germplasmDbIds"]

    def test_uncountable_has_one_variant(self):
        """An uncountable word yields only itself."""
        assert name_variants("germplasm") == ["germplasm"]
