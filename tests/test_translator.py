"""Tests for request translation and the BrAPI data fetcher."""

import copy

import pytest

from brapi_mapper.mapping.models import DatatypeMapping
from brapi_mapper.mapping.registry import MappingRegistry
from brapi_mapper.projection.projector import ObjectProjector
from brapi_mapper.query.fetcher import BrapiDataFetcher, split_filters
from brapi_mapper.query.translator import NO_MATCH, QueryTranslator, is_search_call

from conftest import GERMPLASM_MAPPING


@pytest.fixture
def translator(settings, registry, fetcher) -> QueryTranslator:
    return QueryTranslator(settings, registry, fetcher)


@pytest.fixture
def schema(projector, germplasm_mapping):
    return projector.schema_for(germplasm_mapping)


def test_is_search_call():
    """Both search call styles are recognised."""
    assert is_search_call("/search/germplasm")
    assert is_search_call("/germplasm-search")
    assert not is_search_call("/germplasm")


# ============================================================================
# split_filters
# ============================================================================


class TestSplitFilters:
    def test_direct_rules_are_pushed(self, germplasm_mapping):
        """Direct rules go to the store under the backend field name."""
        pushable, post = split_filters(
            germplasm_mapping, {"germplasmName": "IR64", "accessionNumber": "A-001", "colour": "x"}
        )
        assert pushable == {"name": "IR64"}
        assert post == {"accessionNumber": "A-001", "colour": "x"}

    def test_brapi_filtering(self, germplasm_mapping):
        """filtering='brapi' keeps every filter for post-filtering."""
        pushable, post = split_filters(germplasm_mapping, {"germplasmName": "IR64"}, "brapi")
        assert pushable == {}
        assert post == {"germplasmName": "IR64"}


# ============================================================================
# QueryTranslator
# ============================================================================


class TestTranslateListCalls:
    @pytest.mark.asyncio
    async def test_query_string_filter(self, translator, germplasm_mapping, schema, definition):
        """A declared query parameter becomes a store filter."""
        query = await translator.translate(
            "/germplasm",
            "get",
            {},
            {"germplasmName": "IR64"},
            None,
            germplasm_mapping,
            schema,
            definition.calls["/germplasm"],
        )
        assert query.pushable_filters == {"name": "IR64"}
        assert query.post_filters == {}
        assert query.warnings == []
        assert (query.page, query.page_size) == (0, 10)
        assert not query.single_record

    @pytest.mark.asyncio
    async def test_same_request_same_translation(self, translator, germplasm_mapping, schema):
        """Translating the same request twice gives the same result."""
        args = ("/germplasm", "get", {}, {"germplasmName": "IR64", "accessionNumber": "A-001"},
                None, germplasm_mapping, schema)
        first = await translator.translate(*args)
        second = await translator.translate(*args)
        assert first == second

    @pytest.mark.asyncio
    async def test_custom_rule_becomes_post_filter(self, translator, germplasm_mapping, schema):
        """Filters on non-direct rules are evaluated after projection."""
        query = await translator.translate(
            "/germplasm", "get", {}, {"accessionNumber": "A-002"}, None, germplasm_mapping, schema
        )
        assert query.pushable_filters == {}
        assert query.post_filters == {"accessionNumber": "A-002"}

    @pytest.mark.asyncio
    async def test_unknown_query_parameter_warns(self, translator, germplasm_mapping, schema):
        """Unknown query parameters are reported, not rejected."""
        query = await translator.translate(
            "/germplasm", "get", {}, {"colour": "green", "page": "1"}, None, germplasm_mapping, schema
        )
        assert query.warnings == ["Unsupported query filter 'colour' ignored."]
        assert query.page == 1

    @pytest.mark.asyncio
    async def test_page_size_capped(self, translator, germplasm_mapping, schema):
        """pageSize is capped at the configured maximum."""
        query = await translator.translate(
            "/germplasm", "get", {}, {"pageSize": "5000"}, None, germplasm_mapping, schema
        )
        assert query.page_size == 1000

    @pytest.mark.asyncio
    async def test_path_parameters_select_one_record(self, translator, germplasm_mapping, schema):
        """Path parameters select a single record and ignore pagination."""
        query = await translator.translate(
            "/germplasm/{germplasmDbId}",
            "get",
            {"germplasmDbId": "2"},
            {"page": "3"},
            None,
            germplasm_mapping,
            schema,
        )
        assert query.single_record
        assert query.pushable_filters == {"id": "2"}
        assert (query.page, query.page_size) == (0, 1)

    @pytest.mark.asyncio
    async def test_brapi_filtering(self, translator, germplasm_mapping, schema):
        """filtering='brapi' turns every filter into a post-filter."""
        query = await translator.translate(
            "/germplasm",
            "get",
            {},
            {"germplasmName": "IR64"},
            None,
            germplasm_mapping,
            schema,
            filtering="brapi",
        )
        assert query.pushable_filters == {}
        assert query.post_filters == {"germplasmName": "IR64"}


class TestTranslateSearchCalls:
    @pytest.mark.asyncio
    async def test_plural_body_key(self, translator, germplasm_mapping, schema):
        """Plural body keys match their singular schema field."""
        query = await translator.translate(
            "/search/germplasm",
            "post",
            {},
            {},
            {"germplasmNames": ["IR64", "IR8"], "page": 1, "pageSize": 2},
            germplasm_mapping,
            schema,
        )
        assert query.pushable_filters == {"name": ["IR64", "IR8"]}
        assert (query.page, query.page_size) == (1, 2)
        assert query.warnings == []

    @pytest.mark.asyncio
    async def test_query_string_wins_over_body(self, translator, germplasm_mapping, schema):
        """The query string is looked up before the body."""
        query = await translator.translate(
            "/search/germplasm",
            "post",
            {},
            {"germplasmName": "IR8"},
            {"germplasmName": "IR64"},
            germplasm_mapping,
            schema,
        )
        assert query.pushable_filters == {"name": "IR8"}
        assert query.warnings == ["Unsupported filter 'germplasmName' ignored."]

    @pytest.mark.asyncio
    async def test_case_insensitive_match_warns(self, translator, germplasm_mapping, schema):
        """A key matching only when ignoring case is used with a warning."""
        query = await translator.translate(
            "/search/germplasm", "post", {}, {}, {"GermplasmName": "IR64"}, germplasm_mapping, schema
        )
        assert query.pushable_filters == {"name": "IR64"}
        assert query.warnings == ["Filter 'GermplasmName' matched field 'germplasmName' ignoring case."]

    @pytest.mark.asyncio
    async def test_unsupported_body_filter(self, translator, germplasm_mapping, schema):
        """Unknown body keys are reported as warnings."""
        query = await translator.translate(
            "/search/germplasm", "post", {}, {}, {"colour": "green"}, germplasm_mapping, schema
        )
        assert query.pushable_filters == {}
        assert query.warnings == ["Unsupported filter 'colour' ignored."]

    @pytest.mark.asyncio
    async def test_reference_filter_resolves_ids(self, translator, germplasm_mapping, schema):
        """studyNames is resolved through the Study mapping into study ids."""
        query = await translator.translate(
            "/search/germplasm",
            "post",
            {},
            {},
            {"studyNames": ["Wet season 2021"]},
            germplasm_mapping,
            schema,
        )
        assert query.pushable_filters == {"study_ids": ["2"]}
        assert query.warnings == []

    @pytest.mark.asyncio
    async def test_reference_filter_without_match(self, translator, germplasm_mapping, schema, fetcher):
        """A reference filter matching nothing makes the whole search match nothing."""
        query = await translator.translate(
            "/search/germplasm",
            "post",
            {},
            {},
            {"studyNames": ["Unknown study"]},
            germplasm_mapping,
            schema,
        )
        assert query.pushable_filters == {"study_ids": NO_MATCH}

        data = await fetcher.fetch(germplasm_mapping, query.pushable_filters, query.post_filters)
        assert data.entities == []
        assert data.total_count == 0


# ============================================================================
# Searching by reference sub-fields
# ============================================================================


@pytest.fixture
def submapped_germplasm() -> DatatypeMapping:
    """Germplasm whose studies are projected through the Study mapping."""
    mapping = copy.deepcopy(GERMPLASM_MAPPING)
    mapping["field_rules"]["studies"] = {
        "rule": "submapping",
        "source": "study_ids",
        "target": "v2-2.1-Study",
    }
    return DatatypeMapping(**mapping)


@pytest.fixture
def submapped_fetcher(store, submapped_germplasm, study_mapping, definitions) -> BrapiDataFetcher:
    registry = MappingRegistry([submapped_germplasm, study_mapping])
    return BrapiDataFetcher(store, ObjectProjector(store, registry, definitions))


@pytest.fixture
def submapped_translator(settings, submapped_germplasm, study_mapping, submapped_fetcher):
    registry = MappingRegistry([submapped_germplasm, study_mapping])
    return QueryTranslator(settings, registry, submapped_fetcher)


async def _search(translator, fetcher, mapping, schema, body, filtering="store"):
    query = await translator.translate(
        "/search/germplasm", "post", {}, {}, body, mapping, schema, filtering=filtering
    )
    data = await fetcher.fetch(
        mapping, query.pushable_filters, query.post_filters, query.page, query.page_size
    )
    return query, data


class TestReferenceSearch:
    @pytest.mark.asyncio
    async def test_submapped_field_filters_in_store(
        self, submapped_translator, submapped_fetcher, submapped_germplasm, schema
    ):
        """A sub-mapping read from a reference field filters on that field."""
        query, data = await _search(
            submapped_translator,
            submapped_fetcher,
            submapped_germplasm,
            schema,
            {"studyNames": ["Wet season 2021"]},
        )
        assert query.pushable_filters == {"study_ids": ["2"]}
        assert query.post_filters == {}
        assert data.record_ids == ["2", "3"]
        assert data.total_count == 2
        assert data.entities[0]["studies"] == [
            {"studyDbId": "1", "studyName": "Dry season 2020"},
            {"studyDbId": "2", "studyName": "Wet season 2021"},
        ]

    @pytest.mark.asyncio
    async def test_submapped_field_without_match(
        self, submapped_translator, submapped_fetcher, submapped_germplasm, schema
    ):
        """No matching study means no germplasm, not every germplasm."""
        query, data = await _search(
            submapped_translator,
            submapped_fetcher,
            submapped_germplasm,
            schema,
            {"studyNames": ["Unknown study"]},
        )
        assert query.pushable_filters == {"study_ids": NO_MATCH}
        assert data.entities == []
        assert data.total_count == 0

    @pytest.mark.asyncio
    async def test_submapped_field_post_filtered(
        self, submapped_translator, submapped_fetcher, submapped_germplasm, schema
    ):
        """With filtering='brapi' the projected study identifiers are matched."""
        query, data = await _search(
            submapped_translator,
            submapped_fetcher,
            submapped_germplasm,
            schema,
            {"studyNames": ["Wet season 2021"]},
            filtering="brapi",
        )
        assert query.pushable_filters == {}
        assert query.post_filters == {"studies.studyDbId": ["2"]}
        assert data.record_ids == ["2", "3"]
        assert data.total_count == 2

    @pytest.mark.asyncio
    async def test_direct_reference_post_filtered(self, translator, fetcher, germplasm_mapping, schema):
        """A direct reference field post-filters on the referenced record ids."""
        query, data = await _search(
            translator,
            fetcher,
            germplasm_mapping,
            schema,
            {"studyNames": ["Dry season 2020"]},
            filtering="brapi",
        )
        assert query.post_filters == {"studies.id": ["1"]}
        assert data.record_ids == ["1", "2"]

    @pytest.mark.asyncio
    async def test_post_filtered_without_match(self, translator, fetcher, germplasm_mapping, schema):
        """The no-match sentinel also empties post-filtered searches."""
        query, data = await _search(
            translator,
            fetcher,
            germplasm_mapping,
            schema,
            {"studyNames": ["Unknown study"]},
            filtering="brapi",
        )
        assert query.post_filters == {"studies.id": NO_MATCH}
        assert data.entities == []
        assert data.total_count == 0


# ============================================================================
# BrapiDataFetcher
# ============================================================================


class TestFetcher:
    @pytest.mark.asyncio
    async def test_store_pagination(self, fetcher, germplasm_mapping):
        """Without post-filters the store returns one page and the total."""
        data = await fetcher.fetch(germplasm_mapping, {}, page=1, page_size=2)
        assert [e["germplasmName"] for e in data.entities] == ["Nipponbare"]
        assert data.total_count == 3
        assert data.record_ids == ["3"]

    @pytest.mark.asyncio
    async def test_post_filters_paginate_after_filtering(self, fetcher, germplasm_mapping):
        """Post-filtered totals count matches, not store candidates."""
        data = await fetcher.fetch(
            germplasm_mapping, {}, {"accessionNumber": ["A-001", "A-003"]}, page=0, page_size=1
        )
        assert [e["germplasmDbId"] for e in data.entities] == ["1"]
        assert data.total_count == 2
        assert data.record_ids == ["1"]

    @pytest.mark.asyncio
    async def test_fetch_by_brapi_filters(self, fetcher, germplasm_mapping):
        """BrAPI-level filters are split before fetching."""
        data = await fetcher.fetch_by_brapi_filters(
            germplasm_mapping, {"germplasmName": ["IR64", "IR8"], "accessionNumber": "A-002"}
        )
        assert data.record_ids == ["2"]
        assert data.total_count == 1
