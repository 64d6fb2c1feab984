"""Tests for creating, updating, and deleting BrAPI objects."""

import pytest

from brapi_mapper.crud.orchestrator import CrudOrchestrator
from brapi_mapper.errors import BadInputError, ConflictError, NotFoundError, UnprocessableError
from brapi_mapper.mapping.models import DatatypeMapping


@pytest.fixture
def crud(store, projector, fetcher) -> CrudOrchestrator:
    return CrudOrchestrator(store, projector, fetcher)


# ============================================================================
# create
# ============================================================================


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_and_read_back(self, crud, fetcher, germplasm_mapping):
        """A created object reads back with the values that were written."""
        result = await crud.create(
            germplasm_mapping,
            {"germplasmName": "Azucena", "accessionNumber": "A-004", "synonyms": ["Az"]},
        )
        created = result.object
        assert created["germplasmDbId"] == "4"
        assert created["germplasmName"] == "Azucena"
        assert created["accessionNumber"] == "A-004"
        assert created["synonyms"] == ["Az"]
        assert created["studies"] == []
        assert result.warnings == []

        found = await fetcher.fetch_by_brapi_filters(germplasm_mapping, {"germplasmDbId": "4"})
        assert found.entities == [created]

    @pytest.mark.asyncio
    async def test_explicit_identifier(self, crud, germplasm_mapping):
        """A free identifier is used as given."""
        result = await crud.create(germplasm_mapping, {"germplasmDbId": "7", "germplasmName": "IR36"})
        assert result.object["germplasmDbId"] == "7"

    @pytest.mark.asyncio
    async def test_existing_identifier_conflicts(self, crud, store, germplasm_mapping):
        """Creating over an existing identifier fails and creates nothing."""
        with pytest.raises(ConflictError, match="already exists"):
            await crud.create(germplasm_mapping, {"germplasmDbId": "1", "germplasmName": "Copy"})
        assert (await store.query("germplasm", {})).total_count == 3

    @pytest.mark.asyncio
    async def test_unwritable_fields_warn(self, crud, germplasm_mapping):
        """Static rules and unknown fields are skipped with warnings."""
        result = await crud.create(
            germplasm_mapping, {"germplasmName": "IR36", "species": "Zea mays", "colour": "green"}
        )
        assert result.object["species"] == "Oryza sativa"
        assert result.warnings == [
            "Field 'species' cannot be written through its mapping and was ignored.",
            "Unknown field 'colour' ignored.",
        ]

    @pytest.mark.asyncio
    async def test_not_an_object(self, crud, germplasm_mapping):
        """Only JSON objects can be created."""
        with pytest.raises(BadInputError):
            await crud.create(germplasm_mapping, ["IR36"])


# ============================================================================
# update
# ============================================================================


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_by_path_identifier(self, crud, germplasm_mapping):
        """Only the given fields change."""
        result = await crud.update(germplasm_mapping, {"germplasmName": "IR64-B"}, "1")
        assert result.object["germplasmName"] == "IR64-B"
        assert result.object["accessionNumber"] == "A-001"
        assert result.object["germplasmDbId"] == "1"

    @pytest.mark.asyncio
    async def test_update_by_body_identifier(self, crud, germplasm_mapping):
        """The identifier can come from the body and is never rewritten."""
        result = await crud.update(germplasm_mapping, {"germplasmDbId": "2", "accessionNumber": "B-2"})
        assert result.object["germplasmDbId"] == "2"
        assert result.object["accessionNumber"] == "B-2"

    @pytest.mark.asyncio
    async def test_missing_identifier(self, crud, germplasm_mapping):
        """An update without identifier is rejected."""
        with pytest.raises(BadInputError, match="Missing identifier"):
            await crud.update(germplasm_mapping, {"germplasmName": "x"})

    @pytest.mark.asyncio
    async def test_unknown_record(self, crud, germplasm_mapping):
        """Updating an unknown identifier raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await crud.update(germplasm_mapping, {"germplasmName": "x"}, "42")

    @pytest.mark.asyncio
    async def test_mapping_without_identifier_rule(self, crud):
        """A mapping that cannot identify records cannot update them."""
        mapping = DatatypeMapping(
            id="v2-2.1-Study",
            content_target="study",
            field_rules={"studyName": {"rule": "direct", "field": "title"}},
        )
        with pytest.raises(UnprocessableError, match="studyDbId"):
            await crud.update(mapping, {"studyName": "x"}, "1")


# ============================================================================
# delete
# ============================================================================


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_by_identifier(self, crud, store, germplasm_mapping):
        """Deleted objects are reported by BrAPI identifier."""
        result = await crud.delete(germplasm_mapping, {"germplasmDbId": "2"})
        assert result.deleted == ["2"]
        assert (await store.query("germplasm", {})).ids == ["1", "3"]

    @pytest.mark.asyncio
    async def test_delete_by_post_filter(self, crud, store, germplasm_mapping):
        """Filters on non-direct rules select records after projection."""
        result = await crud.delete(germplasm_mapping, {"accessionNumber": ["A-001", "A-003"]})
        assert result.deleted == ["1", "3"]
        assert (await store.query("germplasm", {})).ids == ["2"]

    @pytest.mark.asyncio
    async def test_nothing_matched(self, crud, germplasm_mapping):
        """No match deletes nothing."""
        result = await crud.delete(germplasm_mapping, {"germplasmDbId": "42"})
        assert result.deleted == []

    @pytest.mark.asyncio
    async def test_filters_required(self, crud, germplasm_mapping):
        """Deleting without filters is refused."""
        with pytest.raises(BadInputError):
            await crud.delete(germplasm_mapping, {"germplasmDbId": ""})
