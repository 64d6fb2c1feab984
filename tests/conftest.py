"""Shared sample data: a small v2/2.1 definition, mappings, and records."""

import json
import textwrap
from pathlib import Path

import pytest

from brapi_mapper.adapters.base import Record
from brapi_mapper.adapters.memory import InMemoryRecordStore
from brapi_mapper.cache.memory import InMemoryJobCache
from brapi_mapper.config.models import BrapiSettings, ServerInfo
from brapi_mapper.mapping.models import DatatypeMapping
from brapi_mapper.mapping.registry import MappingRegistry
from brapi_mapper.projection.projector import ObjectProjector
from brapi_mapper.query.fetcher import BrapiDataFetcher
from brapi_mapper.schema.models import BrapiDefinition, DefinitionTable
from brapi_mapper.service import BrapiService

REFERENCES = {"germplasm": {"study_ids": "study"}}

DEFINITION = {
    "version": "v2",
    "release": "2.1",
    "data_types": {
        "Germplasm": {
            "fields": {
                "germplasmDbId": {"type": "string", "required": True},
                "germplasmName": {"type": "string", "required": True},
                "accessionNumber": {"type": "string"},
                "synonyms": {"type": "string[]"},
                "species": {"type": "string"},
                "studies": {"type": "Study[]"},
            }
        },
        "Study": {
            "fields": {
                "studyDbId": {"type": "string", "required": True},
                "studyName": {"type": "string"},
            }
        },
    },
    "calls": {
        "/serverinfo": {"data_types": []},
        "/germplasm": {
            "data_types": ["Germplasm"],
            "definition": {
                "get": {
                    "parameters": [
                        {"name": "germplasmDbId", "in": "query"},
                        {"name": "germplasmName", "in": "query"},
                        {"name": "accessionNumber", "in": "query"},
                        {"name": "page", "in": "query"},
                        {"name": "pageSize", "in": "query"},
                    ]
                },
                "post": {"parameters": []},
            },
        },
        "/germplasm/{germplasmDbId}": {
            "data_types": ["Germplasm"],
            "definition": {
                "get": {"parameters": [{"name": "germplasmDbId", "in": "path"}]},
                "put": {"parameters": [{"name": "germplasmDbId", "in": "path"}]},
                "delete": {"parameters": [{"name": "germplasmDbId", "in": "path"}]},
            },
        },
        "/search/germplasm": {"data_types": ["Germplasm"]},
        "/search/germplasm/{searchResultsDbId}": {"data_types": ["Germplasm"]},
        "/studies": {"data_types": ["Study"]},
        "/observations/table": {"data_types": []},
    },
}

GERMPLASM_MAPPING = {
    "id": "v2-2.1-Germplasm",
    "content_target": "germplasm",
    "field_rules": {
        "germplasmDbId": {"rule": "direct", "field": "id"},
        "germplasmName": {"rule": "direct", "field": "name"},
        "accessionNumber": {"rule": "custom", "expression": "$.accession"},
        "synonyms": {"rule": "direct", "field": "synonyms"},
        "species": {"rule": "static", "value": "Oryza sativa"},
        "studies": {"rule": "direct", "field": "study_ids"},
    },
}

STUDY_MAPPING = {
    "id": "v2-2.1-Study",
    "content_target": "study",
    "field_rules": {
        "studyDbId": {"rule": "direct", "field": "id"},
        "studyName": {"rule": "direct", "field": "title"},
    },
}


def make_records() -> list[Record]:
    """Three germplasm records and two studies."""
    germplasm = [
        {"id": 1, "name": "IR64", "accession": "A-001", "synonyms": ["Rice 64"], "study_ids": [1]},
        {"id": 2, "name": "IR8", "accession": "A-002", "synonyms": ["Miracle rice"], "study_ids": [1, 2]},
        {"id": 3, "name": "Nipponbare", "accession": "A-003", "synonyms": [], "study_ids": [2]},
    ]
    studies = [
        {"id": 1, "title": "Dry season 2020"},
        {"id": 2, "title": "Wet season 2021"},
    ]
    records = []
    for row in germplasm:
        values = {k: v for k, v in row.items() if k != "id"}
        records.append(
            Record(kind="germplasm", id=row["id"], values=values, references=REFERENCES["germplasm"])
        )
    for row in studies:
        records.append(Record(kind="study", id=row["id"], values={"title": row["title"]}))
    return records


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def definition() -> BrapiDefinition:
    return BrapiDefinition(**DEFINITION)


@pytest.fixture
def definitions(definition) -> DefinitionTable:
    return DefinitionTable([definition])


@pytest.fixture
def germplasm_mapping() -> DatatypeMapping:
    return DatatypeMapping(**GERMPLASM_MAPPING)


@pytest.fixture
def study_mapping() -> DatatypeMapping:
    return DatatypeMapping(**STUDY_MAPPING)


@pytest.fixture
def registry(germplasm_mapping, study_mapping) -> MappingRegistry:
    return MappingRegistry([germplasm_mapping, study_mapping])


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore(make_records(), references=REFERENCES)


@pytest.fixture
def projector(store, registry, definitions) -> ObjectProjector:
    return ObjectProjector(store, registry, definitions)


@pytest.fixture
def fetcher(store, projector) -> BrapiDataFetcher:
    return BrapiDataFetcher(store, projector)


@pytest.fixture
def settings() -> BrapiSettings:
    return BrapiSettings(
        releases={"v2": "2.1", "v1": "1.3"},
        server=ServerInfo(server_name="Test BrAPI", organization_name="Rice Institute"),
        calls={
            "v2": {
                "/serverinfo": {"methods": ["get"]},
                "/germplasm": {"methods": ["get", "post"]},
                "/germplasm/{germplasmDbId}": {"methods": ["get", "put", "delete"]},
                "/search/germplasm": {"methods": ["post"], "deferred": True},
                "/search/germplasm/{searchResultsDbId}": {"methods": ["get"], "deferred": True},
                "/studies": {"methods": ["get"], "roles": {"get": ["breeder"]}},
                "/observations/table": {"methods": ["get"]},
            },
            "v1": {
                "/calls": {"methods": ["get"]},
                "/login": {"methods": ["post"]},
                "/logout": {"methods": ["delete"]},
            },
        },
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(settings, definitions, registry, store, clock) -> BrapiService:
    return BrapiService(
        settings, definitions, registry, store, InMemoryJobCache(clock=clock), clock=clock
    )


FIXTURES = {
    "germplasm": [
        {"id": 1, "name": "IR64", "accession": "A-001", "synonyms": ["Rice 64"], "study_ids": [1]},
        {"id": 2, "name": "IR8", "accession": "A-002", "synonyms": ["Miracle rice"], "study_ids": [1, 2]},
    ],
    "study": [{"id": 1, "title": "Dry season 2020"}, {"id": 2, "title": "Wet season 2021"}],
}


@pytest.fixture
def brapi_config(tmp_path) -> Path:
    """A brapi.toml with definition, mapping and fixture files beside it."""
    (tmp_path / "definitions").mkdir()
    (tmp_path / "definitions" / "v2.json").write_text(json.dumps(DEFINITION))
    (tmp_path / "mappings.json").write_text(json.dumps([GERMPLASM_MAPPING, STUDY_MAPPING]))
    (tmp_path / "fixtures.json").write_text(json.dumps(FIXTURES))

    path = tmp_path / "brapi.toml"
    path.write_text(
        textwrap.dedent(
            """
            definitions = ["definitions/v2.json"]
            mappings = "mappings.json"

            [server]
            server_name = "Fixture BrAPI"

            [store]
            provider = "memory"
            fixtures = "fixtures.json"

            [store.references.germplasm]
            study_ids = "study"

            [calls.v2."/serverinfo"]
            methods = ["get"]

            [calls.v2."/germplasm"]
            methods = ["get", "post"]

            [calls.v2."/germplasm/{germplasmDbId}"]
            methods = ["get"]

            [calls.v2."/search/germplasm"]
            methods = ["post"]
            deferred = true

            [calls.v2."/search/germplasm/{searchResultsDbId}"]
            methods = ["get"]
            deferred = true

            [calls.v2."/studies"]
            methods = ["get"]

            [calls.v2."/studies".roles]
            get = ["breeder"]
            """
        )
    )
    return path
