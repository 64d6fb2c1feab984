"""Fetching BrAPI objects for translated filters.

``BrapiDataFetcher`` runs the store query, loads and projects the
records, and applies post-filters.  Without post-filters pagination is
pushed to the store; with post-filters every candidate is fetched and the
page is cut after filtering.

Usage:
    from brapi_mapper.query.fetcher import BrapiDataFetcher

    fetcher = BrapiDataFetcher(store, projector)
    data = await fetcher.fetch(mapping, {"name": "IR64"}, {}, page=0, page_size=10)
    data.entities, data.total_count
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from brapi_mapper.adapters.base import Record, RecordStore
from brapi_mapper.mapping.models import DatatypeMapping
from brapi_mapper.projection.projector import ObjectProjector
from brapi_mapper.query.postfilter import apply_and_paginate

logger = logging.getLogger(__name__)

# Records loaded per store round trip when post-filtering
LOAD_BATCH_SIZE = 500


class BrapiData(BaseModel):
    """A page of projected objects plus the total number of matches."""

    entities: list[dict[str, Any]] = Field(default_factory=list)
    total_count: int = 0
    record_ids: list[str] = Field(default_factory=list)


def split_filters(
    mapping: DatatypeMapping,
    brapi_filters: dict[str, Any],
    filtering: str = "store",
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split BrAPI filters into store filters and post-filters.

    A filter goes to the store when its field has a direct rule, keyed by
    the backend field.  Anything else, or every filter when *filtering* is
    ``"brapi"``, stays a post-filter keyed by the BrAPI field.

    Example:
        >>> split_filters(mapping, {"germplasmName": "IR64", "synonyms": "x"})
        ({'name': 'IR64'}, {'synonyms': 'x'})
    """
    pushable: dict[str, Any] = {}
    post: dict[str, Any] = {}
    for field, value in brapi_filters.items():
        backend_field = "" if filtering == "brapi" else mapping.backend_field_for(field)
        if backend_field:
            pushable[backend_field] = value
        else:
            post[field] = value
    return pushable, post


class BrapiDataFetcher:
    """Query, load, project, and post-filter records of one mapping."""

    def __init__(self, store: RecordStore, projector: ObjectProjector) -> None:
        self._store = store
        self._projector = projector

    async def fetch(
        self,
        mapping: DatatypeMapping,
        pushable_filters: dict[str, Any],
        post_filters: dict[str, Any] | None = None,
        page: int = 0,
        page_size: int | None = None,
        include_hidden: bool = False,
    ) -> BrapiData:
        """Return the requested page of projected objects.

        Args:
            mapping: Mapping of the requested datatype.
            pushable_filters: Filters keyed by backend field.
            post_filters: Filters keyed by BrAPI field, applied after
                projection.
            page: Zero-based page index.
            page_size: Page size; None returns every match.
            include_hidden: Also project hidden rules.
        """
        kind = mapping.record_kind

        if not post_filters:
            window = (page * page_size, page_size) if page_size else None
            found = await self._store.query(
                kind, pushable_filters, bundle=mapping.bundle, range=window
            )
            records = await self._store.load_many(kind, found.ids)
            entities = [
                await self._projector.project(r, mapping, include_hidden=include_hidden)
                for r in records
            ]
            return BrapiData(
                entities=entities,
                total_count=found.total_count,
                record_ids=[r.id for r in records],
            )

        found = await self._store.query(kind, pushable_filters, bundle=mapping.bundle)
        record_by_entity: dict[int, str] = {}
        entities = []
        for record in await self._load_all(kind, found.ids):
            entity = await self._projector.project(record, mapping, include_hidden=include_hidden)
            record_by_entity[id(entity)] = record.id
            entities.append(entity)

        page_items, total_count = apply_and_paginate(entities, post_filters, page, page_size)
        logger.debug(
            f"Post-filtered {len(entities)} '{mapping.id}' candidates down to {total_count}"
        )
        return BrapiData(
            entities=page_items,
            total_count=total_count,
            record_ids=[record_by_entity[id(e)] for e in page_items],
        )

    async def fetch_by_brapi_filters(
        self,
        mapping: DatatypeMapping,
        brapi_filters: dict[str, Any],
        page: int = 0,
        page_size: int | None = None,
        include_hidden: bool = False,
        filtering: str = "store",
    ) -> BrapiData:
        """Split BrAPI-level filters and fetch."""
        pushable, post = split_filters(mapping, brapi_filters, filtering)
        return await self.fetch(mapping, pushable, post, page, page_size, include_hidden)

    async def _load_all(self, kind: str, ids: list[str]) -> list[Record]:
        records: list[Record] = []
        for start in range(0, len(ids), LOAD_BATCH_SIZE):
            records.extend(await self._store.load_many(kind, ids[start:start + LOAD_BATCH_SIZE]))
        return records
