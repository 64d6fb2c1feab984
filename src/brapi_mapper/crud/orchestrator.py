"""Create, update, and delete BrAPI objects through their mapping.

Input fields are written through direct rules and through custom rules of
the simple ``$.field`` form.  Any other input field is skipped with a
warning.  Hard failures are limited to an identifier collision on create
and a missing identifier (or missing record) on update.

Usage:
    from brapi_mapper.crud.orchestrator import CrudOrchestrator

    crud = CrudOrchestrator(store, projector, fetcher)
    result = await crud.create(mapping, {"germplasmDbId": "7", "germplasmName": "IR64"})
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from brapi_mapper.adapters.base import RecordStore
from brapi_mapper.errors import (
    BadInputError,
    ConflictError,
    NotFoundError,
    UnprocessableError,
)
from brapi_mapper.mapping.custom import simple_field
from brapi_mapper.mapping.models import CustomRule, DatatypeMapping, DirectRule
from brapi_mapper.projection.projector import ObjectProjector
from brapi_mapper.query.fetcher import BrapiDataFetcher

logger = logging.getLogger(__name__)


class CrudResult(BaseModel):
    """Outcome of a write: the re-projected object or the deleted identifiers."""

    object: dict[str, Any] | None = None
    deleted: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


class CrudOrchestrator:
    """Write BrAPI objects to the record store."""

    def __init__(
        self,
        store: RecordStore,
        projector: ObjectProjector,
        fetcher: BrapiDataFetcher,
    ) -> None:
        self._store = store
        self._projector = projector
        self._fetcher = fetcher

    def map_input(
        self, mapping: DatatypeMapping, data: dict[str, Any], warnings: list[str]
    ) -> dict[str, Any]:
        """Translate BrAPI input fields into backend fields."""
        fields: dict[str, Any] = {}
        for name, value in data.items():
            rule = mapping.field_rules.get(name)
            if rule is None:
                warnings.append(f"Unknown field '{name}' ignored.")
                continue
            if isinstance(rule, DirectRule):
                fields[rule.field] = value
                continue
            if isinstance(rule, CustomRule):
                target = simple_field(rule.expression)
                if target:
                    fields[target] = value
                    continue
            warnings.append(f"Field '{name}' cannot be written through its mapping and was ignored.")
        for warning in warnings:
            logger.warning(f"{mapping.id}: {warning}")
        return fields

    async def _find_ids(self, mapping: DatatypeMapping, filters: dict[str, Any]) -> list[str]:
        found = await self._fetcher.fetch_by_brapi_filters(mapping, filters, include_hidden=True)
        return found.record_ids

    async def create(self, mapping: DatatypeMapping, data: dict[str, Any]) -> CrudResult:
        """Create a record from BrAPI *data* and return it re-projected.

        Raises:
            BadInputError: If *data* is not an object.
            ConflictError: If the identifier is already used.
        """
        if not isinstance(data, dict):
            raise BadInputError("Each object to create must be a JSON object.")
        identifier = mapping.brapi_identifier
        value = data.get(identifier)
        if not _is_empty(value) and mapping.has_identifier_rule():
            if await self._find_ids(mapping, {identifier: value}):
                raise ConflictError(
                    f"A {mapping.datatype} with {identifier} '{value}' already exists."
                )

        warnings: list[str] = []
        fields = self.map_input(mapping, data, warnings)
        record = await self._store.create(mapping.record_kind, fields, bundle=mapping.bundle)
        obj = await self._projector.project(record, mapping)
        logger.info(f"Created {mapping.record_kind} record {record.id} through '{mapping.id}'")
        return CrudResult(object=obj, warnings=warnings)

    async def update(
        self,
        mapping: DatatypeMapping,
        data: dict[str, Any],
        identifier_value: Any = None,
    ) -> CrudResult:
        """Update the record identified by *identifier_value* or by *data*.

        Raises:
            UnprocessableError: If the mapping has no identifier rule.
            BadInputError: If no identifier is provided.
            NotFoundError: If no record matches the identifier.
        """
        if not isinstance(data, dict):
            raise BadInputError("The object to update must be a JSON object.")
        identifier = mapping.brapi_identifier
        if not mapping.has_identifier_rule():
            raise UnprocessableError(
                f"Mapping '{mapping.id}' has no rule for identifier field '{identifier}'."
            )
        value = identifier_value if not _is_empty(identifier_value) else data.get(identifier)
        if _is_empty(value):
            raise BadInputError(f"Missing identifier '{identifier}'.")

        record_ids = await self._find_ids(mapping, {identifier: value})
        if not record_ids:
            raise NotFoundError(f"No {mapping.datatype} with {identifier} '{value}'.")

        warnings: list[str] = []
        changes = {k: v for k, v in data.items() if k != identifier}
        fields = self.map_input(mapping, changes, warnings)
        record = await self._store.update(mapping.record_kind, record_ids[0], fields)
        obj = await self._projector.project(record, mapping)
        return CrudResult(object=obj, warnings=warnings)

    async def delete(self, mapping: DatatypeMapping, filters: dict[str, Any]) -> CrudResult:
        """Delete every record matching BrAPI *filters*.

        Returns the BrAPI identifiers of deleted objects; an empty list
        means nothing matched.

        Raises:
            BadInputError: If no filter is given.
        """
        filters = {k: v for k, v in filters.items() if not _is_empty(v)}
        if not filters:
            raise BadInputError("Refusing to delete without identifying parameters.")

        found = await self._fetcher.fetch_by_brapi_filters(mapping, filters, include_hidden=True)
        if not found.record_ids:
            return CrudResult()

        await self._store.delete(mapping.record_kind, found.record_ids)
        identifier = mapping.brapi_identifier
        deleted = [
            str(entity.get(identifier) or record_id)
            for entity, record_id in zip(found.entities, found.record_ids)
        ]
        logger.info(f"Deleted {len(deleted)} {mapping.record_kind} records through '{mapping.id}'")
        return CrudResult(deleted=deleted)
