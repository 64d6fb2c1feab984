"""Projection of backend records into BrAPI objects.

``ObjectProjector`` walks the field rules of a ``DatatypeMapping`` and
builds one BrAPI object per record, recursing through sub-mappings.  After
each field is evaluated its value is coerced to the cardinality the BrAPI
definition declares (array or scalar).

A problem with one field (unknown backend field, unresolvable custom
value, missing sub-mapping, mapping cycle) is logged and the field becomes
``None``; the rest of the object is still produced.

Usage:
    from brapi_mapper.projection.projector import ObjectProjector

    projector = ObjectProjector(store, registry, definitions)
    obj = await projector.project(record, mapping)
"""

import copy
import json
import logging
from typing import Any

from brapi_mapper.adapters.base import Record, RecordStore
from brapi_mapper.errors import NotFoundError
from brapi_mapper.mapping.custom import CustomValueResolver
from brapi_mapper.mapping.models import (
    CUSTOM_SOURCE,
    CustomRule,
    DatatypeMapping,
    DirectRule,
    FieldRule,
    StaticRule,
    SubMappingRule,
)
from brapi_mapper.mapping.registry import MappingRegistry
from brapi_mapper.schema.models import DefinitionTable, FieldDefinition

logger = logging.getLogger(__name__)


class MappingCycleError(Exception):
    """A sub-mapping leads back to a mapping already being projected."""

    pass


def coerce_cardinality(value: Any, is_array: bool | None) -> Any:
    """Coerce *value* to the declared cardinality.

    Arrays: ``None`` becomes ``[]`` and a non-list value is wrapped.
    Scalars: a list collapses to its first element (``None`` when empty).
    A dict is never collapsed.  Unknown cardinality leaves *value* as is.

    Examples:
        >>> coerce_cardinality("IR64", True)
        ['IR64']
        >>> coerce_cardinality(["a", "b"], False)
        'a'
        >>> coerce_cardinality([], False) is None
        True
    """
    if is_array is None:
        return value
    if is_array:
        if value is None:
            return []
        return value if isinstance(value, list) else [value]
    while isinstance(value, list):
        value = value[0] if value else None
    return value


class _RecordContext:
    """Per-record state shared by the rules of one projection."""

    def __init__(self, record: Record) -> None:
        self.record = record
        self._data: dict[str, Any] | None = None

    @property
    def data(self) -> dict[str, Any]:
        """Plain-data form of the record, computed once."""
        if self._data is None:
            self._data = self.record.to_data()
        return self._data


class ObjectProjector:
    """Turn backend records into BrAPI-shaped dicts.

    Args:
        store: Record store used to load referenced records.
        registry: Mappings used to resolve sub-mapping targets.
        definitions: BrAPI definitions providing field cardinality.
        resolver: Custom value resolver (a default one is created).
    """

    def __init__(
        self,
        store: RecordStore,
        registry: MappingRegistry,
        definitions: DefinitionTable,
        resolver: CustomValueResolver | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._definitions = definitions
        self._resolver = resolver or CustomValueResolver()

    def schema_for(self, mapping: DatatypeMapping) -> dict[str, FieldDefinition]:
        """Return the declared fields of the mapping's datatype (or ``{}``)."""
        mapping_id = mapping.mapping_id
        try:
            definition = self._definitions.get(mapping_id.version, mapping_id.release)
        except NotFoundError:
            return {}
        return definition.datatype_fields(mapping_id.datatype, mapping_id.subfields)

    async def project(
        self,
        record: Record,
        mapping: DatatypeMapping,
        include_hidden: bool = False,
        visited: frozenset[str] = frozenset(),
    ) -> dict[str, Any]:
        """Project one record through *mapping*.

        Args:
            record: Backend record.
            mapping: Mapping of the record's datatype.
            include_hidden: Also output rules flagged ``hidden``.
            visited: Mapping identifiers already on the projection path.

        Returns:
            Dict of BrAPI field name to value.  Declared fields without a
            rule are present with an empty value.
        """
        schema = self.schema_for(mapping)
        rules = mapping.field_rules
        context = _RecordContext(record)
        path = visited | {mapping.id}
        result: dict[str, Any] = {}

        for name in [*schema.keys(), *(n for n in rules if n not in schema)]:
            rule = rules.get(name)
            if rule is not None and rule.hidden and not include_hidden:
                continue
            is_array = self._is_array(rule, schema.get(name))
            if rule is None:
                result[name] = coerce_cardinality(None, is_array)
                continue
            try:
                value = await self._evaluate(name, rule, context, mapping, is_array, path)
            except MappingCycleError as e:
                logger.warning(f"{e}; field left empty")
                value = None
            except Exception as e:
                logger.warning(
                    f"Field '{name}' of '{mapping.id}' (record {record.kind}:{record.id}) "
                    f"could not be projected: {e}"
                )
                value = None
            result[name] = coerce_cardinality(value, is_array)

        return result

    @staticmethod
    def _is_array(rule: FieldRule | None, field_def: FieldDefinition | None) -> bool | None:
        if rule is not None and rule.cardinality is not None:
            return rule.cardinality == "array"
        if field_def is not None:
            return field_def.is_array
        return None

    async def _evaluate(
        self,
        name: str,
        rule: FieldRule,
        context: _RecordContext,
        mapping: DatatypeMapping,
        is_array: bool | None,
        path: frozenset[str],
    ) -> Any:
        if isinstance(rule, DirectRule):
            return await self._direct(rule, context.record, is_array)
        if isinstance(rule, StaticRule):
            return copy.deepcopy(rule.value)
        if isinstance(rule, CustomRule):
            return self._resolver.resolve(rule.expression, context.data, rule.is_json)
        if isinstance(rule, SubMappingRule):
            return await self._submapping(name, rule, context, mapping, path)
        raise TypeError(f"Unsupported field rule: {rule!r}")

    async def _direct(self, rule: DirectRule, record: Record, is_array: bool | None) -> Any:
        if not record.has_field(rule.field):
            raise KeyError(f"backend field '{rule.field}' not found")
        if record.is_reference(rule.field):
            referenced = await self._store.load_references(record, rule.field)
            return [r.to_data() for r in referenced]
        value = record.get(rule.field)
        if is_array or isinstance(value, (list, dict)) or value is None:
            return value
        return value if isinstance(value, (int, float, bool)) else str(value)

    async def _submapping(
        self,
        name: str,
        rule: SubMappingRule,
        context: _RecordContext,
        mapping: DatatypeMapping,
        path: frozenset[str],
    ) -> list[dict[str, Any]]:
        target_id = mapping.submapping_target(name, rule)
        if target_id in path:
            raise MappingCycleError(
                f"Mapping cycle: '{mapping.id}' field '{name}' leads back to '{target_id}'"
            )
        target = self._registry.get(target_id)

        if rule.source is None:
            records = [context.record]
        elif rule.source == CUSTOM_SOURCE:
            ids = self._custom_ids(rule.expression or "", context.data)
            records = await self._store.load_many(target.record_kind, ids)
        else:
            if not context.record.is_reference(rule.source):
                raise KeyError(f"reference field '{rule.source}' not found")
            records = await self._store.load_references(context.record, rule.source)

        return [await self.project(r, target, visited=path) for r in records]

    def _custom_ids(self, expression: str, data: dict[str, Any]) -> list[str]:
        """Resolve a custom expression into a list of record identifiers."""
        text = self._resolver.substitute(expression, data).strip()
        if not text:
            return []
        try:
            value = json.loads(text)
        except json.JSONDecodeError:
            value = text
        if not isinstance(value, list):
            value = [value]
        ids: list[str] = []
        for item in value:
            if isinstance(item, dict):
                item = item.get("target_id", item.get("id"))
            if item is not None and item != "":
                ids.append(str(item))
        return ids
