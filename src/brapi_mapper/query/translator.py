"""Translation of BrAPI request parameters into store filters.

``QueryTranslator.translate()`` reads filters from path parameters, the
query string, and (for search calls) the JSON body, then splits them into
filters the store can evaluate and post-filters applied after projection.

Lookup order for a search field ``germplasmDbId``:

1. query string: exact name, plural (``germplasmDbIds``), singular
2. JSON body: exact name, plural, singular
3. JSON body, ignoring case (reported as a warning)

Body keys such as ``studyNames`` on a field typed ``Study`` are resolved
through the ``Study`` mapping into the identifiers of matching studies;
no match yields the sentinel ``["-1"]`` so the search returns nothing.
The identifiers filter the backend reference field behind ``studies`` when
there is one, and the projected ``studies.studyDbId`` values otherwise.

Unknown parameters are reported as warnings, never as errors.

Usage:
    from brapi_mapper.query.translator import QueryTranslator

    translator = QueryTranslator(settings, registry, fetcher)
    query = await translator.translate(
        "/germplasm", "get", {}, {"germplasmName": "IR64"}, None, mapping, schema
    )
    query.pushable_filters  # {'name': 'IR64'}
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from brapi_mapper.adapters.base import ID_FIELD
from brapi_mapper.config.models import BrapiSettings
from brapi_mapper.envelope import clean_page, clean_page_size
from brapi_mapper.errors import NotFoundError
from brapi_mapper.mapping.inflector import name_variants, singular
from brapi_mapper.mapping.models import DatatypeMapping, DirectRule, lower_first
from brapi_mapper.mapping.registry import MappingRegistry
from brapi_mapper.query.fetcher import BrapiDataFetcher, split_filters
from brapi_mapper.schema.models import BASE_TYPES, CallDefinition, FieldDefinition

logger = logging.getLogger(__name__)

# Output-control parameters never treated as filters
CONTROL_PARAMETERS: frozenset[str] = frozenset({"page", "pageSize", "Authorization"})

# Identifier list that matches no record
NO_MATCH: list[str] = ["-1"]


class TranslatedQuery(BaseModel):
    """Store filters, post-filters, and pagination for one request."""

    pushable_filters: dict[str, Any] = Field(default_factory=dict)
    post_filters: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    page: int = 0
    page_size: int = 1
    single_record: bool = False


class ReferenceMatch(BaseModel):
    """Referenced records matched by ``<refType><SubField>`` filters.

    ``record_ids`` are backend identifiers, ``object_ids`` the values of
    the referenced datatype's ``identifier`` field once projected.
    """

    record_ids: list[str]
    object_ids: list[str]
    identifier: str


def route_reference_filters(
    mapping: DatatypeMapping,
    references: dict[str, ReferenceMatch],
    pushable: dict[str, Any],
    post: dict[str, Any],
    filtering: str = "store",
) -> None:
    """Add resolved reference filters to the store or post-filters.

    A field read from a backend reference field is filtered in the store
    on the referenced identifiers.  Otherwise the post-filter matches the
    identifiers of the projected sub-objects (``studies.studyDbId``).
    """
    for field_name, match in references.items():
        backend_field = "" if filtering == "brapi" else mapping.reference_field_for(field_name)
        if backend_field:
            pushable[backend_field] = match.record_ids
        elif isinstance(mapping.field_rules.get(field_name), DirectRule):
            post[f"{field_name}.{ID_FIELD}"] = match.record_ids
        else:
            post[f"{field_name}.{match.identifier}"] = match.object_ids


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def is_search_call(call: str) -> bool:
    """``/search/...`` calls and the older ``/...-search`` calls."""
    return "search" in call


class QueryTranslator:
    """Turn request parameters into a ``TranslatedQuery``.

    Args:
        settings: Page size defaults and limits.
        registry: Mappings of referenced datatypes.
        fetcher: Used to resolve reference sub-field filters.
    """

    def __init__(
        self,
        settings: BrapiSettings,
        registry: MappingRegistry,
        fetcher: BrapiDataFetcher,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._fetcher = fetcher

    async def translate(
        self,
        call: str,
        method: str,
        path_params: dict[str, Any],
        query_params: dict[str, Any],
        json_body: dict[str, Any] | None,
        mapping: DatatypeMapping,
        field_schema: dict[str, FieldDefinition],
        call_definition: CallDefinition | None = None,
        filtering: str = "store",
    ) -> TranslatedQuery:
        """Translate one request.

        Args:
            call: Call path (``/search/germplasm``).
            method: Lower-case HTTP method.
            path_params: Path placeholders (object identifiers).
            query_params: Query string parameters.
            json_body: Decoded JSON body of search calls.
            mapping: Mapping of the call's datatype.
            field_schema: Declared fields of the datatype.
            call_definition: Declared call parameters, if any.
            filtering: ``"brapi"`` post-filters everything.

        Returns:
            ``TranslatedQuery``; bad filter values never raise.
        """
        warnings: list[str] = []
        references: dict[str, ReferenceMatch] = {}
        consumed_query: set[str] = set()
        body = json_body if isinstance(json_body, dict) else {}
        path_filters = {k: v for k, v in (path_params or {}).items() if not _is_empty(v)}

        if path_filters:
            brapi_filters = dict(path_filters)
            page, page_size, single_record = 0, 1, True
        else:
            single_record = False
            brapi_filters = {}
            page, page_size = self._pagination(call, query_params, body)
            consumed_query.update(CONTROL_PARAMETERS & set(query_params))

            if is_search_call(call):
                consumed_body: set[str] = set()
                for field_name in field_schema:
                    value = self._find_value(
                        field_name, query_params, body, consumed_query, consumed_body, warnings
                    )
                    if value is not None:
                        brapi_filters[field_name] = value
                await self._reference_filters(
                    mapping, field_schema, body, consumed_body, references, warnings
                )
                for field_name in references:
                    brapi_filters.pop(field_name, None)
                for key in body:
                    if key not in consumed_body and key not in CONTROL_PARAMETERS:
                        warnings.append(f"Unsupported filter '{key}' ignored.")

            # Without a declared parameter list, schema fields are the parameters
            if call_definition is not None:
                declared = call_definition.query_parameters(method)
            else:
                declared = list(field_schema)
            for name in declared:
                value = query_params.get(name)
                if _is_empty(value):
                    continue
                consumed_query.add(name)
                brapi_filters.setdefault(name, value)

        for key in query_params:
            if key not in consumed_query and key not in CONTROL_PARAMETERS:
                warnings.append(f"Unsupported query filter '{key}' ignored.")

        pushable, post = split_filters(mapping, brapi_filters, filtering)
        route_reference_filters(mapping, references, pushable, post, filtering)
        return TranslatedQuery(
            pushable_filters=pushable,
            post_filters=post,
            warnings=warnings,
            page=page,
            page_size=page_size,
            single_record=single_record,
        )

    def _pagination(
        self, call: str, query_params: dict[str, Any], body: dict[str, Any]
    ) -> tuple[int, int]:
        page_value = query_params.get("page")
        size_value = query_params.get("pageSize")
        if is_search_call(call):
            if page_value is None:
                page_value = body.get("page")
            if size_value is None:
                size_value = body.get("pageSize")
        page_size = clean_page_size(
            size_value, self._settings.page_size, self._settings.page_size_max
        )
        return clean_page(page_value), page_size

    @staticmethod
    def _find_value(
        field_name: str,
        query_params: dict[str, Any],
        body: dict[str, Any],
        consumed_query: set[str],
        consumed_body: set[str],
        warnings: list[str],
    ) -> Any:
        """Look a schema field up in the query string, then in the body."""
        variants = name_variants(field_name)

        for name in variants:
            if not _is_empty(query_params.get(name)):
                consumed_query.add(name)
                return query_params[name]

        for name in variants:
            if not _is_empty(body.get(name)):
                consumed_body.add(name)
                return body[name]

        lowered = {v.lower() for v in variants}
        for key, value in body.items():
            if key in consumed_body or key.lower() not in lowered or _is_empty(value):
                continue
            consumed_body.add(key)
            warnings.append(f"Filter '{key}' matched field '{field_name}' ignoring case.")
            return value
        return None

    async def _reference_filters(
        self,
        mapping: DatatypeMapping,
        field_schema: dict[str, FieldDefinition],
        body: dict[str, Any],
        consumed_body: set[str],
        references: dict[str, ReferenceMatch],
        warnings: list[str],
    ) -> None:
        """Resolve ``<refType><SubField>`` body keys into identifier filters."""
        mapping_id = mapping.mapping_id

        for field_name, field_def in field_schema.items():
            ref_type = field_def.base_type
            if ref_type in BASE_TYPES or ref_type == mapping_id.datatype:
                continue
            prefix = lower_first(ref_type)
            sub_filters: dict[str, Any] = {}
            for key, value in body.items():
                if key in consumed_body or not key.startswith(prefix) or len(key) == len(prefix):
                    continue
                if _is_empty(value):
                    consumed_body.add(key)
                    continue
                sub_filters[singular(key)] = value
                consumed_body.add(key)
            if not sub_filters:
                continue

            try:
                ref_mapping = self._registry.get_for_datatype(
                    mapping_id.version, mapping_id.release, ref_type
                )
            except NotFoundError:
                warnings.append(
                    f"Filters {sorted(sub_filters)} ignored: no mapping for '{ref_type}'."
                )
                continue

            found = await self._fetcher.fetch_by_brapi_filters(
                ref_mapping, sub_filters, include_hidden=True
            )
            object_ids = [
                str(entity[ref_mapping.brapi_identifier])
                for entity in found.entities
                if entity.get(ref_mapping.brapi_identifier) is not None
            ]
            logger.debug(
                f"Reference filter {sub_filters} on '{field_name}' matched {len(found.record_ids)} records"
            )
            references[field_name] = ReferenceMatch(
                record_ids=found.record_ids or list(NO_MATCH),
                object_ids=object_ids or list(NO_MATCH),
                identifier=ref_mapping.brapi_identifier,
            )
