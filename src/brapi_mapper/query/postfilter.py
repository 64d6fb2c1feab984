"""Post-filtering and pagination of projected BrAPI objects.

Filters the store cannot evaluate are applied here, after projection.  The
candidate set is the full, unpaginated store result, so pagination has to
happen after filtering to keep pages and counts coherent.

Usage:
    from brapi_mapper.query.postfilter import apply_and_paginate

    page_items, total = apply_and_paginate(objects, {"synonyms": ["Rice 64"]}, 0, 10)
"""

from collections.abc import Iterable
from typing import Any

from brapi_mapper.adapters.base import loose_equals


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def _field_matches(actual: Any, expected: Any) -> bool:
    """Match one object field against one filter value.

    A list filter needs one overlap with the field value(s); a scalar
    filter needs equality, or membership when the field is a list.
    """
    actual_values = actual if isinstance(actual, list) else [actual]
    expected_values = expected if isinstance(expected, list) else [expected]
    return any(loose_equals(a, e) for a in actual_values for e in expected_values)


def _field_values(item: dict[str, Any], field: str) -> tuple[bool, Any]:
    """Return ``(found, value)`` for *field* of *item*.

    ``studies.studyDbId`` reads ``studyDbId`` from every object in
    ``studies``; the path is missing when no object carries it.
    """
    if field in item:
        return True, item[field]
    if "." not in field:
        return False, None
    head, rest = field.split(".", 1)
    if head not in item:
        return False, None
    children = item[head] if isinstance(item[head], list) else [item[head]]
    values: list[Any] = []
    for child in children:
        if not isinstance(child, dict):
            continue
        found, value = _field_values(child, rest)
        if not found:
            continue
        values.extend(value if isinstance(value, list) else [value])
    return bool(values), values


def matches_filters(item: dict[str, Any], post_filters: dict[str, Any]) -> bool:
    """Return True when *item* passes every post-filter.

    Empty filter values are skipped; a field missing from *item* fails.
    Dotted fields address identifiers of nested objects.
    """
    for field, expected in post_filters.items():
        if _is_empty(expected):
            continue
        found, actual = _field_values(item, field)
        if not found:
            return False
        if not _field_matches(actual, expected):
            return False
    return True


def apply_and_paginate(
    items: Iterable[dict[str, Any]],
    post_filters: dict[str, Any],
    page: int = 0,
    page_size: int | None = None,
) -> tuple[list[dict[str, Any]], int]:
    """Filter *items* and return ``(page_items, total_count)``.

    Every matching item counts toward ``total_count``; only the items of
    the requested page are kept.  When *page_size* is None everything that
    matches is returned.
    """
    if not page_size:
        matched = [item for item in items if matches_filters(item, post_filters)]
        return matched, len(matched)

    page_items: list[dict[str, Any]] = []
    total_count = 0
    start = page * page_size
    end = start + page_size

    for item in items:
        if not matches_filters(item, post_filters):
            continue
        if start <= total_count < end:
            page_items.append(item)
        total_count += 1

    return page_items, total_count
