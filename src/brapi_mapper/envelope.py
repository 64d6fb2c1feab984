"""BrAPI response envelope helpers.

Every response has the shape::

    {
        "metadata": {
            "status": [{"message": "...", "messageType": "INFO"}],
            "pagination": {"pageSize": 10, "currentPage": 0,
                           "totalCount": 42, "totalPages": 5},
            "datafiles": []
        },
        "result": {...}
    }
"""

import math
from typing import Any

DEFAULT_STATUS_MESSAGE = "Request accepted, response successful"
MESSAGE_TYPES = ("INFO", "WARNING", "ERROR", "DEBUG")


def clean_page_size(value: Any, default: int, maximum: int | None = None) -> int:
    """Return an allowed page size.

    Missing, unparsable, zero, or negative values fall back to *default*;
    values above *maximum* are limited to it.

    Examples:
        >>> clean_page_size(None, 10, 1000)
        10
        >>> clean_page_size("5000", 10, 1000)
        1000
    """
    try:
        page_size = int(value)
    except (TypeError, ValueError):
        page_size = default
    if page_size < 1:
        page_size = default
    elif maximum and page_size > maximum:
        page_size = maximum
    return page_size


def clean_page(value: Any) -> int:
    """Return a zero-based page index (invalid or negative values -> 0)."""
    try:
        page = int(value)
    except (TypeError, ValueError):
        return 0
    return max(page, 0)


def status_entry(message: str, message_type: str = "INFO") -> dict[str, str]:
    """Build one ``metadata.status`` entry."""
    if message_type not in MESSAGE_TYPES:
        raise ValueError(f"Unknown message type: {message_type}")
    return {"message": message, "messageType": message_type}


def generate_metadata(
    page_size: int,
    page: int = 0,
    total_count: int = 1,
    status: list[dict[str, str]] | None = None,
    datafiles: list[Any] | None = None,
    total_pages: int | None = None,
) -> dict[str, Any]:
    """Build the ``metadata`` block.

    ``totalPages`` is computed from *total_count* and *page_size* unless
    given.  ``currentPage`` is clamped to ``[0, totalPages - 1]``.

    Example:
        >>> generate_metadata(2, page=5, total_count=3)["pagination"]
        {'pageSize': 2, 'currentPage': 1, 'totalCount': 3, 'totalPages': 2}
    """
    page_size = max(int(page_size), 1)
    total_count = max(int(total_count), 0)
    if not total_pages:
        total_pages = math.ceil(total_count / page_size)
    if page >= total_pages:
        page = total_pages - 1
    if page < 0:
        page = 0

    return {
        "status": status if status is not None else [status_entry(DEFAULT_STATUS_MESSAGE)],
        "pagination": {
            "pageSize": page_size,
            "currentPage": page,
            "totalCount": total_count,
            "totalPages": total_pages,
        },
        "datafiles": datafiles or [],
    }


def build_envelope(metadata: dict[str, Any], result: Any = None) -> dict[str, Any]:
    """Combine metadata and an optional result into a response body."""
    body: dict[str, Any] = {"metadata": metadata}
    if result is not None:
        body["result"] = result
    return body


def error_envelope(message: str, page_size: int = 1) -> dict[str, Any]:
    """Build an envelope carrying a single ERROR status entry."""
    metadata = generate_metadata(
        page_size, total_count=0, status=[status_entry(message, "ERROR")]
    )
    return build_envelope(metadata)
