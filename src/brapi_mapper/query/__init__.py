"""Query translation, fetching, and post-filter pagination.

Usage:
    from brapi_mapper.query import QueryTranslator, BrapiDataFetcher
    from brapi_mapper.query import apply_and_paginate, split_filters
"""

from brapi_mapper.query.fetcher import BrapiData, BrapiDataFetcher, split_filters
from brapi_mapper.query.postfilter import apply_and_paginate, matches_filters
from brapi_mapper.query.translator import NO_MATCH, QueryTranslator, TranslatedQuery

__all__ = [
    "BrapiData",
    "BrapiDataFetcher",
    "split_filters",
    "apply_and_paginate",
    "matches_filters",
    "NO_MATCH",
    "QueryTranslator",
    "TranslatedQuery",
]
