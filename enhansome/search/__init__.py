"""Filterable, paginated search over the catalog store."""

from __future__ import annotations

from .cursor import Cursor, decode_cursor, encode_cursor
from .errors import (
    InvalidCursorError,
    NegativePaginationError,
    QueryTooComplexError,
    SearchQueryError,
)
from .models import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    MAX_QUERY_LENGTH,
    CategoryCount,
    LanguageCount,
    Preset,
    RegistrySummary,
    SearchHit,
    SearchPage,
    SearchParams,
    SortOrder,
)
from .query import escape_like
from .service import SearchService

__all__ = [
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "MAX_QUERY_LENGTH",
    "CategoryCount",
    "Cursor",
    "InvalidCursorError",
    "LanguageCount",
    "NegativePaginationError",
    "Preset",
    "QueryTooComplexError",
    "RegistrySummary",
    "SearchHit",
    "SearchPage",
    "SearchParams",
    "SearchQueryError",
    "SearchService",
    "SortOrder",
    "decode_cursor",
    "encode_cursor",
    "escape_like",
]
