"""Search query errors.

Search requests either succeed in full or are rejected with one of these
errors; there are no partial responses.
"""

from __future__ import annotations


class SearchQueryError(ValueError):
    """Base class for rejected search requests."""


class QueryTooComplexError(SearchQueryError):
    """Raised when the free-text query exceeds the matcher's length bound."""

    def __init__(self, length: int, limit: int) -> None:
        """Record the offending and permitted query lengths."""
        self.length = length
        self.limit = limit
        super().__init__(
            f"search query is {length} characters; at most {limit} are allowed"
        )


class NegativePaginationError(SearchQueryError):
    """Raised when pagination values are negative."""

    def __init__(self, name: str) -> None:
        """Build the error for the named pagination parameter."""
        super().__init__(f"{name} must be non-negative")


class InvalidCursorError(SearchQueryError):
    """Raised when a cursor cannot be decoded or belongs to another sort."""

    @classmethod
    def malformed(cls) -> InvalidCursorError:
        """Return an error for cursors that do not decode."""
        return cls("cursor is malformed")

    @classmethod
    def sort_mismatch(cls, expected: str, actual: str) -> InvalidCursorError:
        """Return an error for a cursor issued under a different sort."""
        return cls(f"cursor was issued for sort {actual!r}, not {expected!r}")
