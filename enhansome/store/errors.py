"""Store errors."""

from __future__ import annotations


class TimezoneAwareRequiredError(ValueError):
    """Raised when a naive datetime is bound to a UTC column."""

    @classmethod
    def for_column(cls) -> TimezoneAwareRequiredError:
        """Return an error for naive datetimes written to the store."""
        return cls("datetime values written to the store must be timezone-aware")


class UnsupportedDialectError(RuntimeError):
    """Raised when the store is bound to a database without upsert support."""

    def __init__(self, dialect: str) -> None:
        """Record the offending dialect name."""
        self.dialect = dialect
        super().__init__(f"unsupported database dialect for upserts: {dialect}")
