"""Errors raised while decoding registry documents."""

from __future__ import annotations


class RegistryParseError(ValueError):
    """Raised when one registry document does not match the document model.

    The indexing controller records these per registry and carries on with the
    rest of the archive, so the message should stand on its own in a run's
    error list.
    """

    def __init__(self, reason: str, *, registry: str | None = None) -> None:
        """Capture the failure reason and, when known, the registry name."""
        self.reason = reason
        self.registry = registry
        super().__init__(reason)

    @classmethod
    def invalid_json(cls, detail: object) -> RegistryParseError:
        """Return an error for payloads that are not valid JSON."""
        return cls(f"invalid JSON: {detail}")

    @classmethod
    def schema_mismatch(cls, detail: object) -> RegistryParseError:
        """Return an error for JSON that fails document validation."""
        return cls(f"document validation failed: {detail}")

    @classmethod
    def bad_timestamp(cls, slug: str, value: str) -> RegistryParseError:
        """Return an error for an unparseable ``last_commit`` value."""
        return cls(f"repository {slug} has invalid last_commit {value!r}")
