"""Archive transport errors."""

from __future__ import annotations


class ArchiveTransportError(RuntimeError):
    """Base class for failures obtaining or opening the registry archive."""


class ArchiveFetchError(ArchiveTransportError):
    """Raised when the archive cannot be downloaded."""

    def __init__(
        self, message: str, *, url: str, status_code: int | None = None
    ) -> None:
        """Initialise with the failing URL and optional HTTP status code."""
        self.url = url
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, url: str, status_code: int) -> ArchiveFetchError:
        """Return an error for non-2xx HTTP responses."""
        return cls(
            f"Failed to fetch archive: HTTP {status_code}",
            url=url,
            status_code=status_code,
        )

    @classmethod
    def transport(cls, url: str, exc: Exception) -> ArchiveFetchError:
        """Return an error for connection-level failures."""
        return cls(f"Failed to fetch archive: {exc}", url=url)


class ArchiveFormatError(ArchiveTransportError):
    """Raised when the archive payload is not a usable registry snapshot."""

    @classmethod
    def not_a_zip(cls) -> ArchiveFormatError:
        """Return an error for payloads that are not zip files."""
        return cls("Archive is not a valid zip file")

    @classmethod
    def missing_repos_dir(cls) -> ArchiveFormatError:
        """Return an error when no ``repos/`` directory is present."""
        return cls("Archive contains no repos directory")

    @classmethod
    def corrupt_member(cls, name: str) -> ArchiveFormatError:
        """Return an error for a member that cannot be decompressed."""
        return cls(f"Archive member is corrupt: {name}")
