"""Registry archive download and extraction."""

from __future__ import annotations

from .client import ArchiveFetcher, HttpArchiveFetcher
from .config import DEFAULT_ARCHIVE_URL, ArchiveConfig
from .errors import ArchiveFetchError, ArchiveFormatError, ArchiveTransportError
from .reader import ArchiveEntry, read_archive

__all__ = [
    "DEFAULT_ARCHIVE_URL",
    "ArchiveConfig",
    "ArchiveEntry",
    "ArchiveFetchError",
    "ArchiveFetcher",
    "ArchiveFormatError",
    "ArchiveTransportError",
    "HttpArchiveFetcher",
    "read_archive",
]
