"""Locate registry documents inside a downloaded archive.

The snapshot is a zip with a single top-level directory (the branch export)
holding ``repos/<owner>/<repo>/data.json`` for each registry. Other files are
ignored.
"""

from __future__ import annotations

import dataclasses
import io
import zipfile
import zlib
from pathlib import PurePosixPath

from enhansome.catalog.flatten import extract_registry_name

from .errors import ArchiveFormatError

_DOCUMENT_NAME = "data.json"
_REPOS_DIR = "repos"
_MEMBER_READ_ERRORS = (zipfile.BadZipFile, zlib.error, NotImplementedError, EOFError)


@dataclasses.dataclass(frozen=True, slots=True)
class ArchiveEntry:
    """One registry document found in the archive."""

    identifier: str
    registry_name: str
    payload: bytes


def _identifier_for(path: PurePosixPath) -> str | None:
    """Return ``owner/repo`` when ``path`` is a registry document."""
    parts = path.parts
    if path.name != _DOCUMENT_NAME or _REPOS_DIR not in parts:
        return None
    index = len(parts) - 1 - parts[::-1].index(_REPOS_DIR)
    tail = parts[index + 1 :]
    if len(tail) != 3:  # noqa: PLR2004 - owner, repo, data.json
        return None
    return f"{tail[0]}/{tail[1]}"


def read_archive(data: bytes) -> list[ArchiveEntry]:
    """Return registry documents from ``data`` in sorted path order.

    Raises
    ------
    ArchiveFormatError
        If ``data`` is not a zip file, has no ``repos/`` directory, or a
        registry document cannot be decompressed.

    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise ArchiveFormatError.not_a_zip() from exc

    with archive:
        names = sorted(info.filename for info in archive.infolist())
        if not any(_REPOS_DIR in PurePosixPath(name).parts for name in names):
            raise ArchiveFormatError.missing_repos_dir()

        entries: list[ArchiveEntry] = []
        for name in names:
            identifier = _identifier_for(PurePosixPath(name))
            if identifier is None:
                continue
            try:
                payload = archive.read(name)
            except _MEMBER_READ_ERRORS as exc:
                raise ArchiveFormatError.corrupt_member(name) from exc
            entries.append(
                ArchiveEntry(
                    identifier=identifier,
                    registry_name=extract_registry_name(identifier),
                    payload=payload,
                )
            )
    return entries
