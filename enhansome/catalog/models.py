"""Typed registry document structures.

A registry document is the JSON published for one curated list. Its shape is
closed: sections hold items, items may hold children and an optional
repository reference. Decoding through these structs rejects anything else.
"""

from __future__ import annotations

import datetime as dt  # noqa: TC003
import typing as typ

import msgspec

from enhansome.common.slug import repo_slug
from enhansome.common.time import parse_timestamp

from .errors import RegistryParseError

NonNegativeInt = typ.Annotated[int, msgspec.Meta(ge=0)]


class RepoInfo(msgspec.Struct, kw_only=True):
    """Repository reference attached to a registry item.

    Attributes
    ----------
    owner : str
        GitHub owner or organisation.
    repo : str
        Repository name.
    stars : int
        Star count observed when the document was generated.
    language : str, optional
        Primary language reported by GitHub.
    last_commit : str, optional
        ISO-8601 timestamp of the latest commit. Empty strings mean unknown.
    archived : bool
        Whether the repository is archived upstream.

    """

    owner: str
    repo: str
    stars: NonNegativeInt = 0
    language: str | None = None
    last_commit: str | None = None
    archived: bool = False

    @property
    def slug(self) -> str:
        """Return the GitHub-style owner/name identifier."""
        return repo_slug(self.owner, self.repo)

    @property
    def last_commit_at(self) -> dt.datetime | None:
        """Return ``last_commit`` as an aware UTC datetime.

        Raises
        ------
        RegistryParseError
            If the timestamp is present but malformed.

        """
        try:
            return parse_timestamp(self.last_commit)
        except ValueError as exc:
            raise RegistryParseError.bad_timestamp(
                self.slug, self.last_commit or ""
            ) from exc


class RegistryItem(msgspec.Struct, kw_only=True):
    """Entry within a section; children stay nested under their parent."""

    title: str
    description: str | None = None
    children: list[RegistryItem] = msgspec.field(default_factory=list)
    repo_info: RepoInfo | None = None


class RegistrySection(msgspec.Struct, kw_only=True):
    """Titled group of items; the title becomes the category label."""

    title: str
    description: str | None = None
    items: list[RegistryItem] = msgspec.field(default_factory=list)


class RegistryMetadata(msgspec.Struct, kw_only=True):
    """Document-level description of the registry.

    Attributes
    ----------
    title
        Display title of the registry.
    source_repository
        ``owner/name`` of the upstream awesome list.
    source_repository_description
        Description of the upstream list.
    last_updated
        Timestamp text written by the document generator.

    """

    title: str
    source_repository: str = ""
    source_repository_description: str = ""
    last_updated: str = ""


class RegistryDocument(msgspec.Struct, kw_only=True):
    """Top-level registry document."""

    metadata: RegistryMetadata
    items: list[RegistrySection] = msgspec.field(default_factory=list)
