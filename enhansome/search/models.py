"""Request and response types for the search engine."""

from __future__ import annotations

import dataclasses
import datetime as dt  # noqa: TC003
import enum

from enhansome.common.slug import repo_slug

DEFAULT_LIMIT = 20
MAX_LIMIT = 100
MAX_QUERY_LENGTH = 1000
CATEGORY_KEY_SEPARATOR = "::"


class SortOrder(enum.StrEnum):
    """Supported result orderings; ties always break on repository id."""

    STARS = "stars"
    NAME = "name"
    UPDATED = "updated"


class Preset(enum.StrEnum):
    """Named filter bundles offered to browsing clients."""

    POPULAR = "popular"
    FRESH = "fresh"
    ACTIVE = "active"
    TRENDING = "trending"


@dataclasses.dataclass(frozen=True, slots=True)
class SearchParams:
    """Filters, ordering and pagination for one search request.

    Attributes
    ----------
    registry
        Exact registry name.
    category
        Exact category label, or ``registry::category`` to scope it.
    language
        Exact primary language.
    min_stars
        Inclusive lower bound on stars. Negative values are clamped to zero.
    archived
        ``None`` excludes archived repositories, ``True`` returns only
        archived ones and ``False`` only live ones.
    q
        Case-insensitive substring matched against the display title or the
        repository description. Wildcard characters match literally.
    updated_since
        Lower bound on the latest commit timestamp.
    preset
        Named filter bundle; explicit filters win over its values.
    sort
        Result ordering.
    limit
        Page size; defaults to 20 and is capped at 100.
    offset
        Rows to skip. Ignored when ``cursor`` is given.
    cursor
        Continuation token from a previous page with the same sort.

    """

    registry: str | None = None
    category: str | None = None
    language: str | None = None
    min_stars: int | None = None
    archived: bool | None = None
    q: str | None = None
    updated_since: dt.datetime | None = None
    preset: Preset | None = None
    sort: SortOrder = SortOrder.STARS
    limit: int = DEFAULT_LIMIT
    offset: int | None = None
    cursor: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class SearchHit:
    """One repository with the registries and categories listing it."""

    id: int
    owner: str
    name: str
    title: str
    description: str | None
    stars: int
    language: str | None
    last_commit: dt.datetime | None
    archived: bool
    registries: tuple[str, ...]
    categories: tuple[str, ...]

    @property
    def slug(self) -> str:
        """Return the ``owner/name`` identifier."""
        return repo_slug(self.owner, self.name)


@dataclasses.dataclass(frozen=True, slots=True)
class SearchPage:
    """A page of hits plus the full filtered count."""

    data: list[SearchHit]
    total: int
    has_more: bool
    next_cursor: str | None = None

    @classmethod
    def empty(cls, total: int) -> SearchPage:
        """Return a page past the end of the result set."""
        return cls(data=[], total=total, has_more=False)


@dataclasses.dataclass(frozen=True, slots=True)
class LanguageCount:
    """Number of live repositories using a language."""

    language: str
    count: int


@dataclasses.dataclass(frozen=True, slots=True)
class CategoryCount:
    """Number of repositories listed under one registry category."""

    registry: str
    category: str
    count: int

    @property
    def key(self) -> str:
        """Return the composite ``registry::category`` filter key."""
        return f"{self.registry}{CATEGORY_KEY_SEPARATOR}{self.category}"


@dataclasses.dataclass(frozen=True, slots=True)
class RegistrySummary:
    """Descriptive metadata and cached totals of one registry."""

    name: str
    title: str
    description: str
    source_repository: str
    last_updated: str
    refreshed_at: dt.datetime
    total_items: int
    total_stars: int
    languages: tuple[str, ...]
    latest_commit: dt.datetime | None
