"""SQL construction for repository search.

Filters become one ``WHERE`` over ``repositories`` plus a correlated
``EXISTS`` against ``registry_memberships``, so each repository appears once
however many registries or categories list it. Orderings always end with the
repository id, which makes every ordering total and lets one keyset predicate
serve both cursor and offset pagination.
"""

from __future__ import annotations

import calendar
import dataclasses
import datetime as dt
import typing as typ

from sqlalchemy import and_, exists, false, func, or_, select, true

from enhansome.store.storage import (
    MembershipCategory,
    RegistryMembership,
    RepositoryRecord,
)

from .errors import QueryTooComplexError
from .models import (
    CATEGORY_KEY_SEPARATOR,
    MAX_QUERY_LENGTH,
    Preset,
    SearchParams,
    SortOrder,
)

if typ.TYPE_CHECKING:
    from sqlalchemy import ColumnElement, Select

    from .cursor import Cursor, SortKey

LIKE_ESCAPE = "\\"
POPULAR_MIN_STARS = 1000


@dataclasses.dataclass(frozen=True, slots=True)
class ResolvedFilters:
    """Search filters after presets and clamping are applied."""

    registry: str | None = None
    category: str | None = None
    language: str | None = None
    min_stars: int | None = None
    archived: bool | None = None
    q: str | None = None
    updated_since: dt.datetime | None = None


def escape_like(text: str) -> str:
    r"""Escape ``LIKE`` wildcards so ``text`` only matches literally.

    Examples
    --------
    >>> escape_like("100%_done\\")
    '100\\%\\_done\\\\'

    """
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )


def months_ago(now: dt.datetime, months: int) -> dt.datetime:
    """Return midnight of the same calendar day ``months`` months before ``now``.

    The day is clamped to the length of the target month.
    """
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return dt.datetime(year, month, day, tzinfo=dt.UTC)


def _preset_defaults(
    preset: Preset | None, now: dt.datetime
) -> tuple[int | None, bool | None, dt.datetime | None]:
    midnight = now.astimezone(dt.UTC).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    match preset:
        case Preset.POPULAR:
            return (POPULAR_MIN_STARS, None, None)
        case Preset.FRESH:
            return (None, None, months_ago(now, 3))
        case Preset.ACTIVE:
            return (None, False, months_ago(now, 6))
        case Preset.TRENDING:
            return (None, None, midnight - dt.timedelta(days=7))
        case _:
            return (None, None, None)


def resolve_filters(params: SearchParams, *, now: dt.datetime) -> ResolvedFilters:
    """Apply the preset, clamp ``min_stars`` and validate ``q``.

    Raises
    ------
    QueryTooComplexError
        If ``q`` is longer than ``MAX_QUERY_LENGTH`` characters.

    """
    q = params.q or None
    if q is not None and len(q) > MAX_QUERY_LENGTH:
        raise QueryTooComplexError(len(q), MAX_QUERY_LENGTH)

    preset_stars, preset_archived, preset_since = _preset_defaults(
        None if params.preset is None else Preset(params.preset), now
    )
    min_stars = params.min_stars if params.min_stars is not None else preset_stars
    if min_stars is not None:
        min_stars = max(min_stars, 0)
    archived = params.archived if params.archived is not None else preset_archived
    updated_since = params.updated_since or preset_since

    return ResolvedFilters(
        registry=params.registry or None,
        category=params.category or None,
        language=params.language or None,
        min_stars=min_stars,
        archived=archived,
        q=q,
        updated_since=updated_since,
    )


def _category_clause(category: str) -> ColumnElement[bool]:
    registry, separator, label = category.partition(CATEGORY_KEY_SEPARATOR)
    in_category = exists().where(
        MembershipCategory.membership_id == RegistryMembership.id,
        MembershipCategory.category == (label if separator else category),
    )
    if separator:
        return and_(RegistryMembership.registry_name == registry, in_category)
    return in_category


def membership_clause(filters: ResolvedFilters) -> ColumnElement[bool]:
    """Return ``EXISTS`` over memberships matching the membership filters.

    Registry, category and the title half of ``q`` must hold for the same
    membership row.
    """
    conditions: list[ColumnElement[bool]] = [
        RegistryMembership.repository_id == RepositoryRecord.id
    ]
    if filters.registry is not None:
        conditions.append(RegistryMembership.registry_name == filters.registry)
    if filters.category is not None:
        conditions.append(_category_clause(filters.category))
    if filters.q is not None:
        pattern = f"%{escape_like(filters.q)}%"
        conditions.append(
            or_(
                RegistryMembership.title.ilike(pattern, escape=LIKE_ESCAPE),
                RepositoryRecord.description.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )
    return exists().where(*conditions)


def repository_clauses(filters: ResolvedFilters) -> list[ColumnElement[bool]]:
    """Return predicates on repository columns."""
    clauses: list[ColumnElement[bool]] = [membership_clause(filters)]
    if filters.language is not None:
        clauses.append(RepositoryRecord.language == filters.language)
    if filters.min_stars is not None:
        clauses.append(RepositoryRecord.stars >= filters.min_stars)
    # Omitting the flag means live repositories only.
    wants_archived = bool(filters.archived)
    clauses.append(RepositoryRecord.archived.is_(true() if wants_archived else false()))
    if filters.updated_since is not None:
        clauses.append(RepositoryRecord.last_commit >= filters.updated_since)
    return clauses


def count_query(filters: ResolvedFilters) -> Select[tuple[int]]:
    """Return the statement counting every matching repository."""
    return select(func.count(RepositoryRecord.id)).where(*repository_clauses(filters))


def _name_column(dialect: str) -> typ.Any:  # noqa: ANN401
    # SQLite compares with BINARY by default; PostgreSQL needs "C" for bytewise.
    if dialect == "postgresql":
        return RepositoryRecord.name.collate("C")
    return RepositoryRecord.name


def order_by(sort: SortOrder, dialect: str) -> list[typ.Any]:
    """Return the total ordering for ``sort``."""
    match sort:
        case SortOrder.STARS:
            return [RepositoryRecord.stars.desc(), RepositoryRecord.id.asc()]
        case SortOrder.NAME:
            return [_name_column(dialect).asc(), RepositoryRecord.id.asc()]
        case SortOrder.UPDATED:
            return [
                RepositoryRecord.last_commit.desc().nulls_last(),
                RepositoryRecord.id.asc(),
            ]


def sort_key(sort: SortOrder, row: RepositoryRecord) -> SortKey:
    """Return the value of ``row`` that ``sort`` orders on."""
    match sort:
        case SortOrder.STARS:
            return row.stars
        case SortOrder.NAME:
            return row.name
        case SortOrder.UPDATED:
            return row.last_commit


def after_clause(cursor: Cursor, dialect: str) -> ColumnElement[bool]:
    """Return the predicate selecting rows strictly after ``cursor``."""
    after_id = RepositoryRecord.id > cursor.id
    match cursor.sort:
        case SortOrder.STARS:
            stars = RepositoryRecord.stars
            return or_(stars < cursor.key, and_(stars == cursor.key, after_id))
        case SortOrder.NAME:
            name = _name_column(dialect)
            return or_(name > cursor.key, and_(name == cursor.key, after_id))
        case SortOrder.UPDATED:
            last_commit = RepositoryRecord.last_commit
            if cursor.key is None:
                return and_(last_commit.is_(None), after_id)
            return or_(
                last_commit < cursor.key,
                and_(last_commit == cursor.key, after_id),
                last_commit.is_(None),
            )


def page_query(
    filters: ResolvedFilters,
    sort: SortOrder,
    dialect: str,
    *,
    after: Cursor | None,
    limit: int,
) -> Select[tuple[RepositoryRecord]]:
    """Return the keyset page statement, fetching ``limit`` rows."""
    stmt = select(RepositoryRecord).where(*repository_clauses(filters))
    if after is not None:
        stmt = stmt.where(after_clause(after, dialect))
    return stmt.order_by(*order_by(sort, dialect)).limit(limit)


def anchor_query(
    filters: ResolvedFilters, sort: SortOrder, dialect: str, offset: int
) -> Select[tuple[RepositoryRecord]]:
    """Return the row just before ``offset`` in the filtered ordering."""
    return (
        select(RepositoryRecord)
        .where(*repository_clauses(filters))
        .order_by(*order_by(sort, dialect))
        .offset(offset - 1)
        .limit(1)
    )


def memberships_query(
    repository_ids: typ.Sequence[int], registry: str | None
) -> Select[typ.Any]:
    """Return membership rows with their categories for hydrating hits."""
    stmt = (
        select(
            RegistryMembership.repository_id,
            RegistryMembership.registry_name,
            RegistryMembership.title,
            MembershipCategory.category,
        )
        .outerjoin(
            MembershipCategory,
            MembershipCategory.membership_id == RegistryMembership.id,
        )
        .where(RegistryMembership.repository_id.in_(repository_ids))
        .order_by(
            RegistryMembership.repository_id,
            RegistryMembership.registry_name,
            RegistryMembership.position,
        )
    )
    if registry is not None:
        stmt = stmt.where(RegistryMembership.registry_name == registry)
    return stmt
