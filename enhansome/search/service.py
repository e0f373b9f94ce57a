"""Read-only search over the catalog store.

The service never writes and never waits on an indexing run; queries see
whatever snapshot the database exposes when they execute.
"""

from __future__ import annotations

import typing as typ

from sqlalchemy import exists, false, func, select

from enhansome.common.time import utcnow
from enhansome.store.storage import (
    MembershipCategory,
    RegistryMembership,
    RegistryMetadataRecord,
    RepositoryRecord,
)

from .cursor import Cursor, decode_cursor, encode_cursor
from .errors import NegativePaginationError
from .models import (
    MAX_LIMIT,
    CategoryCount,
    LanguageCount,
    RegistrySummary,
    SearchHit,
    SearchPage,
    SearchParams,
    SortOrder,
)
from .query import (
    anchor_query,
    count_query,
    memberships_query,
    page_query,
    resolve_filters,
    sort_key,
)

if typ.TYPE_CHECKING:
    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from .query import ResolvedFilters

    SessionFactory = async_sessionmaker[AsyncSession]


def _validate_pagination(params: SearchParams) -> int:
    """Return the effective page size, rejecting negative values."""
    if params.limit < 0:
        raise NegativePaginationError("limit")
    if params.offset is not None and params.offset < 0:
        raise NegativePaginationError("offset")
    return min(params.limit, MAX_LIMIT)


def _to_summary(record: RegistryMetadataRecord) -> RegistrySummary:
    return RegistrySummary(
        name=record.registry_name,
        title=record.title,
        description=record.description,
        source_repository=record.source_repository,
        last_updated=record.last_updated,
        refreshed_at=record.refreshed_at,
        total_items=record.total_items,
        total_stars=record.total_stars,
        languages=tuple(record.languages or ()),
        latest_commit=record.latest_commit,
    )


class SearchService:
    """Filter, sort and paginate repositories listed by any registry.

    Parameters
    ----------
    session_factory
        Factory producing async sessions bound to the catalog database.

    """

    def __init__(
        self, session_factory: SessionFactory | typ.Callable[[], AsyncSession]
    ) -> None:
        """Store the session factory used for each query."""
        self._session_factory = session_factory

    async def search(self, params: SearchParams) -> SearchPage:
        """Return one page of repositories matching ``params``.

        Parameters
        ----------
        params
            Filters, sort and pagination. ``cursor`` takes precedence over
            ``offset``.

        Returns
        -------
        SearchPage
            Matching repositories in sort order with the full filtered count.
            An offset or cursor beyond the last row yields an empty page.

        Raises
        ------
        NegativePaginationError
            If ``limit`` or ``offset`` is negative.
        QueryTooComplexError
            If ``q`` exceeds the maximum query length.
        InvalidCursorError
            If ``cursor`` is malformed or was issued for another sort.

        """
        limit = _validate_pagination(params)
        sort = SortOrder(params.sort)
        filters = resolve_filters(params, now=utcnow())
        after = (
            decode_cursor(params.cursor, expected_sort=sort)
            if params.cursor
            else None
        )

        async with self._session_factory() as session:
            dialect = session.get_bind().dialect.name
            total = int(await session.scalar(count_query(filters)) or 0)

            if after is None and params.offset:
                anchor = await session.scalar(
                    anchor_query(filters, sort, dialect, params.offset)
                )
                if anchor is None:
                    return SearchPage.empty(total)
                after = Cursor(sort=sort, key=sort_key(sort, anchor), id=anchor.id)

            # One extra row tells whether another page follows.
            stmt = page_query(filters, sort, dialect, after=after, limit=limit + 1)
            rows = list((await session.scalars(stmt)).all())
            has_more = len(rows) > limit
            rows = rows[:limit]
            hits = await self._hydrate(session, rows, filters)

        if params.cursor is None and params.offset is not None:
            has_more = params.offset + len(hits) < total
        next_cursor = None
        if has_more and rows:
            last = rows[-1]
            next_cursor = encode_cursor(
                Cursor(sort=sort, key=sort_key(sort, last), id=last.id)
            )
        return SearchPage(
            data=hits, total=total, has_more=has_more, next_cursor=next_cursor
        )

    async def list_languages(
        self, registry: str | None = None
    ) -> list[LanguageCount]:
        """Return languages with their live repository counts, most used first."""
        count = func.count(RepositoryRecord.id)
        stmt = (
            select(RepositoryRecord.language, count)
            .where(
                RepositoryRecord.language.is_not(None),
                RepositoryRecord.archived.is_(false()),
                self._listed_in(registry),
            )
            .group_by(RepositoryRecord.language)
            .order_by(count.desc(), RepositoryRecord.language)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [LanguageCount(language=row[0], count=int(row[1])) for row in rows]

    async def list_categories(
        self, registry: str | None = None
    ) -> list[CategoryCount]:
        """Return categories per registry with their repository counts."""
        count = func.count(RegistryMembership.repository_id)
        stmt = (
            select(RegistryMembership.registry_name, MembershipCategory.category, count)
            .join(
                MembershipCategory,
                MembershipCategory.membership_id == RegistryMembership.id,
            )
            .group_by(RegistryMembership.registry_name, MembershipCategory.category)
            .order_by(
                RegistryMembership.registry_name,
                count.desc(),
                MembershipCategory.category,
            )
        )
        if registry is not None:
            stmt = stmt.where(RegistryMembership.registry_name == registry)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [
            CategoryCount(registry=row[0], category=row[1], count=int(row[2]))
            for row in rows
        ]

    async def get_metadata(self) -> list[RegistrySummary]:
        """Return every registry's metadata ordered by name."""
        async with self._session_factory() as session:
            records = (
                await session.scalars(
                    select(RegistryMetadataRecord).order_by(
                        RegistryMetadataRecord.registry_name
                    )
                )
            ).all()
        return [_to_summary(record) for record in records]

    async def get_registry(self, name: str) -> RegistrySummary | None:
        """Return one registry's metadata, or ``None`` when unknown."""
        async with self._session_factory() as session:
            record = await session.get(RegistryMetadataRecord, name)
        return None if record is None else _to_summary(record)

    async def get_repository(self, owner: str, name: str) -> SearchHit | None:
        """Return a repository by ``owner``/``name``, archived or not.

        Returns ``None`` for unknown repositories and for repositories no
        registry lists.
        """
        async with self._session_factory() as session:
            row = await session.scalar(
                select(RepositoryRecord).where(
                    RepositoryRecord.owner == owner, RepositoryRecord.name == name
                )
            )
            if row is None:
                return None
            hits = await self._hydrate(session, [row], None)
        return hits[0] if hits else None

    @staticmethod
    def _listed_in(registry: str | None) -> ColumnElement[bool]:
        conditions = [RegistryMembership.repository_id == RepositoryRecord.id]
        if registry is not None:
            conditions.append(RegistryMembership.registry_name == registry)
        return exists().where(*conditions)

    @staticmethod
    async def _hydrate(
        session: AsyncSession,
        rows: typ.Sequence[RepositoryRecord],
        filters: ResolvedFilters | None,
    ) -> list[SearchHit]:
        """Attach registries, categories and a display title to each row.

        Rows no membership lists are dropped.
        """
        if not rows:
            return []
        registry = None if filters is None else filters.registry
        titles: dict[int, str] = {}
        registries: dict[int, dict[str, None]] = {}
        categories: dict[int, set[str]] = {}
        result = await session.execute(
            memberships_query([row.id for row in rows], registry)
        )
        for repository_id, registry_name, title, category in result.all():
            titles.setdefault(repository_id, title)
            registries.setdefault(repository_id, {})[registry_name] = None
            if category is not None:
                categories.setdefault(repository_id, set()).add(category)

        return [
            SearchHit(
                id=row.id,
                owner=row.owner,
                name=row.name,
                title=titles[row.id],
                description=row.description,
                stars=row.stars,
                language=row.language,
                last_commit=row.last_commit,
                archived=row.archived,
                registries=tuple(registries[row.id]),
                categories=tuple(sorted(categories.get(row.id, ()))),
            )
            for row in rows
            if row.id in titles
        ]
