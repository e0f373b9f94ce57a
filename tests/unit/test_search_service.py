"""Unit tests for filtered, sorted and paginated repository search."""

from __future__ import annotations

import datetime as dt
import typing as typ

import msgspec
import pytest
import pytest_asyncio
from sqlalchemy import select

from enhansome.catalog import decode_registry_document
from enhansome.common.time import utcnow
from enhansome.search import (
    MAX_LIMIT,
    MAX_QUERY_LENGTH,
    Cursor,
    InvalidCursorError,
    NegativePaginationError,
    Preset,
    QueryTooComplexError,
    SearchParams,
    SearchService,
    SortOrder,
    encode_cursor,
)
from enhansome.store import (
    CatalogStore,
    RepositoryAttributes,
    RepositoryRecord,
    upsert_repository,
)
from tests.helpers.registry_builders import (
    document,
    go_document,
    item,
    python_document,
    repo,
    section,
)

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from enhansome.search import SearchPage
    from tests.helpers.registry_builders import Document

BULK_SIZE = 120


async def _index(
    session_factory: async_sessionmaker[AsyncSession], name: str, payload: Document
) -> None:
    doc = decode_registry_document(msgspec.json.encode(payload))
    await CatalogStore(session_factory).index_registry(name, doc)


def _names(page: SearchPage) -> list[str]:
    return [hit.name for hit in page.data]


def _bulk_document(extra: typ.Sequence[dict[str, typ.Any]] = ()) -> Document:
    base = dt.datetime(2025, 1, 1, tzinfo=dt.UTC)

    def committed(i: int) -> str | None:
        if i % 7 == 0:
            return None
        return (base + dt.timedelta(hours=i % 30)).isoformat()

    items = [
        item(
            f"Repo {i:03d}",
            repo(
                "bulk",
                f"repo{i:03d}",
                stars=(i % 10) * 100,
                language="Go",
                last_commit=committed(i),
            ),
        )
        for i in range(BULK_SIZE)
    ]
    return document("Bulk", section("All", *items, *extra))


@pytest_asyncio.fixture
async def service(
    session_factory: async_sessionmaker[AsyncSession],
) -> SearchService:
    """Return a search service over the Go and Python registries."""
    await _index(session_factory, "go", go_document())
    await _index(session_factory, "python", python_document())
    return SearchService(session_factory)


@pytest_asyncio.fixture
async def bulk(
    session_factory: async_sessionmaker[AsyncSession],
) -> list[RepositoryRecord]:
    """Index a large registry with tied star counts and missing commits."""
    await _index(session_factory, "bulk", _bulk_document())
    async with session_factory() as session:
        return list((await session.scalars(select(RepositoryRecord))).all())


async def _walk(
    search: SearchService, sort: SortOrder, page_size: int
) -> tuple[list[int], int]:
    """Follow cursors to the end; return ids and the number of pages."""
    ids: list[int] = []
    cursor: str | None = None
    pages = 0
    while True:
        page = await search.search(
            SearchParams(registry="bulk", sort=sort, limit=page_size, cursor=cursor)
        )
        pages += 1
        ids.extend(hit.id for hit in page.data)
        assert page.total == BULK_SIZE
        if not page.has_more:
            assert page.next_cursor is None
            return ids, pages
        cursor = page.next_cursor


def _expected_order(rows: list[RepositoryRecord], sort: SortOrder) -> list[int]:
    match sort:
        case SortOrder.STARS:
            ordered = sorted(rows, key=lambda r: (-r.stars, r.id))
        case SortOrder.NAME:
            ordered = sorted(rows, key=lambda r: (r.name, r.id))
        case SortOrder.UPDATED:
            ordered = sorted(
                rows,
                key=lambda r: (
                    r.last_commit is None,
                    -(r.last_commit.timestamp() if r.last_commit else 0),
                    r.id,
                ),
            )
    return [row.id for row in ordered]


class TestScenario:
    """The Go and Python registries searched with the default filters."""

    @pytest.mark.asyncio
    async def test_default_search_excludes_archived(
        self, service: SearchService
    ) -> None:
        """Flask is archived and hidden; the rest sort by stars."""
        page = await service.search(SearchParams())

        assert _names(page) == ["gin", "django", "echo", "testify"]
        assert page.total == 4
        assert page.has_more is False
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_archived_true_returns_only_archived(
        self, service: SearchService
    ) -> None:
        """archived=True selects archived repositories only."""
        page = await service.search(SearchParams(archived=True))

        assert _names(page) == ["flask"]
        assert page.data[0].archived is True

    @pytest.mark.asyncio
    async def test_archived_false_matches_default(self, service: SearchService) -> None:
        """archived=False and omission agree."""
        explicit = await service.search(SearchParams(archived=False))

        assert _names(explicit) == ["gin", "django", "echo", "testify"]

    @pytest.mark.asyncio
    async def test_registry_and_min_stars(self, service: SearchService) -> None:
        """Filters are ANDed."""
        page = await service.search(SearchParams(registry="go", min_stars=5000))

        assert _names(page) == ["gin", "echo"]
        assert page.total == 2

    @pytest.mark.asyncio
    async def test_free_text_matches_title_or_description(
        self, service: SearchService
    ) -> None:
        """q is a case-insensitive substring over title and description."""
        framework = await service.search(SearchParams(q="FrameWork"))
        by_title = await service.search(SearchParams(q="testif"))

        assert _names(framework) == ["gin", "django", "echo"]
        assert _names(by_title) == ["testify"]

    @pytest.mark.asyncio
    async def test_free_text_reaches_item_descriptions(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """A description-only match is found through the listing item."""
        await _index(
            session_factory,
            "python",
            document(
                "Python",
                section(
                    "Web",
                    item(
                        "Flasky",
                        repo("p", "flasky", stars=5),
                        description="A micro framework",
                    ),
                ),
            ),
        )

        page = await SearchService(session_factory).search(SearchParams(q="framework"))

        assert _names(page) == ["flasky"]
        assert page.data[0].description == "A micro framework"

    @pytest.mark.asyncio
    async def test_language_and_updated_since(self, service: SearchService) -> None:
        """Exact language and a commit lower bound narrow the results."""
        python = await service.search(SearchParams(language="Python"))
        recent = await service.search(
            SearchParams(updated_since=dt.datetime(2025, 6, 1, tzinfo=dt.UTC))
        )
        lowercase = await service.search(SearchParams(language="python"))

        assert _names(python) == ["django"]
        assert _names(recent) == ["gin", "django", "echo"]
        assert lowercase.total == 0

    @pytest.mark.asyncio
    async def test_negative_min_stars_is_clamped(self, service: SearchService) -> None:
        """A negative lower bound behaves like zero."""
        page = await service.search(SearchParams(min_stars=-50, registry="go"))

        assert page.total == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("category", "expected"),
        [
            ("Testing", ["testify"]),
            ("Web Frameworks", ["gin", "django", "echo"]),
            ("go::Web Frameworks", ["gin", "echo"]),
            ("python::Testing", []),
            ("Missing", []),
        ],
    )
    async def test_category_filter(
        self, service: SearchService, category: str, expected: list[str]
    ) -> None:
        """Categories match exactly, optionally scoped to a registry."""
        page = await service.search(SearchParams(category=category))

        assert _names(page) == expected
        assert page.total == len(expected)

    @pytest.mark.asyncio
    async def test_hits_carry_membership_details(self, service: SearchService) -> None:
        """Each hit lists its registries, categories and display title."""
        page = await service.search(SearchParams(q="testify"))
        hit = page.data[0]

        assert hit.slug == "stretchr/testify"
        assert hit.title == "Testify"
        assert hit.registries == ("go",)
        assert hit.categories == ("Testing",)
        assert hit.language == "Go"
        assert hit.last_commit == dt.datetime(2024, 12, 24, tzinfo=dt.UTC)

    @pytest.mark.asyncio
    async def test_empty_result_is_not_an_error(self, service: SearchService) -> None:
        """No matches yields an empty page."""
        page = await service.search(SearchParams(registry="rust"))

        assert page.data == []
        assert page.total == 0
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_zero_limit_counts_without_rows(self, service: SearchService) -> None:
        """limit=0 still reports the full count."""
        page = await service.search(SearchParams(limit=0))

        assert page.data == []
        assert page.total == 4
        assert page.next_cursor is None


class TestFreeTextSafety:
    """Wildcard characters in q match literally."""

    @pytest_asyncio.fixture
    async def literal(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> SearchService:
        """Index titles containing wildcard characters."""
        await _index(
            session_factory,
            "misc",
            document(
                "Misc",
                section(
                    "Tools",
                    item("100% coverage", repo("a", "pct", stars=3)),
                    item("snake_case helpers", repo("a", "under", stars=2)),
                    item("plain tools", repo("a", "plain", stars=1)),
                    item("back\\slash", repo("a", "back", stars=0)),
                    item("Émile utilities", repo("a", "emile", stars=0)),
                ),
            ),
        )
        return SearchService(session_factory)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("q", "expected"),
        [
            ("%", ["pct"]),
            ("_", ["under"]),
            ("e_c", ["under"]),
            ("0%", ["pct"]),
            ("\\", ["back"]),
            ("%%", []),
        ],
    )
    async def test_wildcards_are_literal(
        self, literal: SearchService, q: str, expected: list[str]
    ) -> None:
        """LIKE metacharacters never widen the match."""
        page = await literal.search(SearchParams(q=q))

        assert _names(page) == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("q", "expected"),
        [
            ("Émile", ["emile"]),
            ("ÉMILE", ["emile"]),
            ("mile", ["emile"]),
            ("émile", []),
        ],
    )
    async def test_sqlite_folds_ascii_case_only(
        self, literal: SearchService, q: str, expected: list[str]
    ) -> None:
        """SQLite's lower() leaves non-ASCII letters untouched."""
        page = await literal.search(SearchParams(q=q))

        assert _names(page) == expected

    @pytest.mark.asyncio
    async def test_overlong_query_is_rejected(self, literal: SearchService) -> None:
        """Queries beyond the length bound fail instead of being truncated."""
        at_limit = await literal.search(SearchParams(q="x" * MAX_QUERY_LENGTH))

        with pytest.raises(QueryTooComplexError) as excinfo:
            await literal.search(SearchParams(q="x" * (MAX_QUERY_LENGTH + 1)))

        assert at_limit.total == 0
        assert excinfo.value.length == MAX_QUERY_LENGTH + 1
        assert excinfo.value.limit == MAX_QUERY_LENGTH


class TestPagination:
    """Cursor and offset pagination over a large registry."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sort", list(SortOrder))
    async def test_cursor_walk_visits_each_row_once(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bulk: list[RepositoryRecord],
        sort: SortOrder,
    ) -> None:
        """Every row appears exactly once, in sort order, over ceil(N/P) pages."""
        ids, pages = await _walk(SearchService(session_factory), sort, 7)

        assert ids == _expected_order(bulk, sort)
        assert pages == -(-BULK_SIZE // 7)

    @pytest.mark.asyncio
    async def test_offset_matches_cursor_order(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bulk: list[RepositoryRecord],
    ) -> None:
        """Offset pages are slices of the canonical ordering."""
        search = SearchService(session_factory)
        expected = _expected_order(bulk, SortOrder.UPDATED)

        middle = await search.search(
            SearchParams(registry="bulk", sort=SortOrder.UPDATED, offset=15, limit=10)
        )
        last = await search.search(
            SearchParams(registry="bulk", sort=SortOrder.UPDATED, offset=115, limit=10)
        )

        assert [hit.id for hit in middle.data] == expected[15:25]
        assert middle.has_more is True
        assert middle.next_cursor is not None
        assert [hit.id for hit in last.data] == expected[115:]
        assert last.has_more is False

    @pytest.mark.asyncio
    async def test_offset_past_end_is_empty(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bulk: list[RepositoryRecord],
    ) -> None:
        """An out-of-range offset returns no rows but the real total."""
        page = await SearchService(session_factory).search(
            SearchParams(registry="bulk", offset=BULK_SIZE, limit=5)
        )

        assert page.data == []
        assert page.total == BULK_SIZE
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_limit_is_capped(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bulk: list[RepositoryRecord],
    ) -> None:
        """Page sizes above the maximum are reduced to it."""
        page = await SearchService(session_factory).search(
            SearchParams(registry="bulk", limit=500)
        )

        assert len(page.data) == MAX_LIMIT
        assert page.has_more is True

    @pytest.mark.asyncio
    async def test_cursor_wins_over_offset(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bulk: list[RepositoryRecord],
    ) -> None:
        """When both are given the cursor decides the position."""
        search = SearchService(session_factory)
        first = await search.search(SearchParams(registry="bulk", limit=10))

        both = await search.search(
            SearchParams(
                registry="bulk", limit=10, cursor=first.next_cursor, offset=90
            )
        )

        assert [hit.id for hit in both.data] == _expected_order(bulk, SortOrder.STARS)[
            10:20
        ]

    @pytest.mark.asyncio
    async def test_rows_inserted_between_pages_are_not_duplicated(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bulk: list[RepositoryRecord],
    ) -> None:
        """A new row ahead of the cursor does not shift later pages."""
        search = SearchService(session_factory)
        first = await search.search(SearchParams(registry="bulk", limit=25))
        await _index(
            session_factory,
            "bulk",
            _bulk_document([item("Newcomer", repo("bulk", "newcomer", stars=10000))]),
        )

        seen = [hit.id for hit in first.data]
        cursor = first.next_cursor
        while cursor is not None:
            page = await search.search(
                SearchParams(registry="bulk", limit=25, cursor=cursor)
            )
            seen.extend(hit.id for hit in page.data)
            cursor = page.next_cursor

        assert seen == _expected_order(bulk, SortOrder.STARS)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("params", "name"),
        [
            (SearchParams(limit=-1), "limit"),
            (SearchParams(offset=-5), "offset"),
        ],
    )
    async def test_negative_pagination_is_rejected(
        self, service: SearchService, params: SearchParams, name: str
    ) -> None:
        """Negative limit or offset is a request error."""
        with pytest.raises(NegativePaginationError, match=f"{name} must be"):
            await service.search(params)

    @pytest.mark.asyncio
    async def test_cursor_from_other_sort_is_rejected(
        self, service: SearchService
    ) -> None:
        """Cursors only resume the sort they were issued for."""
        page = await service.search(SearchParams(limit=1))

        with pytest.raises(InvalidCursorError, match="issued for sort 'stars'"):
            await service.search(
                SearchParams(limit=1, sort=SortOrder.NAME, cursor=page.next_cursor)
            )

    @pytest.mark.asyncio
    async def test_malformed_cursor_is_rejected(self, service: SearchService) -> None:
        """Garbage tokens fail cleanly."""
        with pytest.raises(InvalidCursorError, match="malformed"):
            await service.search(SearchParams(cursor="not-a-cursor!"))

    @pytest.mark.asyncio
    async def test_cursor_past_end_is_empty(self, service: SearchService) -> None:
        """A cursor beyond the last row yields an empty page."""
        token = encode_cursor(Cursor(sort=SortOrder.STARS, key=-1, id=10**9))

        page = await service.search(SearchParams(cursor=token))

        assert page.data == []
        assert page.total == 4
        assert page.has_more is False


class TestSortOrders:
    """Name and updated orderings."""

    @pytest.mark.asyncio
    async def test_name_sort_is_case_sensitive(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Upper-case names sort before lower-case ones."""
        await _index(
            session_factory,
            "names",
            document(
                "Names",
                section(
                    "All",
                    item("b", repo("o", "beta")),
                    item("Z", repo("o", "Zeta")),
                    item("a", repo("o", "alpha")),
                ),
            ),
        )

        page = await SearchService(session_factory).search(
            SearchParams(sort=SortOrder.NAME)
        )

        assert _names(page) == ["Zeta", "alpha", "beta"]

    @pytest.mark.asyncio
    async def test_updated_sort_puts_unknown_commits_last(
        self, service: SearchService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Repositories without a commit date trail the rest."""
        await _index(
            session_factory,
            "extra",
            document("Extra", section("Misc", item("Undated", repo("o", "undated")))),
        )

        page = await service.search(SearchParams(sort=SortOrder.UPDATED))

        assert _names(page) == ["django", "gin", "echo", "testify", "undated"]


class TestPresets:
    """Named filter bundles relative to the current date."""

    @pytest_asyncio.fixture
    async def dated(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> SearchService:
        """Index repositories committed at known distances from today."""
        now = utcnow()

        def ago(days: int) -> str:
            return (now - dt.timedelta(days=days)).isoformat()

        await _index(
            session_factory,
            "dated",
            document(
                "Dated",
                section(
                    "All",
                    item("d2", repo("o", "d2", stars=500, last_commit=ago(2))),
                    item("d10", repo("o", "d10", stars=5000, last_commit=ago(10))),
                    item("d60", repo("o", "d60", stars=50, last_commit=ago(60))),
                    item("d200", repo("o", "d200", stars=9000, last_commit=ago(200))),
                    item(
                        "old-archived",
                        repo(
                            "o", "arch", stars=2000, last_commit=ago(5), archived=True
                        ),
                    ),
                ),
            ),
        )
        return SearchService(session_factory)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("preset", "expected"),
        [
            (Preset.POPULAR, ["d200", "d10"]),
            (Preset.FRESH, ["d10", "d2", "d60"]),
            (Preset.ACTIVE, ["d10", "d2", "d60"]),
            (Preset.TRENDING, ["d2"]),
        ],
    )
    async def test_presets(
        self, dated: SearchService, preset: Preset, expected: list[str]
    ) -> None:
        """Each preset applies its bundled filters."""
        page = await dated.search(SearchParams(preset=preset))

        assert _names(page) == expected

    @pytest.mark.asyncio
    async def test_explicit_filters_override_preset(
        self, dated: SearchService
    ) -> None:
        """Explicit values win over the preset's."""
        popular = await dated.search(
            SearchParams(preset=Preset.POPULAR, min_stars=6000)
        )
        archived_active = await dated.search(
            SearchParams(preset=Preset.ACTIVE, archived=True)
        )

        assert _names(popular) == ["d200"]
        assert _names(archived_active) == ["arch"]


class TestReadViews:
    """Aggregate views and lookups."""

    @pytest.mark.asyncio
    async def test_list_languages_counts_live_listed_repositories(
        self, service: SearchService
    ) -> None:
        """Archived repositories are not counted."""
        languages = await service.list_languages()
        python_only = await service.list_languages("python")

        assert [(lang.language, lang.count) for lang in languages] == [
            ("Go", 3),
            ("Python", 1),
        ]
        assert [(lang.language, lang.count) for lang in python_only] == [
            ("Python", 1)
        ]

    @pytest.mark.asyncio
    async def test_list_categories(self, service: SearchService) -> None:
        """Categories are grouped per registry, largest first."""
        categories = await service.list_categories()
        go_only = await service.list_categories("go")

        assert [(c.key, c.count) for c in categories] == [
            ("go::Web Frameworks", 2),
            ("go::Testing", 1),
            ("python::Web Frameworks", 2),
        ]
        assert [c.category for c in go_only] == ["Web Frameworks", "Testing"]

    @pytest.mark.asyncio
    async def test_metadata_views(self, service: SearchService) -> None:
        """Registry summaries expose cached totals."""
        summaries = await service.get_metadata()
        go = await service.get_registry("go")

        assert [s.name for s in summaries] == ["go", "python"]
        assert go is not None
        assert go.title == "Awesome Go"
        assert (go.total_items, go.total_stars) == (3, 60000)
        assert go.languages == ("Go",)
        assert await service.get_registry("rust") is None

    @pytest.mark.asyncio
    async def test_get_repository(
        self, service: SearchService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Lookups include archived repositories and skip unlisted ones."""
        async with session_factory() as session, session.begin():
            await upsert_repository(
                session, "lonely", "repo", RepositoryAttributes(stars=1)
            )

        flask = await service.get_repository("pallets", "flask")

        assert flask is not None
        assert flask.archived is True
        assert flask.registries == ("python",)
        assert await service.get_repository("lonely", "repo") is None
        assert await service.get_repository("nobody", "nothing") is None

    @pytest.mark.asyncio
    async def test_shared_repository_lists_every_registry(
        self, service: SearchService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """A repository in two registries appears once with both names."""
        await _index(
            session_factory,
            "awesome",
            document(
                "Awesome",
                section("Picks", item("Gin (picked)", repo("gin-gonic", "gin"))),
            ),
        )

        page = await service.search(SearchParams(q="gin"))
        scoped = await service.search(SearchParams(registry="go", q="gin"))

        assert page.total == 1
        hit = page.data[0]
        assert hit.registries == ("awesome", "go")
        assert hit.title == "Gin (picked)"
        assert hit.categories == ("Picks", "Web Frameworks")
        assert scoped.data[0].title == "Gin"
        assert scoped.data[0].registries == ("go",)
