"""Command-line entry point for indexing and searching the catalog.

Usage:
    enhansome index                 # Refresh every registry from the archive
    enhansome stop                  # Mark the active run as stopped
    enhansome status                # Show the active or latest run
    enhansome history --limit 10    # List recent runs
    enhansome search --q orm --sort updated
    enhansome languages --registry go
    enhansome categories --registry go
    enhansome registries
    enhansome repository gin-gonic/gin

Environment variables:
    ENHANSOME_DATABASE_URL  - SQLAlchemy async URL (default: local SQLite file)
    ENHANSOME_LOG_LEVEL     - Log level (default: INFO)
    ENHANSOME_ARCHIVE_URL   - Registry archive location
"""

from __future__ import annotations

import asyncio
import os
import sys
import typing as typ

import msgspec
from cyclopts import App, Parameter
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from enhansome.archive.client import HttpArchiveFetcher
from enhansome.archive.config import ArchiveConfig
from enhansome.common.slug import parse_repo_slug
from enhansome.indexing.controller import DEFAULT_HISTORY_LIMIT, IndexingController
from enhansome.logging import configure_logging, get_logger, log_warning
from enhansome.search.errors import SearchQueryError
from enhansome.search.models import DEFAULT_LIMIT, Preset, SearchParams, SortOrder
from enhansome.search.service import SearchService
from enhansome.store.storage import IndexingStatus, TriggerSource, init_store

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///enhansome.db"

logger = get_logger(__name__)

app = App(
    name="enhansome",
    help="Index curated registries and search their repositories",
    version="0.1.0",
)

DatabaseUrl = typ.Annotated[str, Parameter(env_var="ENHANSOME_DATABASE_URL")]


def _setup_logging() -> None:
    raw = os.environ.get("ENHANSOME_LOG_LEVEL", "INFO")
    normalized, invalid = configure_logging(raw)
    if invalid:
        log_warning(
            logger,
            "Invalid ENHANSOME_LOG_LEVEL %r, falling back to %s",
            raw,
            normalized,
        )


def _emit(payload: object) -> None:
    """Print ``payload`` as indented JSON on stdout."""
    encoded = msgspec.json.format(msgspec.json.encode(payload), indent=2)
    print(encoded.decode("utf-8"))


async def _with_sessions[T](
    database_url: str,
    body: typ.Callable[[async_sessionmaker[AsyncSession]], typ.Awaitable[T]],
) -> T:
    engine = create_async_engine(database_url)
    try:
        await init_store(engine)
        return await body(async_sessionmaker(engine, expire_on_commit=False))
    finally:
        await engine.dispose()


def _run_controller[T](
    database_url: str,
    action: typ.Callable[[IndexingController], typ.Awaitable[T]],
) -> T:
    async def body(session_factory: async_sessionmaker[AsyncSession]) -> T:
        controller = IndexingController(
            session_factory, fetcher=HttpArchiveFetcher(ArchiveConfig.from_env())
        )
        try:
            return await action(controller)
        finally:
            await controller.aclose()

    return asyncio.run(_with_sessions(database_url, body))


@app.command
def index(
    *,
    database_url: DatabaseUrl = DEFAULT_DATABASE_URL,
    trigger_source: TriggerSource = TriggerSource.MANUAL,
    created_by: str | None = None,
    archive_url: str | None = None,
) -> int:
    """Run the indexing pipeline to completion.

    Args:
        database_url: SQLAlchemy async URL of the catalog database.
        trigger_source: Recorded origin of the run.
        created_by: Requester recorded in history.
        archive_url: Override for the configured archive location.

    Returns:
        0 when the run completed, 1 when it failed or was stopped, 2 when
        another run was already active.

    """
    _setup_logging()
    result = _run_controller(
        database_url,
        lambda controller: controller.run(
            trigger_source, created_by=created_by, archive_url=archive_url
        ),
    )
    _emit(result)
    if result.rejected:
        return 2
    if result.stopped or result.status is not IndexingStatus.COMPLETED:
        return 1
    return 0


@app.command
def stop(*, database_url: DatabaseUrl = DEFAULT_DATABASE_URL) -> int:
    """Mark the active indexing run as stopped.

    Args:
        database_url: SQLAlchemy async URL of the catalog database.

    """
    _setup_logging()
    _emit(_run_controller(database_url, lambda controller: controller.stop()))
    return 0


@app.command
def status(*, database_url: DatabaseUrl = DEFAULT_DATABASE_URL) -> int:
    """Show whether a run is active and the latest run.

    Args:
        database_url: SQLAlchemy async URL of the catalog database.

    """
    _setup_logging()
    _emit(_run_controller(database_url, lambda controller: controller.status()))
    return 0


@app.command
def history(
    *,
    database_url: DatabaseUrl = DEFAULT_DATABASE_URL,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> int:
    """List recent indexing runs, newest first.

    Args:
        database_url: SQLAlchemy async URL of the catalog database.
        limit: Maximum number of runs to show.

    """
    _setup_logging()
    _emit(_run_controller(database_url, lambda controller: controller.history(limit)))
    return 0


@app.command
def search(  # noqa: PLR0913
    *,
    database_url: DatabaseUrl = DEFAULT_DATABASE_URL,
    q: str | None = None,
    registry: str | None = None,
    category: str | None = None,
    language: str | None = None,
    min_stars: int | None = None,
    archived: bool | None = None,
    preset: Preset | None = None,
    sort: SortOrder = SortOrder.STARS,
    limit: int = DEFAULT_LIMIT,
    offset: int | None = None,
    cursor: str | None = None,
) -> int:
    """Search repositories listed by the indexed registries.

    Args:
        database_url: SQLAlchemy async URL of the catalog database.
        q: Case-insensitive text matched against titles and descriptions.
        registry: Exact registry name.
        category: Category label or ``registry::category`` key.
        language: Exact primary language.
        min_stars: Inclusive lower bound on stars.
        archived: Only archived (true) or only live (false) repositories.
        preset: Named filter bundle.
        sort: Result ordering.
        limit: Page size (at most 100).
        offset: Rows to skip.
        cursor: Continuation token from a previous page.

    Returns:
        0 on success, 2 when the request is rejected.

    """
    _setup_logging()
    params = SearchParams(
        q=q,
        registry=registry,
        category=category,
        language=language,
        min_stars=min_stars,
        archived=archived,
        preset=preset,
        sort=sort,
        limit=limit,
        offset=offset,
        cursor=cursor,
    )

    async def body(session_factory: async_sessionmaker[AsyncSession]) -> int:
        try:
            page = await SearchService(session_factory).search(params)
        except SearchQueryError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2
        _emit(page)
        return 0

    return asyncio.run(_with_sessions(database_url, body))


@app.command
def languages(
    *,
    database_url: DatabaseUrl = DEFAULT_DATABASE_URL,
    registry: str | None = None,
) -> int:
    """List languages with their live repository counts.

    Args:
        database_url: SQLAlchemy async URL of the catalog database.
        registry: Restrict counts to one registry.

    """
    _setup_logging()

    async def body(session_factory: async_sessionmaker[AsyncSession]) -> int:
        _emit(await SearchService(session_factory).list_languages(registry))
        return 0

    return asyncio.run(_with_sessions(database_url, body))


@app.command
def categories(
    *,
    database_url: DatabaseUrl = DEFAULT_DATABASE_URL,
    registry: str | None = None,
) -> int:
    """List registry categories with their repository counts.

    Args:
        database_url: SQLAlchemy async URL of the catalog database.
        registry: Restrict to one registry.

    """
    _setup_logging()

    async def body(session_factory: async_sessionmaker[AsyncSession]) -> int:
        _emit(await SearchService(session_factory).list_categories(registry))
        return 0

    return asyncio.run(_with_sessions(database_url, body))


@app.command
def repository(
    slug: str, /, *, database_url: DatabaseUrl = DEFAULT_DATABASE_URL
) -> int:
    """Show one listed repository with its registries and categories.

    Args:
        slug: Repository in ``owner/name`` form.
        database_url: SQLAlchemy async URL of the catalog database.

    Returns:
        0 when found, 1 when no registry lists the repository, 2 when the
        slug is malformed.

    """
    _setup_logging()
    try:
        owner, name = parse_repo_slug(slug)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    async def body(session_factory: async_sessionmaker[AsyncSession]) -> int:
        hit = await SearchService(session_factory).get_repository(owner, name)
        if hit is None:
            print(f"error: {slug} is not listed by any registry", file=sys.stderr)
            return 1
        _emit(hit)
        return 0

    return asyncio.run(_with_sessions(database_url, body))


@app.command
def registries(*, database_url: DatabaseUrl = DEFAULT_DATABASE_URL) -> int:
    """List every indexed registry with its cached totals.

    Args:
        database_url: SQLAlchemy async URL of the catalog database.

    """
    _setup_logging()

    async def body(session_factory: async_sessionmaker[AsyncSession]) -> int:
        _emit(await SearchService(session_factory).get_metadata())
        return 0

    return asyncio.run(_with_sessions(database_url, body))


def main() -> int:
    """Entry point for the CLI."""
    return app()


if __name__ == "__main__":
    sys.exit(main())
