"""Dramatiq actor for scheduled and cross-process indexing runs.

Usage
-----
Queue a scheduled refresh:

>>> index_registries_job.send(database_url="postgresql+asyncpg://...")

Queue a manual refresh against a mirror:

>>> index_registries_job.send(
...     database_url="postgresql+asyncpg://...",
...     trigger_source="manual",
...     created_by="ops",
...     archive_url="https://mirror.example/registry.zip",
... )

"""

from __future__ import annotations

import asyncio
import threading
import typing as typ

import dramatiq
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from enhansome.archive.client import HttpArchiveFetcher
from enhansome.archive.config import ArchiveConfig
from enhansome.indexing._broker import ensure_broker_configured
from enhansome.indexing.controller import IndexingController
from enhansome.store.storage import TriggerSource, init_store

type SessionFactory = async_sessionmaker[AsyncSession]

_ENGINE_CACHE: dict[str, AsyncEngine] = {}
_SESSION_FACTORY_CACHE: dict[str, SessionFactory] = {}
_CACHE_LOCK = threading.Lock()


def _get_or_create_engine(database_url: str) -> AsyncEngine:
    """Return the cached engine for *database_url*, creating it if absent."""
    with _CACHE_LOCK:
        if database_url not in _ENGINE_CACHE:
            _ENGINE_CACHE[database_url] = create_async_engine(database_url)
        return _ENGINE_CACHE[database_url]


def _get_or_create_session_factory(database_url: str) -> SessionFactory:
    """Return the cached session factory for *database_url*."""
    engine = _get_or_create_engine(database_url)
    with _CACHE_LOCK:
        if database_url not in _SESSION_FACTORY_CACHE:
            _SESSION_FACTORY_CACHE[database_url] = async_sessionmaker(
                engine, expire_on_commit=False
            )
        return _SESSION_FACTORY_CACHE[database_url]


async def _run_index(
    database_url: str,
    trigger_source: TriggerSource,
    created_by: str | None,
    archive_url: str | None,
) -> dict[str, typ.Any]:
    engine = _get_or_create_engine(database_url)
    await init_store(engine)
    controller = IndexingController(
        _get_or_create_session_factory(database_url),
        fetcher=HttpArchiveFetcher(ArchiveConfig.from_env()),
    )
    try:
        result = await controller.run(
            trigger_source, created_by=created_by, archive_url=archive_url
        )
    finally:
        await controller.aclose()
        # asyncio.run closes the loop; pooled connections must not outlive it.
        await engine.dispose()
    return {
        "run_id": result.run_id,
        "status": None if result.status is None else result.status.value,
        "success": result.success,
        "failed": result.failed,
        "errors": list(result.errors),
        "pruned": result.pruned,
    }


@dramatiq.actor
def index_registries_job(
    database_url: str,
    *,
    trigger_source: str = TriggerSource.SCHEDULED.value,
    created_by: str | None = None,
    archive_url: str | None = None,
) -> dict[str, typ.Any]:
    """Dramatiq actor running one indexing pipeline to completion.

    Parameters
    ----------
    database_url
        SQLAlchemy async URL of the catalog database.
    trigger_source
        ``"scheduled"`` (default) or ``"manual"``.
    created_by
        Optional requester recorded in history.
    archive_url
        Override for ``ENHANSOME_ARCHIVE_URL``.

    Returns
    -------
    dict[str, Any]
        Serialisable summary of the run. ``run_id`` is ``None`` when another
        run already held the gate.

    Raises
    ------
    ValueError
        If ``trigger_source`` is not a known trigger.

    """
    ensure_broker_configured()
    source = TriggerSource(trigger_source)
    return asyncio.run(_run_index(database_url, source, created_by, archive_url))
