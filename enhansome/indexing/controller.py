"""Indexing job controller.

The controller runs the refresh pipeline: claim the durable gate, download
the archive, write each registry in its own transaction, then record the
outcome. Only one run can be active across every process sharing the
database; a second request is turned away immediately rather than queued.

Usage
-----
>>> controller = IndexingController(session_factory)
>>> result = await controller.run(TriggerSource.MANUAL, created_by="admin")
>>> result.success, result.failed

Or submit and poll:

>>> job = await controller.submit(TriggerSource.SCHEDULED)
>>> (await controller.status()).is_running
True
>>> result = await job.wait()

"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

from sqlalchemy.exc import SQLAlchemyError

from enhansome.archive.client import HttpArchiveFetcher
from enhansome.archive.errors import ArchiveTransportError
from enhansome.archive.reader import read_archive
from enhansome.catalog.errors import RegistryParseError
from enhansome.catalog.loader import decode_registry_document
from enhansome.common.time import utcnow
from enhansome.store.service import CatalogStore
from enhansome.store.storage import IndexingStatus, TriggerSource

from .models import (
    IndexingRunView,
    IndexingStatusView,
    IndexResult,
    StopResult,
)
from .observability import IndexingEventLogger
from .state import (
    acquire_run,
    finish_run,
    list_runs,
    load_status,
    record_progress,
    record_total,
    stop_running_run,
)

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from enhansome.archive.client import ArchiveFetcher
    from enhansome.archive.reader import ArchiveEntry

    SessionFactory = async_sessionmaker[AsyncSession]

DEFAULT_HISTORY_LIMIT = 50


@dataclasses.dataclass(slots=True)
class _RunTally:
    success: int = 0
    failed: int = 0
    errors: list[str] = dataclasses.field(default_factory=list)


class IndexingJob:
    """Handle for a submitted indexing run.

    A rejected submission yields a handle that is already resolved with
    :meth:`IndexResult.already_running`.
    """

    def __init__(
        self, run_id: int | None, future: asyncio.Future[IndexResult]
    ) -> None:
        """Wrap the future that resolves with the run's result."""
        self.run_id = run_id
        self._future = future

    @classmethod
    def resolved(cls, result: IndexResult) -> IndexingJob:
        """Return a handle whose result is already known."""
        future: asyncio.Future[IndexResult] = (
            asyncio.get_running_loop().create_future()
        )
        future.set_result(result)
        return cls(result.run_id, future)

    @property
    def accepted(self) -> bool:
        """Return ``True`` when the submission claimed the gate."""
        return self.run_id is not None

    def done(self) -> bool:
        """Return ``True`` once the run has finished."""
        return self._future.done()

    async def wait(self) -> IndexResult:
        """Wait for the run to finish and return its result."""
        return await asyncio.shield(self._future)


class IndexingController:
    """Coordinate indexing runs against the catalog store.

    Parameters
    ----------
    session_factory
        Factory producing async sessions bound to the catalog database.
    fetcher
        Archive fetcher; defaults to :class:`HttpArchiveFetcher`.
    store
        Catalog writer; defaults to a :class:`CatalogStore` over
        ``session_factory``.
    event_logger
        Structured event sink; defaults to :class:`IndexingEventLogger`.
    prune_orphans
        Whether completed runs delete repositories no registry lists.

    """

    def __init__(  # noqa: PLR0913
        self,
        session_factory: SessionFactory | typ.Callable[[], AsyncSession],
        *,
        fetcher: ArchiveFetcher | None = None,
        store: CatalogStore | None = None,
        event_logger: IndexingEventLogger | None = None,
        prune_orphans: bool = True,
    ) -> None:
        """Store collaborators used by each run."""
        self._session_factory = session_factory
        self._fetcher = fetcher or HttpArchiveFetcher()
        self._store = store or CatalogStore(session_factory)
        self._events = event_logger or IndexingEventLogger()
        self._prune_orphans = prune_orphans
        self._tasks: set[asyncio.Task[IndexResult]] = set()

    async def run(
        self,
        trigger_source: TriggerSource = TriggerSource.MANUAL,
        *,
        created_by: str | None = None,
        archive_url: str | None = None,
    ) -> IndexResult:
        """Run the pipeline to completion and return its result.

        Parameters
        ----------
        trigger_source
            Whether the run was requested by a person or a schedule.
        created_by
            Optional identifier of the requester, kept in history.
        archive_url
            Override for the configured archive location.

        Returns
        -------
        IndexResult
            :meth:`IndexResult.already_running` when another run is active,
            otherwise the counts and errors of this run. Archive failures are
            reported in the result rather than raised.

        """
        run_id = await self._acquire(trigger_source, created_by)
        if run_id is None:
            return IndexResult.already_running()
        return await self._execute(run_id, archive_url)

    async def submit(
        self,
        trigger_source: TriggerSource = TriggerSource.MANUAL,
        *,
        created_by: str | None = None,
        archive_url: str | None = None,
    ) -> IndexingJob:
        """Claim the gate and run the pipeline in a background task.

        The gate is claimed before this coroutine returns, so callers can
        rely on :meth:`status` reporting the run straight away.
        """
        run_id = await self._acquire(trigger_source, created_by)
        if run_id is None:
            return IndexingJob.resolved(IndexResult.already_running())
        task = asyncio.create_task(
            self._execute(run_id, archive_url), name=f"indexing-run-{run_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return IndexingJob(run_id, task)

    async def stop(self) -> StopResult:
        """Force the active run to ``failed``.

        The worker executing the run notices before its next registry and
        exits without overwriting the stopped record.
        """
        now = utcnow()
        async with self._session_factory() as session, session.begin():
            run_id = await stop_running_run(session, now=now)
        if run_id is None:
            return StopResult.not_running(now)
        self._events.log_run_stopped(run_id=run_id, observed_by="stop")
        return StopResult.stopped(run_id, now)

    async def status(self) -> IndexingStatusView:
        """Return whether a run is active and the latest run, if any."""
        async with self._session_factory() as session:
            state, run = await load_status(session)
        if state is None or run is None:
            return IndexingStatusView(is_running=False)
        return IndexingStatusView(
            is_running=state.status == IndexingStatus.RUNNING,
            current=IndexingRunView.from_record(run),
        )

    async def history(
        self, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> list[IndexingRunView]:
        """Return up to ``limit`` runs, newest first."""
        async with self._session_factory() as session:
            rows = await list_runs(session, limit)
        return [IndexingRunView.from_record(row) for row in rows]

    async def aclose(self) -> None:
        """Release the archive fetcher."""
        await self._fetcher.aclose()

    async def _acquire(
        self, trigger_source: TriggerSource, created_by: str | None
    ) -> int | None:
        async with self._session_factory() as session:
            run_id = await acquire_run(
                session, trigger_source=trigger_source, created_by=created_by
            )
            if run_id is None:
                await session.rollback()
                self._events.log_run_rejected(trigger_source=trigger_source)
                return None
            await session.commit()
        self._events.log_run_started(
            run_id=run_id, trigger_source=trigger_source, created_by=created_by
        )
        return run_id

    async def _execute(self, run_id: int, archive_url: str | None) -> IndexResult:
        started = utcnow()
        try:
            entries = read_archive(await self._fetcher.fetch(archive_url))
        except ArchiveTransportError as exc:
            message = str(exc)
            await self._fail(run_id, exc, started, message=message)
            return IndexResult.run_failed(run_id, message)
        except Exception as exc:  # noqa: BLE001 - the gate must be released
            message = f"Failed to read archive: {exc}"
            await self._fail(run_id, exc, started, message=message)
            return IndexResult.run_failed(run_id, message)

        try:
            return await self._process(run_id, entries, started)
        except Exception as exc:
            await self._fail(run_id, exc, started, message=str(exc))
            raise

    async def _fail(
        self, run_id: int, exc: Exception, started: dt.datetime, *, message: str
    ) -> None:
        await self._finish(
            run_id, IndexingStatus.FAILED, _RunTally(), error_message=message
        )
        self._events.log_run_failed(
            run_id=run_id, error=exc, duration=utcnow() - started
        )

    async def _process(
        self, run_id: int, entries: list[ArchiveEntry], started: dt.datetime
    ) -> IndexResult:
        tally = _RunTally()
        async with self._session_factory() as session, session.begin():
            active = await record_total(session, run_id, len(entries))
        if not active:
            return self._abandoned(run_id, tally)

        for processed, entry in enumerate(entries, start=1):
            async with self._session_factory() as session, session.begin():
                active = await record_progress(
                    session, run_id, entry.registry_name, processed
                )
            if not active:
                return self._abandoned(run_id, tally)
            await self._index_entry(run_id, entry, tally)

        pruned = 0
        if self._prune_orphans:
            pruned = await self._store.prune_orphaned_repositories()
        if not await self._finish(run_id, IndexingStatus.COMPLETED, tally):
            return self._abandoned(run_id, tally)

        self._events.log_run_completed(
            run_id=run_id,
            success=tally.success,
            failed=tally.failed,
            pruned=pruned,
            duration=utcnow() - started,
        )
        return IndexResult(
            success=tally.success,
            failed=tally.failed,
            errors=tuple(tally.errors),
            run_id=run_id,
            status=IndexingStatus.COMPLETED,
            pruned=pruned,
        )

    async def _index_entry(
        self, run_id: int, entry: ArchiveEntry, tally: _RunTally
    ) -> None:
        try:
            document = decode_registry_document(entry.payload)
            result = await self._store.index_registry(entry.registry_name, document)
        except (RegistryParseError, SQLAlchemyError) as exc:
            tally.failed += 1
            tally.errors.append(f"{entry.registry_name}: {exc}")
            self._events.log_registry_failed(
                run_id=run_id, registry=entry.registry_name, error=exc
            )
            return
        tally.success += 1
        self._events.log_registry_completed(run_id=run_id, result=result)

    async def _finish(
        self,
        run_id: int,
        status: IndexingStatus,
        tally: _RunTally,
        *,
        error_message: str | None = None,
    ) -> bool:
        async with self._session_factory() as session, session.begin():
            return await finish_run(
                session,
                run_id,
                status=status,
                success=tally.success,
                failed=tally.failed,
                errors=tally.errors,
                error_message=error_message,
            )

    def _abandoned(self, run_id: int, tally: _RunTally) -> IndexResult:
        self._events.log_run_stopped(run_id=run_id, observed_by="worker")
        return IndexResult(
            success=tally.success,
            failed=tally.failed,
            errors=tuple(tally.errors),
            run_id=run_id,
            status=IndexingStatus.FAILED,
            stopped=True,
        )
