"""Durable indexing gate and run bookkeeping.

The ``indexing_state`` row is the only concurrency control: a run starts by
flipping it from any non-running status to ``running`` with a conditional
``UPDATE``, so two workers racing on different processes or hosts cannot both
win. Every later write to a run is also conditional on the run still being
``running``; a run that was stopped externally sees zero affected rows and
leaves the stopped record alone.
"""

from __future__ import annotations

import typing as typ

from sqlalchemy import Update, select, update

from enhansome.common.time import utcnow
from enhansome.store.storage import (
    INDEXING_STATE_ID,
    IndexingRunRecord,
    IndexingStateRecord,
    IndexingStatus,
    TriggerSource,
)

from .models import MANUAL_STOP_MESSAGE

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession


def _rowcount(result: object) -> int:
    return getattr(result, "rowcount", 0) or 0


async def acquire_run(
    session: AsyncSession,
    *,
    trigger_source: TriggerSource,
    created_by: str | None = None,
) -> int | None:
    """Claim the gate and insert a history row; return the new run id.

    Returns ``None`` when another run holds the gate. The caller must then
    roll back so the inserted history row does not survive.
    """
    now = utcnow()
    claimed = await session.execute(
        update(IndexingStateRecord)
        .where(
            IndexingStateRecord.id == INDEXING_STATE_ID,
            IndexingStateRecord.status != IndexingStatus.RUNNING.value,
        )
        .values(status=IndexingStatus.RUNNING.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    run = IndexingRunRecord(
        trigger_source=trigger_source.value,
        status=IndexingStatus.RUNNING.value,
        started_at=now,
        created_by=created_by,
        errors=[],
    )
    session.add(run)
    await session.flush()
    if _rowcount(claimed) != 1:
        return None

    await session.execute(
        update(IndexingStateRecord)
        .where(IndexingStateRecord.id == INDEXING_STATE_ID)
        .values(run_id=run.id)
        .execution_options(synchronize_session=False)
    )
    return run.id


def _while_running(run_id: int) -> Update:
    return (
        update(IndexingRunRecord)
        .where(
            IndexingRunRecord.id == run_id,
            IndexingRunRecord.status == IndexingStatus.RUNNING.value,
        )
        .execution_options(synchronize_session=False)
    )


async def _touch_state(session: AsyncSession, run_id: int) -> None:
    await session.execute(
        update(IndexingStateRecord)
        .where(
            IndexingStateRecord.id == INDEXING_STATE_ID,
            IndexingStateRecord.run_id == run_id,
        )
        .values(updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )


async def record_total(session: AsyncSession, run_id: int, total: int) -> bool:
    """Record how many registries the archive holds."""
    result = await session.execute(
        _while_running(run_id).values(total_registries=total)
    )
    return _rowcount(result) == 1


async def record_progress(
    session: AsyncSession, run_id: int, registry_name: str, processed: int
) -> bool:
    """Record the registry being processed.

    Returns ``False`` when the run is no longer ``running``.
    """
    result = await session.execute(
        _while_running(run_id).values(
            current_registry=registry_name, processed_registries=processed
        )
    )
    if _rowcount(result) != 1:
        return False
    await _touch_state(session, run_id)
    return True


async def finish_run(  # noqa: PLR0913
    session: AsyncSession,
    run_id: int,
    *,
    status: IndexingStatus,
    success: int = 0,
    failed: int = 0,
    errors: typ.Sequence[str] = (),
    error_message: str | None = None,
) -> bool:
    """Move a running run and the gate to a terminal status.

    Returns ``False`` when the run was already stopped; nothing is written in
    that case, so the stopped record and any newer run are left intact.
    """
    now = utcnow()
    result = await session.execute(
        _while_running(run_id).values(
            status=status.value,
            completed_at=now,
            current_registry=None,
            success_count=success,
            failed_count=failed,
            errors=list(errors),
            error_message=error_message,
        )
    )
    if _rowcount(result) != 1:
        return False
    await session.execute(
        update(IndexingStateRecord)
        .where(
            IndexingStateRecord.id == INDEXING_STATE_ID,
            IndexingStateRecord.run_id == run_id,
        )
        .values(status=status.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return True


async def stop_running_run(
    session: AsyncSession, *, now: dt.datetime
) -> int | None:
    """Force the active run to ``failed``; return its id or ``None``."""
    state = await session.get(IndexingStateRecord, INDEXING_STATE_ID)
    if state is None or state.run_id is None:
        return None
    run_id = state.run_id
    result = await session.execute(
        _while_running(run_id).values(
            status=IndexingStatus.FAILED.value,
            completed_at=now,
            current_registry=None,
            error_message=MANUAL_STOP_MESSAGE,
        )
    )
    if _rowcount(result) != 1:
        return None
    await session.execute(
        update(IndexingStateRecord)
        .where(
            IndexingStateRecord.id == INDEXING_STATE_ID,
            IndexingStateRecord.run_id == run_id,
        )
        .values(status=IndexingStatus.FAILED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return run_id


async def load_status(
    session: AsyncSession,
) -> tuple[IndexingStateRecord | None, IndexingRunRecord | None]:
    """Return the gate row and the run it points at."""
    state = await session.get(IndexingStateRecord, INDEXING_STATE_ID)
    if state is None or state.run_id is None:
        return (state, None)
    return (state, await session.get(IndexingRunRecord, state.run_id))


async def list_runs(session: AsyncSession, limit: int) -> list[IndexingRunRecord]:
    """Return up to ``limit`` runs, newest first."""
    if limit <= 0:
        return []
    rows = await session.scalars(
        select(IndexingRunRecord)
        .order_by(IndexingRunRecord.started_at.desc(), IndexingRunRecord.id.desc())
        .limit(limit)
    )
    return list(rows.all())
