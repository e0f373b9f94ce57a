"""Result and view types returned by the indexing controller."""

from __future__ import annotations

import dataclasses
import datetime as dt  # noqa: TC003
import enum
import typing as typ

from enhansome.store.storage import IndexingStatus, TriggerSource

if typ.TYPE_CHECKING:
    from enhansome.store.storage import IndexingRunRecord

ALREADY_RUNNING_MESSAGE = "Indexing already in progress"
MANUAL_STOP_MESSAGE = "Indexing was manually stopped"


@dataclasses.dataclass(frozen=True, slots=True)
class IndexResult:
    """Outcome of one indexing request.

    Attributes
    ----------
    success
        Registries written successfully.
    failed
        Registries that failed to parse or persist.
    errors
        ``"<registry>: <message>"`` entries in processing order, or a single
        run-level message when the run never reached the registries.
    run_id
        History row of the run; ``None`` when the request was rejected.
    status
        Terminal status of the run; ``None`` when the request was rejected.
    stopped
        Whether the run was stopped before it finished.
    pruned
        Repositories deleted because no registry lists them any more.

    """

    success: int
    failed: int
    errors: tuple[str, ...] = ()
    run_id: int | None = None
    status: IndexingStatus | None = None
    stopped: bool = False
    pruned: int = 0

    @property
    def rejected(self) -> bool:
        """Return ``True`` when another run held the gate."""
        return self.run_id is None

    @classmethod
    def already_running(cls) -> IndexResult:
        """Return the result for a request made while a run is active."""
        return cls(success=0, failed=0, errors=(ALREADY_RUNNING_MESSAGE,))

    @classmethod
    def run_failed(cls, run_id: int, message: str) -> IndexResult:
        """Return the result for a run that failed before any registry."""
        return cls(
            success=0,
            failed=0,
            errors=(message,),
            run_id=run_id,
            status=IndexingStatus.FAILED,
        )


class StopOutcome(enum.StrEnum):
    """Outcome of a stop request."""

    STOPPED = "stopped"
    NOT_RUNNING = "not_running"


@dataclasses.dataclass(frozen=True, slots=True)
class StopResult:
    """Outcome of :meth:`IndexingController.stop`."""

    status: StopOutcome
    message: str
    timestamp: dt.datetime
    run_id: int | None = None

    @classmethod
    def stopped(cls, run_id: int, timestamp: dt.datetime) -> StopResult:
        """Return the result for a run that was forced to ``failed``."""
        return cls(
            status=StopOutcome.STOPPED,
            message="Indexing stopped successfully",
            timestamp=timestamp,
            run_id=run_id,
        )

    @classmethod
    def not_running(cls, timestamp: dt.datetime) -> StopResult:
        """Return the result when there was nothing to stop."""
        return cls(
            status=StopOutcome.NOT_RUNNING,
            message="No indexing job is currently running",
            timestamp=timestamp,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class IndexingRunView:
    """Read-only snapshot of an indexing history row."""

    id: int
    trigger_source: TriggerSource
    status: IndexingStatus
    started_at: dt.datetime
    completed_at: dt.datetime | None
    total_registries: int
    processed_registries: int
    current_registry: str | None
    success_count: int
    failed_count: int
    errors: tuple[str, ...]
    error_message: str | None
    created_by: str | None

    @classmethod
    def from_record(cls, record: IndexingRunRecord) -> IndexingRunView:
        """Build a view from an ORM row."""
        return cls(
            id=record.id,
            trigger_source=TriggerSource(record.trigger_source),
            status=IndexingStatus(record.status),
            started_at=record.started_at,
            completed_at=record.completed_at,
            total_registries=record.total_registries,
            processed_registries=record.processed_registries,
            current_registry=record.current_registry,
            success_count=record.success_count,
            failed_count=record.failed_count,
            errors=tuple(record.errors or ()),
            error_message=record.error_message,
            created_by=record.created_by,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class IndexingStatusView:
    """Whether a run is active plus the current or most recent run."""

    is_running: bool
    current: IndexingRunView | None = None
