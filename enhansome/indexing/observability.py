"""Emit structured observability events for indexing runs.

This module defines event identifiers and a logger wrapper used by
``IndexingController`` to emit run and per-registry telemetry.

Usage
-----
>>> event_logger = IndexingEventLogger()
>>> event_logger.log_run_started(run_id=7, trigger_source="manual", created_by=None)

"""

from __future__ import annotations

import enum
import typing as typ

from enhansome.logging import get_logger, log_error, log_info, log_warning

if typ.TYPE_CHECKING:
    import datetime as dt

    from enhansome.store.service import RegistryIndexResult

logger = get_logger(__name__)


class IndexingEventType(enum.StrEnum):
    """Structured log event types for indexing runs."""

    RUN_STARTED = "indexing.run.started"
    RUN_REJECTED = "indexing.run.rejected"
    RUN_COMPLETED = "indexing.run.completed"
    RUN_FAILED = "indexing.run.failed"
    RUN_STOPPED = "indexing.run.stopped"
    REGISTRY_COMPLETED = "indexing.registry.completed"
    REGISTRY_FAILED = "indexing.registry.failed"


class IndexingEventLogger:
    """Emit structured indexing events via femtologging."""

    def log_run_started(
        self, *, run_id: int, trigger_source: str, created_by: str | None
    ) -> None:
        """Log that a run claimed the gate."""
        log_info(
            logger,
            "[%s] run_id=%s trigger_source=%s created_by=%s",
            IndexingEventType.RUN_STARTED,
            run_id,
            trigger_source,
            created_by,
        )

    def log_run_rejected(self, *, trigger_source: str) -> None:
        """Log a request turned away because another run is active."""
        log_warning(
            logger,
            "[%s] trigger_source=%s reason=already_running",
            IndexingEventType.RUN_REJECTED,
            trigger_source,
        )

    def log_registry_completed(
        self, *, run_id: int, result: RegistryIndexResult
    ) -> None:
        """Log one registry written to the store.

        Parameters
        ----------
        run_id
            Identifier of the owning run.
        result
            Counts returned by the store for the registry.

        """
        log_info(
            logger,
            "[%s] run_id=%s registry=%s items=%s repositories=%s total_stars=%s "
            "created=%s updated=%s deleted=%s",
            IndexingEventType.REGISTRY_COMPLETED,
            run_id,
            result.registry_name,
            result.items,
            result.repositories,
            result.total_stars,
            result.memberships_created,
            result.memberships_updated,
            result.memberships_deleted,
        )

    def log_registry_failed(
        self, *, run_id: int, registry: str, error: BaseException
    ) -> None:
        """Log a registry that could not be parsed or persisted."""
        log_error(
            logger,
            "[%s] run_id=%s registry=%s error_type=%s error_message=%s",
            IndexingEventType.REGISTRY_FAILED,
            run_id,
            registry,
            type(error).__name__,
            str(error),
            exc_info=error,
        )

    def log_run_completed(  # noqa: PLR0913
        self,
        *,
        run_id: int,
        success: int,
        failed: int,
        pruned: int,
        duration: dt.timedelta,
    ) -> None:
        """Log a run that attempted every registry."""
        log_info(
            logger,
            "[%s] run_id=%s success=%s failed=%s pruned=%s duration_seconds=%.3f",
            IndexingEventType.RUN_COMPLETED,
            run_id,
            success,
            failed,
            pruned,
            duration.total_seconds(),
        )

    def log_run_failed(
        self, *, run_id: int, error: BaseException, duration: dt.timedelta
    ) -> None:
        """Log a run that failed before or between registries.

        Parameters
        ----------
        run_id
            Identifier of the failed run.
        error
            Exception that ended the run.
        duration
            Elapsed time between the start of the run and the failure.

        """
        log_error(
            logger,
            "[%s] run_id=%s duration_seconds=%.3f error_type=%s error_message=%s",
            IndexingEventType.RUN_FAILED,
            run_id,
            duration.total_seconds(),
            type(error).__name__,
            str(error),
            exc_info=error,
        )

    def log_run_stopped(self, *, run_id: int, observed_by: str) -> None:
        """Log a run forced to ``failed`` by a stop request.

        ``observed_by`` is ``"stop"`` when logged by the stop request and
        ``"worker"`` when the running pipeline noticed the stop.
        """
        log_warning(
            logger,
            "[%s] run_id=%s observed_by=%s",
            IndexingEventType.RUN_STOPPED,
            run_id,
            observed_by,
        )
