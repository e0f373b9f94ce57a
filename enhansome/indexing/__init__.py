"""Single-flight indexing runs with an auditable history.

Runs are gated by a durable compare-and-swap on the ``indexing_state`` row, so
at most one run is active across every process sharing the database.
"""

from __future__ import annotations

from enhansome.store.storage import IndexingStatus, TriggerSource

from .controller import DEFAULT_HISTORY_LIMIT, IndexingController, IndexingJob
from .models import (
    ALREADY_RUNNING_MESSAGE,
    MANUAL_STOP_MESSAGE,
    IndexingRunView,
    IndexingStatusView,
    IndexResult,
    StopOutcome,
    StopResult,
)
from .observability import IndexingEventLogger, IndexingEventType

__all__ = [
    "ALREADY_RUNNING_MESSAGE",
    "DEFAULT_HISTORY_LIMIT",
    "MANUAL_STOP_MESSAGE",
    "IndexResult",
    "IndexingController",
    "IndexingEventLogger",
    "IndexingEventType",
    "IndexingJob",
    "IndexingRunView",
    "IndexingStatus",
    "IndexingStatusView",
    "StopOutcome",
    "StopResult",
    "TriggerSource",
]
