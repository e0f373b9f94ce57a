"""Broker configuration helpers for the indexing actor.

The actor calls :func:`ensure_broker_configured` when it runs rather than at
import time, so importing the package never mutates Dramatiq's global state.
"""

from __future__ import annotations

import os
import sys
import threading

import dramatiq
from dramatiq.brokers.stub import StubBroker

_BROKER_LOCK = threading.Lock()
_broker_configured = False


def _is_running_tests() -> bool:
    """Return ``True`` when the process runs under pytest."""
    return "pytest" in sys.modules or any(
        key in os.environ
        for key in ["PYTEST_CURRENT_TEST", "PYTEST_XDIST_WORKER", "PYTEST_ADDOPTS"]
    )


def _should_use_stub_broker() -> bool:
    """Return ``True`` when a StubBroker may stand in for a real broker.

    That is the case under pytest or when ``ENHANSOME_ALLOW_STUB_BROKER`` is
    set to a truthy value.
    """
    allow_stub = os.environ.get("ENHANSOME_ALLOW_STUB_BROKER", "")
    return allow_stub.lower() in {"1", "true", "yes"} or _is_running_tests()


def ensure_broker_configured() -> None:
    """Ensure a Dramatiq broker is configured before actor execution.

    Idempotent and thread-safe across Dramatiq worker threads.

    Raises
    ------
    RuntimeError
        If no broker is configured outside a test or stub-allowed context.

    """
    global _broker_configured

    if _broker_configured:
        return

    with _BROKER_LOCK:
        if _broker_configured:
            return

        try:  # pragma: no cover - exercised in tests and CLI usage
            current_broker = dramatiq.get_broker()
        except (ImportError, LookupError):
            # ImportError: RabbitMQ/Redis extras missing; LookupError: unset
            current_broker = None

        if current_broker is None:
            if _should_use_stub_broker():
                dramatiq.set_broker(StubBroker())
            else:  # pragma: no cover - guard for prod misconfigurations
                message = (
                    "No Dramatiq broker configured. "
                    "Set ENHANSOME_ALLOW_STUB_BROKER=1 for "
                    "local/test runs or configure a real broker."
                )
                raise RuntimeError(message)

        _broker_configured = True
