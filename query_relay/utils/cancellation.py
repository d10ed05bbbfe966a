"""
Cooperative cancellation helpers.

A run is cancelled by setting a `threading.Event`. Stages check it at their
safe points with `raise_if_cancelled`; blocking calls that support
interruption from another thread (e.g. `psycopg.Connection.cancel`) are
wrapped in `cancel_watcher`, which runs a background thread that fires the
interrupt callback as soon as the event is set.
"""

from __future__ import annotations

import contextlib
import threading
from typing import Callable, Generator, Optional

from query_relay.errors import PipelineCancelled
from query_relay.utils.logging import get_logger

log = get_logger(__name__)


def raise_if_cancelled(cancel_event: Optional[threading.Event], stage: str) -> None:
    """Raise PipelineCancelled if the event has been set."""
    if cancel_event is not None and cancel_event.is_set():
        raise PipelineCancelled(f"Cancelled during {stage}", context={"stage": stage})


@contextlib.contextmanager
def cancel_watcher(
    cancel_event: Optional[threading.Event],
    on_cancel: Callable[[], None],
    poll_interval_ms: int = 50,
) -> Generator[threading.Event, None, None]:
    """
    Invoke `on_cancel` from a background thread once `cancel_event` is set.

    Yields an event that is set if the callback fired, so the caller can tell
    an interrupt it requested apart from a genuine failure.
    """
    fired = threading.Event()
    if cancel_event is None:
        yield fired
        return

    stop_watching = threading.Event()

    def _watch() -> None:
        while not stop_watching.is_set():
            if cancel_event.wait(timeout=poll_interval_ms / 1000.0):
                fired.set()
                try:
                    on_cancel()
                except Exception:
                    log.warning("Cancellation callback failed", exc_info=True)
                return

    watcher = threading.Thread(target=_watch, name="cancel-watcher", daemon=True)
    watcher.start()
    try:
        yield fired
    finally:
        stop_watching.set()
        watcher.join(timeout=1.0)


__all__ = ["cancel_watcher", "raise_if_cancelled"]
