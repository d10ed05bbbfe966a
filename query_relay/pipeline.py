"""
Pipeline orchestration: query -> encode -> publish, once.

Usage:
    from query_relay.pipeline import run_pipeline

    summary = run_pipeline(settings)
    print(summary.rows, summary.message_id)

Stages run strictly in sequence. The payload is fully built before any
publish is attempted, so an encoding failure never reaches the broker. The
stages themselves never retry; `run_with_retry` re-invokes the whole
pipeline when the caller asks for more than one attempt.
"""

from __future__ import annotations

import threading
from typing import Dict, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)
from tenacity.wait import wait_base

from query_relay.codec import encode_result_set
from query_relay.config import Settings, get_settings
from query_relay.domain.models import RunSummary
from query_relay.errors import DeliveryError, PipelineCancelled, QueryExecutionError, RelayError
from query_relay.materializer import ResultMaterializer
from query_relay.publisher import QueuePublisher
from query_relay.utils.logging import get_logger
from query_relay.utils.profiler import profile_block

log = get_logger(__name__)

RETRYABLE_ERRORS = (QueryExecutionError, DeliveryError)


def run_pipeline(
    settings: Optional[Settings] = None,
    query: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
    materializer: Optional[ResultMaterializer] = None,
    publisher: Optional[QueuePublisher] = None,
) -> RunSummary:
    """
    Run the relay once and return what was delivered.

    Parameters
    ----------
    settings : Settings | None
        Effective configuration. Defaults to the cached environment settings.
    query : str | None
        SQL to execute. Defaults to `settings.relay_query`.
    cancel_event : threading.Event | None
        Setting it interrupts the run at the next safe point.
    materializer, publisher
        Pre-built stage objects (tests, embedding); built from settings if omitted.

    Raises
    ------
    RelayError
        The stage-specific subclass for whichever stage failed.
    """
    settings = settings or get_settings()
    sql = query or settings.relay_query
    materializer = materializer or ResultMaterializer.from_settings(settings)
    publisher = publisher or QueuePublisher.from_settings(settings)
    timings: Dict[str, float] = {}

    stage = "query"
    try:
        log.info("[STAGE START] query", extra={"stage": stage})
        with profile_block(stage) as stats:
            result_set = materializer.execute(sql, cancel_event=cancel_event)
        timings[stage] = round(stats.duration_seconds, 3)

        stage = "encode"
        log.info("[STAGE START] encode", extra={"stage": stage, "rows": result_set.row_count})
        with profile_block(stage) as stats:
            payload = encode_result_set(result_set)
        timings[stage] = round(stats.duration_seconds, 3)

        stage = "publish"
        log.info(
            "[STAGE START] publish",
            extra={"stage": stage, "queue": publisher.target.queue, "bytes": payload.size_bytes},
        )
        with profile_block(stage) as stats:
            receipt = publisher.publish(payload, cancel_event=cancel_event)
        timings[stage] = round(stats.duration_seconds, 3)
        rss_bytes = stats.rss_bytes
    except RelayError as exc:
        log.error(
            f"[STAGE FAILED] {stage}: {exc}",
            extra={"stage": stage, "error_type": type(exc).__name__, **exc.context},
        )
        raise

    summary = RunSummary(
        rows=result_set.row_count,
        columns=result_set.column_count,
        payload_bytes=payload.size_bytes,
        queue=receipt.queue,
        message_id=receipt.message_id,
        confirmed=receipt.confirmed,
        stage_seconds=timings,
        rss_bytes=rss_bytes,
    )
    log.info(
        "[PIPELINE COMPLETE]",
        extra={"rows": summary.rows, "queue": summary.queue, "message_id": summary.message_id},
    )
    return summary


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    log.warning(
        f"[RETRY] attempt {retry_state.attempt_number} failed, retrying",
        extra={"attempt": retry_state.attempt_number, "error": str(exc)},
    )


def run_with_retry(
    settings: Optional[Settings] = None,
    query: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
    max_attempts: Optional[int] = None,
    wait: Optional[wait_base] = None,
) -> RunSummary:
    """
    Run the whole pipeline, re-invoking it on query or delivery failures.

    Encoding errors and cancellation are never retried. A retry after a
    delivery failure may publish a second copy if the broker had already
    accepted the first (at-least-once).

    Parameters
    ----------
    max_attempts : int | None
        Total attempts including the first. Defaults to `settings.pipeline_max_attempts`.
    wait : tenacity wait strategy | None
        Backoff between attempts; exponential 1s..10s by default.
    """
    settings = settings or get_settings()
    attempts = max_attempts or settings.pipeline_max_attempts

    stop = stop_after_attempt(attempts)
    sleep_kwargs = {}
    if cancel_event is not None:
        stop = stop | stop_when_event_set(cancel_event)
        # Backoff sleeps on the cancel event.
        sleep_kwargs["sleep"] = cancel_event.wait

    retrying = Retrying(
        stop=stop,
        wait=wait or wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        before_sleep=_log_retry,
        reraise=True,
        **sleep_kwargs,
    )
    try:
        return retrying(run_pipeline, settings=settings, query=query, cancel_event=cancel_event)
    except RETRYABLE_ERRORS as exc:
        if cancel_event is not None and cancel_event.is_set():
            raise PipelineCancelled("Cancelled between attempts", cause=exc) from exc
        raise


__all__ = ["RETRYABLE_ERRORS", "run_pipeline", "run_with_retry"]
