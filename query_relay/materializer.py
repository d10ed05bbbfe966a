"""
Result materializer: run one query and realize its rows as text.

Every column value is rendered to its text form at this boundary (numbers,
timestamps, booleans, JSON, binary all become `str`; SQL NULL becomes
`None`). Downstream stages only ever see `Optional[str]` values and never
dispatch on native database types.
"""

from __future__ import annotations

import json
import threading
import time
from datetime import date, datetime, time as dt_time
from decimal import Decimal
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import psycopg

from query_relay.config import Settings, get_settings
from query_relay.domain.models import ResultSet, Row
from query_relay.errors import PipelineCancelled, QueryExecutionError, QueryTimeoutError
from query_relay.infrastructure.db_factory import (
    apply_statement_timeout,
    build_dsn,
    get_sync_connection,
)
from query_relay.utils.cancellation import cancel_watcher, raise_if_cancelled
from query_relay.utils.logging import get_logger

log = get_logger(__name__)


def _json_default(value: Any) -> Any:
    return render_value(value)


def render_value(value: Any) -> Optional[str]:
    """
    Render a database value as text.

    The mapping is deterministic: NULL -> None, booleans -> "true"/"false",
    temporal values -> ISO 8601, binary -> PostgreSQL hex ("\\x..."),
    JSON documents and arrays -> compact JSON with sorted keys.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date, dt_time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=_json_default)
    return str(value)


def _batched_fetch(cursor: psycopg.Cursor, batch_size: int) -> Iterator[list]:
    """
    Yield batches from a cursor using fetchmany.
    """
    while True:
        batch = cursor.fetchmany(batch_size)
        if not batch:
            break
        yield batch


class ResultMaterializer:
    """
    Execute a query on a dedicated connection and return a text ResultSet.

    The connection is opened per call and closed on every exit path. Partial
    results are never returned: any failure while reading discards what was
    fetched so far.
    """

    def __init__(
        self,
        conninfo: str,
        connect_timeout_s: int = 10,
        statement_timeout_ms: int = 0,
        batch_size: int = 1_000,
    ) -> None:
        self._conninfo = conninfo
        self.connect_timeout_s = connect_timeout_s
        self.statement_timeout_ms = statement_timeout_ms
        self.batch_size = batch_size

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ResultMaterializer":
        settings = settings or get_settings()
        return cls(
            conninfo=build_dsn(settings),
            connect_timeout_s=settings.db_connect_timeout_s,
            statement_timeout_ms=settings.db_statement_timeout_ms,
            batch_size=settings.db_fetch_batch_size,
        )

    def _read_all(
        self,
        conn: psycopg.Connection,
        query: str,
        cancel_event: Optional[threading.Event],
    ) -> Tuple[Tuple[str, ...], List[Row]]:
        with conn.cursor() as cur:
            apply_statement_timeout(cur, self.statement_timeout_ms)
            cur.execute(query)
            if cur.description is None:
                raise QueryExecutionError("Query did not return a result set")
            columns = tuple(column.name for column in cur.description)
            rows: List[Row] = []
            for batch in _batched_fetch(cur, self.batch_size):
                raise_if_cancelled(cancel_event, "query")
                rows.extend(_render_row(record) for record in batch)
        return columns, rows

    def execute(self, query: str, cancel_event: Optional[threading.Event] = None) -> ResultSet:
        """
        Run `query` and materialize all of its rows.

        Raises
        ------
        QueryTimeoutError
            Connect timeout or server-side statement timeout.
        QueryExecutionError
            Any other connect, authentication, SQL or read failure.
        PipelineCancelled
            `cancel_event` was set before or during execution.
        """
        raise_if_cancelled(cancel_event, "query")
        start = time.perf_counter()

        try:
            conn = get_sync_connection(self._conninfo, self.connect_timeout_s)
        except psycopg.errors.ConnectionTimeout as exc:
            raise QueryTimeoutError(
                "Timed out connecting to data source",
                cause=exc,
                context={"connect_timeout_s": self.connect_timeout_s},
            ) from exc
        except psycopg.Error as exc:
            raise QueryExecutionError("Could not connect to data source", cause=exc) from exc

        try:
            with cancel_watcher(cancel_event, conn.cancel) as interrupted:
                try:
                    columns, rows = self._read_all(conn, query, cancel_event)
                except psycopg.errors.QueryCanceled as exc:
                    if interrupted.is_set():
                        raise PipelineCancelled(
                            "Cancelled during query", cause=exc, context={"stage": "query"}
                        ) from exc
                    raise QueryTimeoutError(
                        "Query exceeded statement timeout",
                        cause=exc,
                        context={"statement_timeout_ms": self.statement_timeout_ms},
                    ) from exc
                except psycopg.Error as exc:
                    if interrupted.is_set():
                        raise PipelineCancelled(
                            "Cancelled during query", cause=exc, context={"stage": "query"}
                        ) from exc
                    raise QueryExecutionError("Query execution failed", cause=exc) from exc
        finally:
            conn.close()

        result = ResultSet(columns=columns, rows=tuple(rows))
        log.info(
            "Query materialized",
            extra={
                "rows": result.row_count,
                "columns": result.column_count,
                "duration_seconds": round(time.perf_counter() - start, 3),
            },
        )
        return result


def _render_row(record: Sequence[Any]) -> Row:
    return tuple(render_value(value) for value in record)


def materialize(
    conninfo: str,
    query: str,
    *,
    connect_timeout_s: int = 10,
    statement_timeout_ms: int = 0,
    batch_size: int = 1_000,
    cancel_event: Optional[threading.Event] = None,
) -> ResultSet:
    """Convenience wrapper around `ResultMaterializer.execute`."""
    materializer = ResultMaterializer(
        conninfo,
        connect_timeout_s=connect_timeout_s,
        statement_timeout_ms=statement_timeout_ms,
        batch_size=batch_size,
    )
    return materializer.execute(query, cancel_event=cancel_event)


__all__ = ["ResultMaterializer", "materialize", "render_value"]
