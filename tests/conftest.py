"""
Pytest configuration for the query relay.

Provides fixtures for:
- In-memory test doubles for psycopg connections and pika blocking connections
- Settings built from a clean environment
- Real database / broker access for integration tests (skipped when unreachable)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import pika.exceptions
import pytest

from query_relay.config import Settings

SETTINGS_ENV_VARS = [
    "DB_HOST",
    "DB_PORT",
    "DB_USER",
    "DB_PASSWORD",
    "DB_NAME",
    "DB_CONNECT_TIMEOUT_S",
    "DB_STATEMENT_TIMEOUT_MS",
    "DB_FETCH_BATCH_SIZE",
    "RELAY_QUERY",
    "BROKER_HOST",
    "BROKER_PORT",
    "BROKER_VHOST",
    "BROKER_USER",
    "BROKER_PASSWORD",
    "BROKER_QUEUE",
    "QUEUE_DURABLE",
    "QUEUE_EXCLUSIVE",
    "QUEUE_AUTO_DELETE",
    "BROKER_CONNECT_TIMEOUT_S",
    "BROKER_BLOCKED_TIMEOUT_S",
    "BROKER_HEARTBEAT_S",
    "PUBLISH_CONFIRMS",
    "PUBLISH_PERSISTENT",
    "PIPELINE_MAX_ATTEMPTS",
    "APP_ENV",
    "LOG_LEVEL",
    "LOG_JSON",
]


# ---------------------------------------------------------------------------
# psycopg doubles
# ---------------------------------------------------------------------------


@dataclass
class FakeColumn:
    name: str


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn
        self._pending: List[Sequence[Any]] = []
        self._batches_read = 0
        self.description: Optional[List[FakeColumn]] = None
        self.closed = False

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb
        self.closed = True

    def execute(self, sql: str, params: Any = None) -> None:
        del params
        self._conn.executed.append(sql)
        if sql.startswith("SET "):
            return
        if self._conn.execute_error is not None:
            raise self._conn.execute_error
        if self._conn.columns is not None:
            self.description = [FakeColumn(name) for name in self._conn.columns]
        self._pending = list(self._conn.rows)

    def fetchmany(self, size: int) -> List[Sequence[Any]]:
        if (
            self._conn.read_error is not None
            and self._batches_read >= self._conn.fail_after_batches
        ):
            raise self._conn.read_error
        self._batches_read += 1
        if self._conn.on_batch is not None:
            self._conn.on_batch(self._batches_read)
        batch, self._pending = self._pending[:size], self._pending[size:]
        return batch


class FakeConnection:
    """Stands in for psycopg.Connection; records lifecycle calls."""

    def __init__(
        self,
        columns: Optional[Sequence[str]] = None,
        rows: Sequence[Sequence[Any]] = (),
        execute_error: Optional[BaseException] = None,
        read_error: Optional[BaseException] = None,
        fail_after_batches: int = 0,
        on_batch: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.columns = columns
        self.rows = list(rows)
        self.execute_error = execute_error
        self.read_error = read_error
        self.fail_after_batches = fail_after_batches
        self.on_batch = on_batch
        self.executed: List[str] = []
        self.read_only = False
        self.close_calls = 0
        self.cancel_calls = 0
        self.cursors: List[FakeCursor] = []

    def cursor(self) -> FakeCursor:
        cur = FakeCursor(self)
        self.cursors.append(cur)
        return cur

    def cancel(self) -> None:
        self.cancel_calls += 1

    def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def fake_db(monkeypatch) -> Callable[..., FakeConnection]:
    """
    Install a FakeConnection as the materializer's connection factory.

    Call the fixture with FakeConnection kwargs; the created connection is
    returned and also recorded in `opened`.
    """
    opened: List[FakeConnection] = []

    def install(**kwargs: Any) -> FakeConnection:
        conn = FakeConnection(**kwargs)

        def fake_get_sync_connection(conninfo: str, connect_timeout_s: int = 10) -> FakeConnection:
            del conninfo, connect_timeout_s
            opened.append(conn)
            return conn

        monkeypatch.setattr(
            "query_relay.materializer.get_sync_connection", fake_get_sync_connection
        )
        return conn

    install.opened = opened  # type: ignore[attr-defined]
    return install


# ---------------------------------------------------------------------------
# pika doubles
# ---------------------------------------------------------------------------


@dataclass
class PublishedMessage:
    exchange: str
    routing_key: str
    body: bytes
    properties: Any
    mandatory: bool


@dataclass
class FakeBroker:
    """In-memory broker state shared by every fake connection."""

    queues: Dict[str, Dict[str, bool]] = field(default_factory=dict)
    messages: Dict[str, List[PublishedMessage]] = field(default_factory=dict)
    connections: List["FakeBlockingConnection"] = field(default_factory=list)
    connect_error: Optional[BaseException] = None
    publish_error: Optional[BaseException] = None
    confirm_never_arrives: bool = False

    def declare(self, name: str, **props: bool) -> None:
        self.queues[name] = props
        self.messages.setdefault(name, [])


class FakeChannel:
    def __init__(self, broker: FakeBroker, connection: "FakeBlockingConnection") -> None:
        self._broker = broker
        self._connection = connection
        self.is_open = True
        self.close_calls = 0
        self.confirms = False
        self.declare_calls = 0

    def confirm_delivery(self) -> None:
        self.confirms = True

    def queue_declare(
        self, queue: str, durable: bool = False, exclusive: bool = False, auto_delete: bool = False
    ) -> None:
        self.declare_calls += 1
        props = {"durable": durable, "exclusive": exclusive, "auto_delete": auto_delete}
        existing = self._broker.queues.get(queue)
        if existing is not None and existing != props:
            self.is_open = False
            raise pika.exceptions.ChannelClosedByBroker(
                406, f"PRECONDITION_FAILED - inequivalent arg for queue '{queue}'"
            )
        self._broker.declare(queue, **props)

    def basic_publish(
        self,
        exchange: str,
        routing_key: str,
        body: bytes,
        properties: Any = None,
        mandatory: bool = False,
    ) -> None:
        if self._broker.publish_error is not None:
            raise self._broker.publish_error
        if self.confirms and self._broker.confirm_never_arrives:
            # pika gives up on the wait once heartbeats stop and drops the connection.
            self.is_open = False
            self._connection.is_open = False
            raise pika.exceptions.AMQPHeartbeatTimeout("No activity or too many missed heartbeats")
        if exchange == "" and routing_key not in self._broker.queues and mandatory:
            raise pika.exceptions.UnroutableError([])
        self._broker.messages.setdefault(routing_key, []).append(
            PublishedMessage(exchange, routing_key, body, properties, mandatory)
        )

    def close(self) -> None:
        self.close_calls += 1
        self.is_open = False


class FakeBlockingConnection:
    """Stands in for pika.BlockingConnection; records lifecycle calls."""

    def __init__(self, broker: FakeBroker, parameters: Any) -> None:
        self.parameters = parameters
        self.is_open = True
        self.close_calls = 0
        self.channels: List[FakeChannel] = []
        self._broker = broker

    def channel(self) -> FakeChannel:
        ch = FakeChannel(self._broker, self)
        self.channels.append(ch)
        return ch

    def close(self) -> None:
        self.close_calls += 1
        self.is_open = False


@pytest.fixture
def fake_broker(monkeypatch) -> FakeBroker:
    """Route the publisher's connection factory to an in-memory broker."""
    broker = FakeBroker()

    def fake_open(parameters: Any) -> FakeBlockingConnection:
        if broker.connect_error is not None:
            raise broker.connect_error
        conn = FakeBlockingConnection(broker, parameters)
        broker.connections.append(conn)
        return conn

    monkeypatch.setattr("query_relay.publisher.open_blocking_connection", fake_open)
    return broker


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def clean_env(monkeypatch) -> None:
    """Remove relay settings from the environment so defaults apply."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(os.path.dirname(__file__))


@pytest.fixture
def unit_settings(clean_env) -> Settings:
    return Settings(
        _env_file=None,
        db_host="db.test",
        db_name="school",
        broker_host="mq.test",
        broker_queue="students",
        relay_query="SELECT id, name, score FROM student ORDER BY id",
    )


# ---------------------------------------------------------------------------
# Integration
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def integration_settings() -> Settings:
    """
    Settings for integration tests, overridable via environment variables in CI.
    """
    if os.getenv("RUN_INTEGRATION_TESTS", "0") != "1":
        pytest.skip("Integration tests require RUN_INTEGRATION_TESTS=1")
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "postgres"),
        broker_host=os.getenv("BROKER_HOST", "localhost"),
        broker_queue=os.getenv("BROKER_QUEUE", "query-relay-it"),
        log_level="DEBUG",
    )
