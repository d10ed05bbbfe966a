"""
Infrastructure package for the query relay.

Centralizes connectivity concerns for the database (psycopg) and the message
broker (pika). Keep this layer focused on I/O and resource creation,
decoupled from pipeline logic.
"""

from query_relay.infrastructure.broker_factory import (
    build_connection_parameters,
    open_blocking_connection,
    queue_target_from_settings,
)
from query_relay.infrastructure.db_factory import (
    apply_statement_timeout,
    build_dsn,
    get_sync_connection,
)

__all__ = [
    "apply_statement_timeout",
    "build_connection_parameters",
    "build_dsn",
    "get_sync_connection",
    "open_blocking_connection",
    "queue_target_from_settings",
]
