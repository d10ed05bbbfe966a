"""
Database connection factory utilities for the query relay.

Centralizes DSN composition and the creation of dedicated psycopg
connections with explicit connect and statement timeouts. Each pipeline run
owns its connection exclusively; there is no pooling.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote

import psycopg
from psycopg import Connection, Cursor

from query_relay.config import Settings, get_settings


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings, URL-quoting the credentials."""
    settings = settings or get_settings()
    return (
        f"postgresql://{quote(settings.db_user, safe='')}:{quote(settings.db_password, safe='')}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def get_sync_connection(conninfo: str, connect_timeout_s: int = 10) -> Connection:
    """
    Open a dedicated, read-only synchronous connection.

    Parameters
    ----------
    conninfo : str
        libpq connection string or URL.
    connect_timeout_s : int
        Seconds to wait for the server before giving up.

    Returns
    -------
    Connection
        A new psycopg connection; the caller owns and must close it.

    Raises
    ------
    psycopg.OperationalError
        If the server is unreachable or rejects the credentials.
    """
    conn = psycopg.connect(conninfo, connect_timeout=connect_timeout_s)
    try:
        conn.read_only = True
    except BaseException:
        conn.close()
        raise
    return conn


def apply_statement_timeout(cur: Cursor, timeout_ms: int) -> None:
    """
    Bound server-side execution time for statements on this session.

    A value of 0 disables the timeout, matching PostgreSQL semantics.
    """
    cur.execute(f"SET statement_timeout = {int(timeout_ms)}")


__all__ = [
    "apply_statement_timeout",
    "build_dsn",
    "get_sync_connection",
]
