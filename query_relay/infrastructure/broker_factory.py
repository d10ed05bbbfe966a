"""
Broker connection factory utilities for the query relay.

Builds pika connection parameters (credentials, socket/handshake timeouts,
heartbeat, blocked-connection timeout) from settings and opens blocking connections.
"""

from __future__ import annotations

from typing import Optional

import pika
from pika.adapters.blocking_connection import BlockingConnection

from query_relay.config import Settings, get_settings
from query_relay.domain.models import QueueTarget


def queue_target_from_settings(settings: Optional[Settings] = None) -> QueueTarget:
    """Describe the configured broker endpoint and queue properties."""
    settings = settings or get_settings()
    return QueueTarget(
        host=settings.broker_host,
        port=settings.broker_port,
        virtual_host=settings.broker_vhost,
        queue=settings.broker_queue,
        durable=settings.queue_durable,
        exclusive=settings.queue_exclusive,
        auto_delete=settings.queue_auto_delete,
    )


def build_connection_parameters(
    target: QueueTarget,
    username: str = "guest",
    password: str = "guest",
    connect_timeout_s: float = 10.0,
    blocked_timeout_s: Optional[float] = 30.0,
    heartbeat_s: int = 30,
) -> pika.ConnectionParameters:
    """
    Compose pika connection parameters for a queue target.

    Parameters
    ----------
    target : QueueTarget
        Host, port and virtual host of the broker.
    username, password : str
        Plain credentials for the AMQP handshake.
    connect_timeout_s : float
        Applied to the TCP socket and to the full AMQP handshake.
    blocked_timeout_s : float | None
        How long a publish may wait on a broker-blocked connection.
    heartbeat_s : int
        Heartbeat proposed to the broker. Also bounds how long a publish waits
        for its confirm when the broker stops responding.

    Returns
    -------
    pika.ConnectionParameters
    """
    return pika.ConnectionParameters(
        host=target.host,
        port=target.port,
        virtual_host=target.virtual_host,
        credentials=pika.PlainCredentials(username, password),
        socket_timeout=connect_timeout_s,
        stack_timeout=connect_timeout_s,
        blocked_connection_timeout=blocked_timeout_s,
        heartbeat=heartbeat_s,
        connection_attempts=1,
    )


def open_blocking_connection(parameters: pika.ConnectionParameters) -> BlockingConnection:
    """
    Open a dedicated blocking connection; the caller owns and must close it.

    Raises
    ------
    pika.exceptions.AMQPConnectionError
        If the broker is unreachable or rejects the credentials.
    pika.adapters.utils.connection_workflow.AMQPConnectorException
        If the handshake times out or fails outside pika's AMQPError tree.
    """
    return pika.BlockingConnection(parameters)


__all__ = [
    "build_connection_parameters",
    "open_blocking_connection",
    "queue_target_from_settings",
]
