"""
Queue publisher: deliver one payload to a RabbitMQ queue.

One call to `QueuePublisher.publish` opens a connection and channel, declares
the target queue (idempotent), publishes the payload exactly once to the
default exchange, and closes channel and connection on every exit path.
With publisher confirms enabled, a successful return means the broker
accepted and routed the message.
"""

from __future__ import annotations

import contextlib
import threading
import time
import uuid
from typing import Generator, Optional

import pika
import pika.exceptions
from pika.adapters.blocking_connection import BlockingChannel
from pika.adapters.utils.connection_workflow import (
    AMQPConnectorException,
    AMQPConnectorStackTimeout,
)

from query_relay.codec import CONTENT_ENCODING
from query_relay.config import Settings, get_settings
from query_relay.domain.models import DeliveryReceipt, Payload, QueueTarget
from query_relay.errors import DeliveryError, DeliveryTimeoutError
from query_relay.infrastructure.broker_factory import (
    build_connection_parameters,
    open_blocking_connection,
    queue_target_from_settings,
)
from query_relay.utils.cancellation import raise_if_cancelled
from query_relay.utils.logging import get_logger

log = get_logger(__name__)

TRANSIENT_DELIVERY_MODE = 1
PERSISTENT_DELIVERY_MODE = 2


class QueuePublisher:
    """
    Publish payloads to a single queue on a single broker.

    Holds no connection between calls; each `publish` owns its connection
    for the duration of the call only.
    """

    def __init__(
        self,
        target: QueueTarget,
        parameters: Optional[pika.ConnectionParameters] = None,
        confirm_delivery: bool = True,
        persistent: bool = False,
    ) -> None:
        self.target = target
        self._parameters = parameters or build_connection_parameters(target)
        self.confirm_delivery = confirm_delivery
        self.persistent = persistent

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "QueuePublisher":
        settings = settings or get_settings()
        target = queue_target_from_settings(settings)
        parameters = build_connection_parameters(
            target,
            username=settings.broker_user,
            password=settings.broker_password,
            connect_timeout_s=settings.broker_connect_timeout_s,
            blocked_timeout_s=settings.broker_blocked_timeout_s,
            heartbeat_s=settings.broker_heartbeat_s,
        )
        return cls(
            target,
            parameters=parameters,
            confirm_delivery=settings.publish_confirms,
            persistent=settings.publish_persistent,
        )

    @contextlib.contextmanager
    def _channel_scope(self) -> Generator[BlockingChannel, None, None]:
        """Open a connection and channel, closing both however the block exits."""
        connection = open_blocking_connection(self._parameters)
        try:
            channel = connection.channel()
            try:
                yield channel
            finally:
                if channel.is_open:
                    try:
                        channel.close()
                    except pika.exceptions.AMQPError:
                        log.warning("Channel close failed", exc_info=True)
        finally:
            if connection.is_open:
                try:
                    connection.close()
                except pika.exceptions.AMQPError:
                    log.warning("Connection close failed", exc_info=True)

    def declare_queue(self, channel: BlockingChannel) -> None:
        """
        Ensure the target queue exists with the configured properties.

        Declaring an existing queue with identical properties is a no-op;
        conflicting properties make the broker close the channel (406).
        """
        channel.queue_declare(
            queue=self.target.queue,
            durable=self.target.durable,
            exclusive=self.target.exclusive,
            auto_delete=self.target.auto_delete,
        )

    def _properties(self, payload: Payload, message_id: str) -> pika.BasicProperties:
        return pika.BasicProperties(
            content_type=payload.content_type,
            content_encoding=CONTENT_ENCODING,
            delivery_mode=PERSISTENT_DELIVERY_MODE if self.persistent else TRANSIENT_DELIVERY_MODE,
            message_id=message_id,
            timestamp=int(time.time()),
            headers={
                "x-format-version": payload.format_version,
                "x-row-count": payload.row_count,
            },
        )

    def publish(
        self, payload: Payload, cancel_event: Optional[threading.Event] = None
    ) -> DeliveryReceipt:
        """
        Deliver `payload` as exactly one message.

        Raises
        ------
        DeliveryTimeoutError
            Connect handshake timed out, the broker kept the connection blocked
            past the configured timeout, or it went silent (missed heartbeats)
            while the publish waited for its confirm.
        DeliveryError
            Connect, authentication, declare, or publish failure (including an
            unroutable or negatively acknowledged message).
        PipelineCancelled
            `cancel_event` was set before the publish was attempted.
        """
        message_id = uuid.uuid4().hex
        context = {"queue": self.target.queue, "host": self.target.host, "message_id": message_id}
        raise_if_cancelled(cancel_event, "delivery")

        try:
            with self._channel_scope() as channel:
                if self.confirm_delivery:
                    channel.confirm_delivery()
                raise_if_cancelled(cancel_event, "delivery")
                self.declare_queue(channel)
                raise_if_cancelled(cancel_event, "delivery")
                channel.basic_publish(
                    exchange="",
                    routing_key=self.target.queue,
                    body=payload.body,
                    properties=self._properties(payload, message_id),
                    mandatory=True,
                )
        except pika.exceptions.ConnectionBlockedTimeout as exc:
            raise DeliveryTimeoutError(
                "Broker connection stayed blocked past the timeout", cause=exc, context=context
            ) from exc
        except pika.exceptions.AMQPHeartbeatTimeout as exc:
            raise DeliveryTimeoutError(
                "Broker stopped responding before the publish completed",
                cause=exc,
                context=context,
            ) from exc
        except AMQPConnectorStackTimeout as exc:
            raise DeliveryTimeoutError(
                "Timed out connecting to broker", cause=exc, context=context
            ) from exc
        except AMQPConnectorException as exc:
            raise DeliveryError("Could not connect to broker", cause=exc, context=context) from exc
        except pika.exceptions.ChannelClosedByBroker as exc:
            raise DeliveryError(
                f"Broker closed the channel ({exc.reply_code}: {exc.reply_text})",
                cause=exc,
                context=context,
            ) from exc
        except pika.exceptions.UnroutableError as exc:
            raise DeliveryError("Message was returned as unroutable", cause=exc, context=context) from exc
        except pika.exceptions.NackError as exc:
            raise DeliveryError("Broker rejected the message", cause=exc, context=context) from exc
        except pika.exceptions.AMQPError as exc:
            raise DeliveryError("Delivery failed", cause=exc, context=context) from exc

        log.info(
            "Payload delivered",
            extra={
                "queue": self.target.queue,
                "message_id": message_id,
                "bytes": payload.size_bytes,
                "confirmed": self.confirm_delivery,
            },
        )
        return DeliveryReceipt(
            queue=self.target.queue,
            message_id=message_id,
            body_bytes=payload.size_bytes,
            confirmed=self.confirm_delivery,
        )


__all__ = ["QueuePublisher"]
