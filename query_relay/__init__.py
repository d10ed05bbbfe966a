"""
Query Relay - run one SQL query and deliver its result to a message queue.

The pipeline has three stages, composed linearly:

- Result materializer: executes the query and renders every value as text
- Payload codec: encodes the rows into a self-describing JSON payload
- Queue publisher: declares the queue and publishes the payload exactly once

Connections to PostgreSQL and RabbitMQ are scoped to a single run and are
released on every exit path.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from query_relay.codec import decode_payload, encode_result_set
from query_relay.config import Settings, get_settings, load_settings
from query_relay.domain.models import (
    DeliveryReceipt,
    Payload,
    QueueTarget,
    ResultSet,
    RunSummary,
)
from query_relay.errors import (
    ConfigurationError,
    DeliveryError,
    DeliveryTimeoutError,
    EncodingError,
    PayloadDecodeError,
    PipelineCancelled,
    QueryExecutionError,
    QueryTimeoutError,
    RelayError,
)
from query_relay.materializer import ResultMaterializer, materialize, render_value
from query_relay.pipeline import run_pipeline, run_with_retry
from query_relay.publisher import QueuePublisher
from query_relay.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    "load_settings",
    # Pipeline
    "run_pipeline",
    "run_with_retry",
    "ResultMaterializer",
    "materialize",
    "render_value",
    "encode_result_set",
    "decode_payload",
    "QueuePublisher",
    # Data contracts
    "DeliveryReceipt",
    "Payload",
    "QueueTarget",
    "ResultSet",
    "RunSummary",
    # Errors
    "RelayError",
    "ConfigurationError",
    "QueryExecutionError",
    "QueryTimeoutError",
    "EncodingError",
    "PayloadDecodeError",
    "DeliveryError",
    "DeliveryTimeoutError",
    "PipelineCancelled",
    # Logging
    "configure_logging",
    "get_logger",
]
