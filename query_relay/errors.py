"""
Exception hierarchy for the query relay pipeline.

Each pipeline stage raises exactly one error family so the caller can tell
where a run failed without inspecting driver-specific exceptions:

- ConfigurationError: settings could not be loaded or are invalid.
- QueryExecutionError: connect/auth/query/read failures against the database.
- EncodingError: the result set could not be turned into a payload (or back).
- DeliveryError: connect/auth/declare/publish failures against the broker.
- PipelineCancelled: an external cancellation signal interrupted the run.

Every class carries a distinct process exit code used by the CLI.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RelayError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes
    ----------
    message : str
        Human-readable error description.
    cause : Exception | None
        Original exception if wrapping a driver error.
    context : dict
        Additional details for logging (never contains credentials).
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause is not None:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


class ConfigurationError(RelayError):
    """Settings file missing, unreadable, or structurally invalid."""

    exit_code = 2


class QueryExecutionError(RelayError):
    """The data source could not be reached, authorized, queried, or read."""

    exit_code = 3


class QueryTimeoutError(QueryExecutionError):
    """Connect or statement timeout against the data source."""


class EncodingError(RelayError):
    """The result set could not be represented in the wire format."""

    exit_code = 4


class PayloadDecodeError(EncodingError):
    """A payload body is malformed or does not match its declared shape."""


class DeliveryError(RelayError):
    """The broker could not be reached, the queue declared, or the message published."""

    exit_code = 5


class DeliveryTimeoutError(DeliveryError):
    """Broker handshake, blocked-connection or heartbeat timeout."""


class PipelineCancelled(RelayError):
    """The run was interrupted by an external cancellation signal."""

    exit_code = 130


__all__ = [
    "RelayError",
    "ConfigurationError",
    "QueryExecutionError",
    "QueryTimeoutError",
    "EncodingError",
    "PayloadDecodeError",
    "DeliveryError",
    "DeliveryTimeoutError",
    "PipelineCancelled",
]
