"""
Domain models for the query relay.

A `ResultSet` is the materialized, text-normalized output of a query: every
value is either a string or `None` (the null marker, distinct from ""). A
`Payload` is the encoded byte form of exactly one ResultSet. `QueueTarget`
identifies where the payload is delivered and how the queue is declared.
"""
from __future__ import annotations

from typing import Dict, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

Row = Tuple[Optional[str], ...]


class ResultSet(BaseModel):
    """
    Ordered rows of text values plus the column names reported by the query.
    """

    columns: Tuple[str, ...] = Field(default=(), description="Column names in result order.")
    rows: Tuple[Row, ...] = Field(default=(), description="Rows in query order.")

    model_config = {
        "frozen": True,
    }

    @model_validator(mode="after")
    def _check_row_width(self) -> "ResultSet":
        width = len(self.columns)
        for index, row in enumerate(self.rows):
            if len(row) != width:
                raise ValueError(
                    f"row {index} has {len(row)} values, expected {width} (one per column)"
                )
        return self

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.columns)


class Payload(BaseModel):
    """
    Encoded wire form of one ResultSet.
    """

    body: bytes = Field(..., description="Self-delimiting encoded bytes.")
    content_type: str = Field("application/json", description="MIME type of the body.")
    format_version: int = Field(..., description="Wire format version used to encode.")
    row_count: int = Field(..., ge=0, description="Number of rows in the encoded set.")

    model_config = {
        "frozen": True,
    }

    @property
    def size_bytes(self) -> int:
        return len(self.body)


class QueueTarget(BaseModel):
    """
    Broker endpoint and queue declaration properties.
    """

    host: str
    port: int = 5672
    virtual_host: str = "/"
    queue: str = Field(..., min_length=1)
    durable: bool = False
    exclusive: bool = False
    auto_delete: bool = False

    model_config = {
        "frozen": True,
    }


class DeliveryReceipt(BaseModel):
    """Outcome of one successful publish."""

    queue: str
    message_id: str
    body_bytes: int
    confirmed: bool

    model_config = {
        "frozen": True,
    }


class RunSummary(BaseModel):
    """Outcome of one pipeline run."""

    rows: int
    columns: int
    payload_bytes: int
    queue: str
    message_id: str
    confirmed: bool
    stage_seconds: Dict[str, float] = Field(default_factory=dict)
    rss_bytes: Optional[int] = None


__all__ = ["Row", "ResultSet", "Payload", "QueueTarget", "DeliveryReceipt", "RunSummary"]
