"""
Payload codec: ResultSet <-> self-describing JSON bytes.

Wire format (version 1), UTF-8 encoded JSON object:

    {
      "format": "query-relay.rows",
      "version": 1,
      "columns": ["id", "name", ...],
      "row_count": 2,
      "rows": [["1", "Alice", null], ...]
    }

A JSON document is self-delimiting, `null` is the null marker (never confused
with ""), and `row_count` plus the column list let a decoder verify the shape
without any out-of-band length hints.
"""

from __future__ import annotations

import json
from typing import Any, List, Optional

from pydantic import BaseModel, ValidationError, model_validator

from query_relay.domain.models import Payload, ResultSet
from query_relay.errors import EncodingError, PayloadDecodeError

FORMAT_NAME = "query-relay.rows"
FORMAT_VERSION = 1
CONTENT_TYPE = "application/json"
CONTENT_ENCODING = "utf-8"


class _Envelope(BaseModel):
    """Decoded wire document, validated before it becomes a ResultSet."""

    format: str
    version: int
    columns: List[str]
    row_count: int
    rows: List[List[Optional[str]]]

    model_config = {"extra": "forbid", "strict": True}

    @model_validator(mode="after")
    def _check_shape(self) -> "_Envelope":
        if self.format != FORMAT_NAME:
            raise ValueError(f"unknown payload format {self.format!r}")
        if self.version != FORMAT_VERSION:
            raise ValueError(f"unsupported payload version {self.version}")
        if self.row_count != len(self.rows):
            raise ValueError(
                f"row_count {self.row_count} does not match {len(self.rows)} encoded rows"
            )
        return self


def encode_result_set(result_set: ResultSet) -> Payload:
    """
    Serialize a ResultSet into an immutable Payload.

    Raises
    ------
    EncodingError
        If a value cannot be represented in UTF-8 (e.g. a lone surrogate) or
        a row's width disagrees with the column list.
    """
    width = result_set.column_count
    for index, row in enumerate(result_set.rows):
        if len(row) != width:
            raise EncodingError(
                "Inconsistent row width", context={"row": index, "expected": width, "got": len(row)}
            )

    document = {
        "format": FORMAT_NAME,
        "version": FORMAT_VERSION,
        "columns": list(result_set.columns),
        "row_count": result_set.row_count,
        "rows": [list(row) for row in result_set.rows],
    }
    try:
        body = json.dumps(document, ensure_ascii=False, separators=(",", ":")).encode(
            CONTENT_ENCODING
        )
    except (TypeError, ValueError) as exc:
        # UnicodeEncodeError is a ValueError
        raise EncodingError("Result set could not be encoded", cause=exc) from exc

    return Payload(
        body=body,
        content_type=CONTENT_TYPE,
        format_version=FORMAT_VERSION,
        row_count=result_set.row_count,
    )


def decode_payload(body: bytes) -> ResultSet:
    """
    Reconstruct the ResultSet a payload body was encoded from.

    Raises
    ------
    PayloadDecodeError
        If the body is not valid UTF-8 JSON or does not match the v1 layout.
    """
    try:
        document: Any = json.loads(body.decode(CONTENT_ENCODING))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PayloadDecodeError("Payload is not valid UTF-8 JSON", cause=exc) from exc

    try:
        envelope = _Envelope.model_validate(document)
        return ResultSet(columns=tuple(envelope.columns), rows=tuple(map(tuple, envelope.rows)))
    except ValidationError as exc:
        raise PayloadDecodeError("Payload does not match the expected layout", cause=exc) from exc


__all__ = [
    "CONTENT_ENCODING",
    "CONTENT_TYPE",
    "FORMAT_NAME",
    "FORMAT_VERSION",
    "decode_payload",
    "encode_result_set",
]
