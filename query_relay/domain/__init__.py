"""
Domain package for the query relay.

Exports the data contracts shared by the materializer, codec, and publisher.
Keep this package focused on data definitions and validation concerns.
"""

from query_relay.domain.models import (
    DeliveryReceipt,
    Payload,
    QueueTarget,
    ResultSet,
    Row,
    RunSummary,
)

__all__ = [
    "DeliveryReceipt",
    "Payload",
    "QueueTarget",
    "ResultSet",
    "Row",
    "RunSummary",
]
