"""
Utilities package for the query relay.

Exports shared helpers for logging, profiling, and cancellation.
Keep this package lightweight and free of domain-specific logic.
"""

from query_relay.utils.cancellation import cancel_watcher, raise_if_cancelled
from query_relay.utils.logging import configure_logging, get_logger
from query_relay.utils.profiler import ProfileStats, profile_block

__all__ = [
    "cancel_watcher",
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
    "raise_if_cancelled",
]
