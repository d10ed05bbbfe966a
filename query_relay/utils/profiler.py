"""
Stage profiling utilities for the query relay.

`profile_block` measures wall-clock duration (perf_counter) and the process
resident set size after the block (psutil). The pipeline wraps each stage in
one so a run summary can report where time went.

Usage:
    from query_relay.utils.profiler import profile_block

    with profile_block("query") as stats:
        result_set = materializer.execute(query)

    print(stats.duration_seconds, stats.rss_bytes)
"""

from __future__ import annotations

import contextlib
import time
from dataclasses import dataclass, field
from typing import Generator, Optional

import psutil


@dataclass
class ProfileStats:
    """
    Container for one stage's measurements.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    rss_bytes: Optional[int] = field(default=None)


@contextlib.contextmanager
def profile_block(label: str) -> Generator[ProfileStats, None, None]:
    """
    Context manager to time a block and capture RSS when it ends.

    Stats are filled in even if the block raises.
    """
    stats = ProfileStats(label=label)
    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts
        try:
            stats.rss_bytes = psutil.Process().memory_info().rss
        except psutil.Error:
            stats.rss_bytes = None


__all__ = ["ProfileStats", "profile_block"]
