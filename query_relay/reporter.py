from __future__ import annotations

from typing import Any, Dict, Optional

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from query_relay.domain.models import ResultSet, RunSummary

NULL_DISPLAY = "∅"


def _format_bytes(value: Optional[int]) -> str:
    if value is None:
        return "n/a"
    size = float(value)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if size < 1024 or unit == "GiB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GiB"


def build_summary_table(summary: RunSummary) -> Table:
    """Two-column table describing one completed run."""
    table = Table(title="Relay run", box=box.SIMPLE_HEAVY, show_header=False)
    table.add_column("field", style="bold")
    table.add_column("value")

    table.add_row("Queue", summary.queue)
    table.add_row("Message id", summary.message_id)
    table.add_row("Broker confirmed", "yes" if summary.confirmed else "no (confirms disabled)")
    table.add_row("Rows", f"{summary.rows:,}")
    table.add_row("Columns", str(summary.columns))
    table.add_row("Payload", _format_bytes(summary.payload_bytes))
    for stage, seconds in summary.stage_seconds.items():
        table.add_row(f"{stage} time", f"{seconds:.3f}s")
    table.add_row("RSS", _format_bytes(summary.rss_bytes))
    return table


def build_settings_table(values: Dict[str, Any]) -> Table:
    """Table of effective settings; expects already-masked values."""
    table = Table(title="Effective configuration", box=box.SIMPLE_HEAVY)
    table.add_column("setting", style="bold")
    table.add_column("value")
    for key in sorted(values):
        table.add_row(key, str(values[key]))
    return table


def build_result_set_table(result_set: ResultSet, max_rows: Optional[int] = None) -> Table:
    """Render rows of a decoded payload; NULL is shown distinctly from ''."""
    table = Table(box=box.SIMPLE, caption=f"{result_set.row_count} row(s)")
    for column in result_set.columns:
        table.add_column(column)
    rows = result_set.rows if max_rows is None else result_set.rows[:max_rows]
    for row in rows:
        table.add_row(
            *(Text(NULL_DISPLAY, style="dim") if value is None else Text(value) for value in row)
        )
    return table


def print_summary(summary: RunSummary, console: Optional[Console] = None) -> None:
    (console or Console()).print(build_summary_table(summary))


__all__ = [
    "build_result_set_table",
    "build_settings_table",
    "build_summary_table",
    "print_summary",
]
