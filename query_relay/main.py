from __future__ import annotations

import contextlib
import signal
import sys
import threading
from pathlib import Path
from typing import Generator, Optional

import typer
from rich.console import Console

from query_relay.codec import decode_payload
from query_relay.config import load_settings
from query_relay.errors import ConfigurationError, EncodingError, PipelineCancelled, RelayError
from query_relay.pipeline import run_with_retry
from query_relay.reporter import build_result_set_table, build_settings_table, print_summary
from query_relay.utils.logging import configure_logging, get_logger

app = typer.Typer(help="Relay the result of one SQL query to a RabbitMQ queue.")
log = get_logger(__name__)

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="YAML settings file with postgres_config / rabbit_config sections.",
    dir_okay=False,
)


@contextlib.contextmanager
def _sigterm_sets(event: threading.Event) -> Generator[None, None, None]:
    """Route SIGTERM to `event` for the duration of the block (main thread only)."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame) -> None:  # noqa: ARG001
        log.warning("Termination requested, cancelling run")
        event.set()

    previous = signal.signal(signal.SIGTERM, _handler)
    try:
        yield
    finally:
        if previous is not None:
            signal.signal(signal.SIGTERM, previous)


@app.command()
def info(config: Optional[Path] = CONFIG_OPTION) -> None:
    """
    Show effective configuration values (credentials masked).
    """
    try:
        settings = load_settings(config)
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=exc.exit_code)
    Console().print(build_settings_table(settings.masked()))


@app.command()
def run(
    config: Optional[Path] = CONFIG_OPTION,
    query: Optional[str] = typer.Option(
        None, "--query", "-q", help="SQL to execute (default from settings)."
    ),
    queue: Optional[str] = typer.Option(
        None, "--queue", help="Target queue name (default from settings)."
    ),
    attempts: Optional[int] = typer.Option(
        None,
        "--attempts",
        min=1,
        help="Total pipeline attempts on query/delivery failure (default from settings).",
    ),
    json_logs: Optional[bool] = typer.Option(
        None, "--json-logs/--text-logs", help="Override LOG_JSON."
    ),
) -> None:
    """
    Run the query once and publish its result as a single message.
    """
    try:
        settings = load_settings(
            config,
            relay_query=query,
            broker_queue=queue,
            pipeline_max_attempts=attempts,
        )
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=exc.exit_code)

    configure_logging(
        level=settings.log_level,
        json_logs=settings.log_json if json_logs is None else json_logs,
    )

    cancel_event = threading.Event()
    try:
        with _sigterm_sets(cancel_event):
            summary = run_with_retry(settings, cancel_event=cancel_event)
    except PipelineCancelled as exc:
        typer.echo(f"Cancelled: {exc.message}", err=True)
        raise typer.Exit(code=exc.exit_code)
    except RelayError as exc:
        typer.echo(f"{type(exc).__name__}: {exc}", err=True)
        raise typer.Exit(code=exc.exit_code)

    print_summary(summary)


@app.command()
def decode(
    source: str = typer.Argument(..., help="Payload file to decode, or '-' for stdin."),
    max_rows: Optional[int] = typer.Option(None, "--max-rows", "-n", min=0),
) -> None:
    """
    Decode a payload body and print its rows.
    """
    try:
        body = sys.stdin.buffer.read() if source == "-" else Path(source).read_bytes()
    except OSError as exc:
        typer.echo(f"Could not read {source}: {exc}", err=True)
        raise typer.Exit(code=1)

    try:
        result_set = decode_payload(body)
    except EncodingError as exc:
        typer.echo(f"{type(exc).__name__}: {exc}", err=True)
        raise typer.Exit(code=exc.exit_code)

    Console().print(build_result_set_table(result_set, max_rows=max_rows))


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(PipelineCancelled.exit_code)


if __name__ == "__main__":
    main()
