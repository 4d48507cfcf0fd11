"""
CLI interface for Usage Tracker.

Provides command-line access to recording and reporting token usage.
"""

import json
import logging
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler

from usage_tracker.config.loader import TrackerConfig, default_config, load_tracker_config
from usage_tracker.plugin.tracker import Notification, NotificationVariant, UsageTracker

app = typer.Typer()
console = Console()
err_console = Console(stderr=True)

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

_VARIANT_STYLES = {
    NotificationVariant.INFO: "cyan",
    NotificationVariant.WARNING: "yellow",
    NotificationVariant.ERROR: "red",
}


class _State:
    config_path: Optional[str] = None


state = _State()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging through rich on stderr."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _print_notification(notification: Notification) -> None:
    style = _VARIANT_STYLES[notification.variant]
    err_console.print(f"[{style}]{notification.message}[/]", markup=True, highlight=False)


def _load_config() -> TrackerConfig:
    if state.config_path is None:
        return default_config()
    try:
        return load_tracker_config(state.config_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading config:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


def _start_tracker() -> UsageTracker:
    config = _load_config()
    if not config.enabled:
        console.print("[yellow]Usage tracking is disabled in the configuration[/]")
        sys.exit(EXIT_CODE_PASS)

    tracker = UsageTracker(config, notify=_print_notification)
    if not tracker.start():
        sys.exit(EXIT_CODE_FAIL)
    return tracker


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML configuration file"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show informational log messages"
    )
):
    """Usage Tracker CLI."""
    state.config_path = config
    setup_logging(verbose)
    if ctx.invoked_subcommand is None:
        console.print("Usage Tracker - Use --help to see available commands")


@app.command()
def init():
    """Create or migrate the usage database."""
    tracker = _start_tracker()
    console.print(f"[green]✓[/] Database ready at {tracker.repository.db_path}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def ingest(
    path: str = typer.Argument(
        ...,
        help="File of newline-delimited JSON host events, or - for stdin"
    )
):
    """
    Record usage from host events.

    Lines that are not completed assistant messages, or that were already
    recorded, are skipped.
    """
    tracker = _start_tracker()

    try:
        stream = sys.stdin if path == "-" else open(path, "r", encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    recorded = 0
    skipped = 0
    try:
        for line_number, line in enumerate(stream, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError as e:
                console.print(f"[yellow]Skipping line {line_number}:[/] invalid JSON ({e.msg})")
                skipped += 1
                continue
            if tracker.handle_event(event) is None:
                skipped += 1
            else:
                recorded += 1
    finally:
        if stream is not sys.stdin:
            stream.close()

    console.print(f"[green]✓[/] Recorded {recorded} message(s), skipped {skipped}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def usage(
    session_id: str = typer.Argument(..., help="Session to report on"),
    full: bool = typer.Option(
        False,
        "--full",
        "-f",
        help="Show input/output/cache breakdown per model"
    )
):
    """Show token usage for one session."""
    tracker = _start_tracker()
    report = tracker.session_usage(session_id, full=full)
    console.print(report, markup=False, highlight=False, soft_wrap=True)
    sys.exit(EXIT_CODE_PASS)


@app.command(name="global")
def global_usage(
    full: bool = typer.Option(
        False,
        "--full",
        "-f",
        help="Show breakdown by model for each period"
    ),
    year: bool = typer.Option(
        False,
        "--year",
        "-y",
        help="Include this year"
    ),
    all_time: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Include this year and all time"
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model",
        "-m",
        help="Only count models whose name contains this text"
    )
):
    """Show token usage on this machine for today, this week and this month."""
    tracker = _start_tracker()
    report = tracker.global_usage(full=full, year=year, all_time=all_time, model=model)
    console.print(report, markup=False, highlight=False, soft_wrap=True)
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
