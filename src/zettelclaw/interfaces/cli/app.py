"""CLI application for zettelclaw using Rich and Typer."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from zettelclaw.core.checkpoint import load_sweep_state
from zettelclaw.core.config import (
    ConfigError,
    load_runtime_config,
    resolve_hook_state_path,
    setup_logging,
)
from zettelclaw.core.handler import handle_event
from zettelclaw.core.sweep import PARTIAL_MTIME
from zettelclaw.core.types import HookEvent

app = typer.Typer(
    name="zettelclaw",
    help="zettelclaw - sweep agent session transcripts into your vault",
    no_args_is_help=True,
)

console = Console()


def _read_event(event_file: Optional[Path]) -> HookEvent:
    """Parse a hook event from a file or stdin."""
    if event_file is not None:
        try:
            raw_text = event_file.expanduser().read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read event file {event_file}: {e}") from e
    else:
        raw_text = sys.stdin.read()

    try:
        raw = json.loads(raw_text) if raw_text.strip() else {}
    except json.JSONDecodeError as e:
        raise ConfigError(f"Event is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError("Event must be a JSON object")

    try:
        return HookEvent.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid event: {e}") from e


def _state_path(state: Optional[Path]) -> Path:
    return state.expanduser() if state else resolve_hook_state_path()


@app.command()
def run(
    event_file: Optional[Path] = typer.Option(
        None,
        "--event",
        "-e",
        help="Hook event JSON file (default: read from stdin)",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Runtime config file (YAML or JSON), used as context.cfg",
    ),
    state: Optional[Path] = typer.Option(
        None,
        "--state",
        help="Sweep state file (default: $OPENCLAW_STATE_DIR/hooks/zettelclaw/state.json)",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        "-d",
        help="Enable debug logging",
    ),
):
    """Run the hook once for an event and print its status lines."""
    setup_logging()
    if debug:
        logging.getLogger("zettelclaw").setLevel(logging.DEBUG)

    try:
        event = _read_event(event_file)
        if config_file is not None:
            event.context["cfg"] = load_runtime_config(config_file)
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    asyncio.run(handle_event(event, state_path=_state_path(state)))

    if not event.messages:
        console.print("[dim]Nothing to report.[/dim]")
    for message in event.messages:
        console.print(message, markup=False)


@app.command()
def status(
    limit: int = typer.Option(
        10,
        "--limit",
        "-n",
        min=1,
        help="Number of cursors to show",
    ),
    state: Optional[Path] = typer.Option(
        None,
        "--state",
        help="Sweep state file (default: $OPENCLAW_STATE_DIR/hooks/zettelclaw/state.json)",
    ),
):
    """Show the last sweep time and the most recently updated cursors."""
    state_path = _state_path(state)
    sweep_state = load_sweep_state(state_path)

    last_sweep = (
        sweep_state.last_sweep_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        if sweep_state.last_sweep_at
        else "never"
    )
    console.print(f"[dim]State: {state_path}[/dim]")
    console.print(f"Last sweep: [cyan]{last_sweep}[/cyan]")
    console.print(f"Tracked transcripts: [cyan]{len(sweep_state.files)}[/cyan]")

    if not sweep_state.files:
        return

    table = Table(title="Recent cursors", show_header=True, header_style="bold cyan")
    table.add_column("Transcript")
    table.add_column("Offset", justify="right")
    table.add_column("Status")
    table.add_column("Updated")

    ordered = sorted(
        sweep_state.files.items(), key=lambda item: item[1].updated_at, reverse=True
    )
    for path, cursor in ordered[:limit]:
        if cursor.mtime == PARTIAL_MTIME:
            cursor_status = "[yellow]partial[/yellow]"
        else:
            cursor_status = "[green]synced[/green]"
        table.add_row(
            path,
            str(cursor.offset),
            cursor_status,
            cursor.updated_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


def run_cli():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run_cli()
