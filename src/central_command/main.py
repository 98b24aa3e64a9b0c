"""Main CLI entry point for Central Command.

This module provides the main Typer application with sub-commands for
running the poller, inspecting the work queue and trying out the routing
heuristics.

Usage:
    central-command poller start
    central-command poller start --once
    central-command queue pending
    central-command route classify "Draft a follow up email to the client"
    central-command route cost claude 30 100
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from central_command.cli import poller as poller_cli
from central_command.cli import queue as queue_cli
from central_command.cli import route as route_cli
from central_command.config import CentralCommandConfig, load_config
from central_command.logging import setup_logging

app = typer.Typer(
    name="central-command",
    help="Central Command: work queue intake and agent dispatch",
    no_args_is_help=True,
)

app.add_typer(poller_cli.app, name="poller", help="Run the work queue poller")
app.add_typer(queue_cli.app, name="queue", help="Inspect the work queue")
app.add_typer(route_cli.app, name="route", help="Try the routing heuristics")

console = Console()


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded Central Command configuration
    """

    def __init__(self, config: CentralCommandConfig):
        self.config = config


_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: CentralCommandConfig) -> AppContext:
    """Initialize the global application context."""
    global _app_context
    _app_context = AppContext(config)
    return _app_context


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure global options and initialize application context."""
    try:
        config = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1)

    if verbose:
        config.logging.level = "DEBUG"
    setup_logging(config.logging)

    initialize_context(config)

    if verbose:
        console.print("[dim]Debug logging enabled[/dim]")


if __name__ == "__main__":
    app()
