"""Poller control CLI commands.

This module provides the command that runs the work queue poller, either
continuously until interrupted or for a single cycle.
"""

from __future__ import annotations

import asyncio
import signal
from typing import Annotated

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from central_command.orchestrator.dispatcher import DispatchOutcome
from central_command.orchestrator.poller import Poller
from central_command.service import build_service

app = typer.Typer(help="Poller control commands")
console = Console()


@app.command()
def start(
    once: Annotated[
        bool,
        typer.Option("--once", help="Run a single poll cycle and exit"),
    ] = False,
) -> None:
    """Start polling the work queue.

    The poller fetches queued items, routes them to agents in priority
    order and records every attempt, until interrupted with Ctrl+C. An
    in-flight item is always allowed to finish before the poller exits.
    """
    from central_command.main import get_app_context

    ctx = get_app_context()
    config = ctx.config

    console.print()
    console.print(
        Panel(
            f"[bold cyan]Central Command Poller[/bold cyan]\n\n"
            f"[bold]Work Queue:[/bold] {config.store.work_queue_table}\n"
            f"[bold]Ledger:[/bold] {config.store.ledger_table}\n"
            f"[bold]Executor:[/bold] {config.executor.url}\n"
            f"[bold]Poll Interval:[/bold] {config.poller.poll_interval_seconds} seconds",
            title="Starting Poller",
            border_style="cyan",
        )
    )
    console.print()

    service = build_service(config)

    if once:

        async def run_once() -> list[DispatchOutcome]:
            try:
                return await service.poller.run_cycle()
            finally:
                await service.close()

        try:
            outcomes = asyncio.run(run_once())
        except Exception as e:
            console.print(f"[red]Poll cycle failed:[/red] {e}")
            raise typer.Exit(code=1)

        console.print(generate_outcome_table(outcomes))
        failed = [outcome for outcome in outcomes if not outcome.succeeded]
        if failed:
            raise typer.Exit(code=2)
        return

    shutdown_event = asyncio.Event()

    def signal_handler(sig, frame):
        console.print()
        console.print("[yellow]Shutdown signal received. Finishing current item...[/yellow]")
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    async def run_poller():
        try:
            await service.poller.start()

            console.print("[bold green]Poller running[/bold green]")
            console.print("[dim]Press Ctrl+C to stop[/dim]")
            console.print()

            with Live(generate_status_table(service.poller), refresh_per_second=1) as live:
                while not shutdown_event.is_set():
                    await asyncio.sleep(0.5)
                    live.update(generate_status_table(service.poller))
        finally:
            await service.poller.stop()
            await service.close()
            console.print()
            console.print("[green]Poller stopped[/green]")

    try:
        asyncio.run(run_poller())
    except Exception as e:
        console.print(f"[red]Fatal error:[/red] {e}")
        raise typer.Exit(code=1)


def generate_status_table(poller: Poller) -> Table:
    """Build a status table from ``poller.get_status()``."""
    status = poller.get_status()

    table = Table(title="Poller Status", show_header=False)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")

    status_text = "[green]Running[/green]" if status["is_running"] else "[dim]Stopped[/dim]"
    table.add_row("Status", status_text)
    table.add_row("Current Task", status["current_task_id"] or "-")
    table.add_row("Cycles", str(status["cycles"]))
    table.add_row("Processed", str(status["processed"]))
    table.add_row("Done", f"[green]{status['done']}[/green]")
    table.add_row("Failed", f"[red]{status['failed']}[/red]")
    table.add_row("Last Fetch Error", status["last_fetch_error"] or "-")
    table.add_row("Poll Interval", f"{status['poll_interval']}s")

    return table


def generate_outcome_table(outcomes: list[DispatchOutcome]) -> Table:
    """Build a table summarizing the outcomes of one cycle."""
    table = Table(title=f"Cycle Results ({len(outcomes)} items)")
    table.add_column("Task", style="cyan")
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("Cost", justify="right")
    table.add_column("Elapsed", justify="right")
    table.add_column("Error", style="red")

    for outcome in outcomes:
        status_style = "green" if outcome.succeeded else "red"
        table.add_row(
            outcome.task_id,
            outcome.agent or "-",
            f"[{status_style}]{outcome.status.value}[/{status_style}]",
            f"${outcome.cost:.2f}" if outcome.cost is not None else "-",
            f"{outcome.elapsed_seconds:.1f}s",
            outcome.error or "",
        )

    return table
