"""Work queue inspection CLI commands."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from central_command.errors import FetchError
from central_command.orchestrator.poller import order_by_priority
from central_command.store.airtable import AirtableRecordStore

app = typer.Typer(help="Work queue commands")
console = Console()


@app.command()
def pending() -> None:
    """List queued items in the order the poller would process them."""
    from central_command.main import get_app_context

    ctx = get_app_context()

    async def _fetch():
        async with AirtableRecordStore(ctx.config.store) as store:
            return await store.fetch_queued()

    try:
        items = asyncio.run(_fetch())
    except FetchError as e:
        console.print(f"[red]Error fetching work queue:[/red] {e}")
        raise typer.Exit(code=1)

    if not items:
        console.print("[yellow]No queued items[/yellow]")
        return

    table = Table(title=f"Queued Items ({len(items)} total)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Task", style="cyan")
    table.add_column("Priority")
    table.add_column("Agent")
    table.add_column("Target")
    table.add_column("Created", style="dim")

    for position, item in enumerate(order_by_priority(items), start=1):
        table.add_row(
            str(position),
            item.task_id,
            item.priority.value,
            item.assigned_agent or "[dim]auto[/dim]",
            item.system_target or "[dim]auto[/dim]",
            item.created_at.strftime("%Y-%m-%d %H:%M") if item.created_at else "-",
        )

    console.print(table)
