"""Routing heuristic CLI commands.

Offline helpers that run the classifier and the cost model with the
configured constants, without touching the work queue.
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from central_command.orchestrator.classifier import RoutingPolicy, analyze_task
from central_command.orchestrator.cost_model import CostRates, calculate_cost

app = typer.Typer(help="Routing heuristic commands")
console = Console()


@app.command()
def classify(
    text: Annotated[str, typer.Argument(help="Task id and/or routing payload text")],
) -> None:
    """Show which agent the classifier would assign to TEXT."""
    from central_command.main import get_app_context

    ctx = get_app_context()
    assignment = analyze_task(text, RoutingPolicy.from_config(ctx.config.routing))

    override_line = (
        f"[bold]Override:[/bold] {assignment.override}\n" if assignment.override else ""
    )
    console.print(
        Panel(
            f"[bold]Agent:[/bold] {assignment.agent}\n"
            f"[bold]Target:[/bold] {assignment.target}\n"
            f"[bold]Confidence:[/bold] {assignment.confidence:.2f}\n"
            f"{override_line}"
            f"[bold]Reasoning:[/bold] {assignment.reasoning}",
            title="Agent Assignment",
            border_style="green",
        )
    )

    table = Table(title="Keyword Scores")
    table.add_column("Agent", style="cyan")
    table.add_column("Score", justify="right")
    for agent, score in assignment.scores.items():
        table.add_row(agent, str(score))
    console.print(table)


@app.command()
def cost(
    agent: Annotated[str, typer.Argument(help="Agent name (claude, gpt4, ...)")],
    seconds: Annotated[float, typer.Argument(help="Execution time in seconds", min=0)],
    tokens: Annotated[int, typer.Argument(help="Tokens consumed", min=0)] = 0,
) -> None:
    """Estimate the cost of one attempt."""
    from central_command.main import get_app_context

    ctx = get_app_context()
    rates = CostRates.from_config(ctx.config.cost, fallback_agent=ctx.config.routing.default_agent)
    amount = calculate_cost(agent, seconds, tokens, rates)
    console.print(f"[bold]{agent}[/bold]: ${amount:.2f}")
