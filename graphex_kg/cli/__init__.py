"""
Command-Line Interface

CLI commands for GraphexKG operations.

Commands:
    graphex-kg generate  - Build a knowledge graph from a text/Markdown file
    graphex-kg estimate  - Estimate the cost of generating a graph
    graphex-kg usage     - Show a user's spend and per-operation breakdown

Usage:
    # Generate and print Mermaid
    graphex-kg generate notes.md --user alice --db ./usage.duckdb

    # Machine-readable output
    graphex-kg generate notes.md --json

    # Cost before running
    graphex-kg estimate notes.md

    # Spend this month
    graphex-kg usage alice --period month --db ./usage.duckdb
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from graphex_kg.errors import GraphexError, format_error_for_user

__all__ = ["main", "app"]

app = typer.Typer(
    name="graphex-kg",
    help="Turn documents into concept graphs",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def _configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(config_path: Optional[Path], db: Optional[Path]):
    from graphex_kg.config import KGConfig

    config = KGConfig.from_file(config_path) if config_path else KGConfig()
    if db is not None:
        config = config.with_overrides(usage_db_path=str(db))
    return config


def _read_document(path: Path) -> str:
    return path.read_text(encoding="utf-8")


@app.command()
def generate(
    path: Path = typer.Argument(..., help="Text or Markdown file", exists=True, dir_okay=False),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Document title"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User to bill"),
    max_nodes: Optional[int] = typer.Option(None, "--max-nodes", "-n", help="Node budget"),
    db: Optional[Path] = typer.Option(None, "--db", help="DuckDB usage ledger"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML config"),
    as_json: bool = typer.Option(False, "--json", help="Print the response as JSON"),
) -> None:
    """Generate a knowledge graph for a document."""

    async def _run() -> None:
        from graphex_kg.pipeline import CallbackProgressSink, GraphPipeline
        from graphex_kg.types.graph import GenerateGraphRequest

        config = _load_config(config_path, db)
        request = GenerateGraphRequest(
            document_id=str(path.resolve()),
            document_text=_read_document(path),
            document_title=title or path.stem,
            user_id=user,
            max_nodes=max_nodes or config.max_nodes,
        )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=as_json,
        ) as progress:
            task = progress.add_task("Starting...", total=100)
            sink = CallbackProgressSink(
                lambda update: progress.update(
                    task,
                    completed=update.percent_complete,
                    description=update.message,
                )
            )
            async with GraphPipeline.from_config(config, progress=sink) as pipeline:
                response = await pipeline.generate(request)

        if as_json:
            console.print_json(response.model_dump_json())
            return

        stats = response.statistics
        console.print()
        console.print(Panel(
            f"  Chunks: {stats.chunks_processed}\n"
            f"  Nodes: {stats.total_nodes} ({stats.merged_nodes} merged)\n"
            f"  Edges: {stats.total_edges} ({stats.duplicate_edges_removed} duplicates removed)\n"
            f"  Quality: {stats.quality_score}/100\n"
            f"  Cost: ${stats.total_cost:.4f}\n"
            f"  Models: {', '.join(response.metadata.models) or '-'}\n"
            f"  Duration: {stats.processing_time_ms / 1000:.1f}s",
            title="Fallback Graph" if response.metadata.fallback_used else "Graph Generated",
            border_style="yellow" if response.metadata.fallback_used else "green",
        ))
        if response.metadata.warnings:
            console.print("[yellow]Warnings:[/]")
            for warning in response.metadata.warnings:
                console.print(f"  - {warning}")
        console.print()
        console.print(response.mermaid_code, markup=False, highlight=False)

    try:
        asyncio.run(_run())
    except GraphexError as e:
        console.print(f"[red]{format_error_for_user(e)}[/]")
        console.print(f"[dim]{e}[/]")
        raise typer.Exit(code=1)


@app.command()
def estimate(
    path: Path = typer.Argument(..., help="Text or Markdown file", exists=True, dir_okay=False),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User to check"),
    db: Optional[Path] = typer.Option(None, "--db", help="DuckDB usage ledger"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML config"),
) -> None:
    """Estimate the cost of generating a graph for a document."""

    async def _run() -> None:
        from graphex_kg.pipeline import GraphPipeline

        config = _load_config(config_path, db)
        async with GraphPipeline.from_config(config) as pipeline:
            result = await pipeline.estimate_cost(_read_document(path), user)

        table = Table(title=f"Estimate: {path.name}")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right", style="green")
        table.add_row("Chunks", str(result.estimated_chunks))
        table.add_row("Tokens", f"{result.estimated_tokens:,}")
        table.add_row("Cost", f"${result.estimated_cost:.4f}")
        table.add_row("Within budget", "yes" if result.budget_check.within_budget else "no")
        table.add_row("Available", f"${result.budget_check.available:.2f}")
        if result.budget_check.reason:
            table.add_row("Reason", result.budget_check.reason)
        console.print(table)

    asyncio.run(_run())


@app.command()
def usage(
    user: str = typer.Argument(..., help="User id"),
    period: str = typer.Option("day", "--period", "-p", help="day or month"),
    db: Optional[Path] = typer.Option(None, "--db", help="DuckDB usage ledger"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML config"),
) -> None:
    """Show a user's spend and per-operation breakdown."""
    if period not in ("day", "month"):
        console.print(f"[red]Unknown period: {period}[/]")
        raise typer.Exit(code=2)

    async def _run() -> None:
        from graphex_kg.budget import CostGuard, DuckDBUsageStore, InMemoryCacheStore

        config = _load_config(config_path, db)
        store = DuckDBUsageStore(config.usage_db_path)
        await store.initialize()
        try:
            guard = CostGuard.from_config(config, InMemoryCacheStore(), store)
            summary = await guard.get_user_summary(user, period)
            breakdown = await guard.get_cost_breakdown(user, period)
        finally:
            await store.close()

        console.print(Panel(
            f"  Total cost: ${summary.total_cost:.4f}\n"
            f"  Operations: {summary.operation_count}\n"
            f"  Tokens: {summary.total_tokens:,} "
            f"({summary.input_tokens:,} in / {summary.output_tokens:,} out)\n"
            f"  Average per operation: ${summary.average_cost_per_operation:.4f}",
            title=f"Usage for {user} ({period})",
        ))

        if breakdown:
            table = Table(title="By Operation")
            table.add_column("Operation", style="cyan")
            table.add_column("Calls", justify="right")
            table.add_column("Cost", justify="right", style="green")
            table.add_column("Share", justify="right", style="dim")
            for row in breakdown:
                table.add_row(
                    row.operation,
                    str(row.count),
                    f"${row.total_cost:.4f}",
                    f"{row.percentage:.1f}%",
                )
            console.print(table)

    asyncio.run(_run())


def main() -> None:
    """Entry point for the CLI."""
    app()
