"""Update, fetch and serve commands."""

import asyncio
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from .. import events
from ..config import Config
from ..db import validate_connection
from ..exceptions import SourceNotFoundError
from ..ingestion import FetchOutcome
from ..pipeline import Pipeline

console = Console()


def _load_checked_config() -> Config:
    """Load configuration and make sure the database answers."""
    config = Config()
    console.print("[dim]Checking database connection...[/dim]")
    if not validate_connection(config.get_db_config()):
        console.print("[red]❌ Database connection failed![/red]")
        console.print("Please check your database configuration and ensure Postgres is running.")
        raise typer.Exit(1)
    return config


def print_outcomes(outcomes: List[FetchOutcome], names: Dict[int, str]) -> None:
    """Print a table of fetch outcomes."""
    table = Table(title="Fetch Summary")
    table.add_column("ID", style="dim")
    table.add_column("Source", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("New", style="green")
    table.add_column("Skipped", style="yellow")
    table.add_column("Error", style="red")

    for outcome in outcomes:
        table.add_row(
            str(outcome.source_id),
            names.get(outcome.source_id, "?"),
            "[green]✓[/green]" if outcome.success else "[red]✗[/red]",
            str(outcome.new_count),
            str(outcome.skipped_count),
            outcome.error or "",
        )

    console.print(table)
    total_new = sum(o.new_count for o in outcomes)
    failed = sum(1 for o in outcomes if not o.success)
    console.print(f"  New records: [green]{total_new}[/green]  Failed sources: [red]{failed}[/red]")


async def _update(config: Config, wait: bool) -> bool:
    async with Pipeline(config) as pipeline:
        pipeline.requeue_incomplete()
        outcomes = await pipeline.update_all()
        names = {s.id: s.name for s in pipeline.sources.list_sources()}
        print_outcomes(outcomes, names)

        if wait:
            with console.status("Embedding new records..."):
                await pipeline.join()
        return all(o.success for o in outcomes)


def update_command(
    wait: bool = typer.Option(
        True,
        "--wait/--no-wait",
        help="Wait for embeddings of new records before exiting",
    ),
) -> None:
    """Fetch every enabled source once."""
    try:
        config = _load_checked_config()
        success = asyncio.run(_update(config, wait))
    except typer.Exit:
        raise
    except KeyboardInterrupt:
        console.print("\n[yellow]Update interrupted by user[/yellow]")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[red]Update failed: {e}[/red]")
        raise typer.Exit(1)

    if not success:
        raise typer.Exit(1)


async def _fetch(config: Config, source_id: int, wait: bool) -> FetchOutcome:
    async with Pipeline(config) as pipeline:
        outcome = await pipeline.fetch_one(source_id)
        source = pipeline.sources.get(source_id)
        print_outcomes([outcome], {source_id: source.name if source else "?"})
        if wait:
            with console.status("Embedding new records..."):
                await pipeline.join()
        return outcome


def fetch_command(
    source_id: int = typer.Argument(..., help="Source ID (see 'feedlens sources list')"),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Wait for embeddings"),
) -> None:
    """Fetch a single source."""
    try:
        config = _load_checked_config()
        outcome = asyncio.run(_fetch(config, source_id, wait))
    except typer.Exit:
        raise
    except SourceNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[red]Fetch failed: {e}[/red]")
        raise typer.Exit(1)

    if not outcome.success:
        raise typer.Exit(1)


def _subscribe_console(pipeline: Pipeline) -> None:
    """Echo scheduler and embedding events to the console."""
    bus = pipeline.bus
    bus.on(
        events.FEED_FETCH_SUCCESS,
        lambda p: console.print(f"[green]✓[/green] source {p['source_id']}: {p['new_count']} new"),
    )
    bus.on(
        events.FEED_FETCH_ERROR,
        lambda p: console.print(f"[red]✗[/red] source {p['source_id']}: {p['error']}"),
    )
    bus.on(
        events.EMBEDDING_ERROR,
        lambda p: console.print(f"[red]Embedding of record {p['record_id']} failed: {p['error']}[/red]"),
    )


async def _serve(config: Config, interval: Optional[int]) -> None:
    async with Pipeline(config) as pipeline:
        _subscribe_console(pipeline)
        requeued = pipeline.requeue_incomplete()
        if requeued:
            console.print(f"[dim]Requeued {requeued} unembedded records[/dim]")
        await pipeline.run_periodically(interval)


def serve_command(
    interval: Optional[int] = typer.Option(
        None,
        "--interval",
        "-i",
        help="Minutes between updates (default from config)",
    ),
) -> None:
    """Keep updating sources on an interval and embedding new records."""
    try:
        config = _load_checked_config()
        minutes = interval or config.config.scheduler.update_interval_minutes
        console.print(f"[bold]Serving; updating every {minutes} minutes. Ctrl+C to stop.[/bold]")
        asyncio.run(_serve(config, interval))
    except typer.Exit:
        raise
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")
    except Exception as e:
        console.print(f"[red]Serve failed: {e}[/red]")
        raise typer.Exit(1)
