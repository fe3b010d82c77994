"""Embedding and search commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from ..config import Config
from ..pipeline import Pipeline

console = Console()
embed_app = typer.Typer(help="Manage embeddings")


async def _queue_source(config: Config, source_id: int) -> int:
    async with Pipeline(config) as pipeline:
        queued = pipeline.queue_for_source(source_id)
        with console.status(f"Embedding {queued} records..."):
            await pipeline.join()
        return queued


@embed_app.command("source")
def embed_source(
    source_id: int = typer.Argument(..., help="Source ID"),
) -> None:
    """Embed every record of a source that is not embedded yet."""
    try:
        queued = asyncio.run(_queue_source(Config(), source_id))
    except Exception as e:
        console.print(f"[red]Embedding failed: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✅ Processed {queued} records[/green]")


async def _resume(config: Config) -> int:
    async with Pipeline(config) as pipeline:
        queued = pipeline.requeue_incomplete()
        with console.status(f"Embedding {queued} records..."):
            await pipeline.join()
        return queued


@embed_app.command("resume")
def embed_resume() -> None:
    """Embed records left unembedded or pending by an earlier run.

    Failed records are skipped; use 'feedlens embed source' to retry them.
    """
    try:
        queued = asyncio.run(_resume(Config()))
    except Exception as e:
        console.print(f"[red]Embedding failed: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✅ Processed {queued} records[/green]")


async def _reset(config: Config) -> int:
    async with Pipeline(config) as pipeline:
        return pipeline.reset()


@embed_app.command("reset")
def embed_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete all vectors and mark every record unembedded."""
    if not yes:
        typer.confirm("Delete all embeddings?", abort=True)
    try:
        count = asyncio.run(_reset(Config()))
    except Exception as e:
        console.print(f"[red]Reset failed: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✅ Reset {count} records[/green]")


async def _stats(config: Config):
    async with Pipeline(config) as pipeline:
        return pipeline.get_stats()


@embed_app.command("stats")
def embed_stats() -> None:
    """Show embedding coverage per source."""
    try:
        stats = asyncio.run(_stats(Config()))
    except Exception as e:
        console.print(f"[red]Could not read statistics: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Embedding Coverage")
    table.add_column("ID", style="dim")
    table.add_column("Source", style="cyan")
    table.add_column("Embedded", style="green")
    table.add_column("Total", style="yellow")
    table.add_column("Percent", style="bold")

    for row in stats:
        table.add_row(
            str(row.source_id), row.source_name, str(row.embedded), str(row.total), f"{row.percent}%"
        )
    console.print(table)


async def _search(config: Config, query: str, limit: int):
    async with Pipeline(config) as pipeline:
        return await pipeline.search(query, limit)


def search_command(
    query: str = typer.Argument(..., help="Free-text query"),
    limit: int = typer.Option(10, "--limit", "-l", help="Maximum results", min=1, max=100),
) -> None:
    """Semantic search over embedded records."""
    try:
        hits = asyncio.run(_search(Config(), query, limit))
    except Exception as e:
        console.print(f"[red]Search failed: {e}[/red]")
        raise typer.Exit(1)

    if not hits:
        console.print("[yellow]No results.[/yellow]")
        return

    table = Table(title=f"Results for '{query}'")
    table.add_column("#", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Date", style="green")
    table.add_column("Distance", style="yellow")
    table.add_column("URL", style="blue")

    for rank, hit in enumerate(hits, start=1):
        table.add_row(str(rank), hit.title, hit.publish_date or "", f"{hit.distance:.3f}", hit.url)
    console.print(table)
