"""Sources management commands."""

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ..config import Config, SourceConfig, load_sources, save_sources
from ..db import get_connection_pool
from ..db.sources import SourceStore
from ..events import EventBus
from ..ingestion import Extractor, FeedScheduler, ScriptSandbox
from ..pipeline import Pipeline

console = Console()
sources_app = typer.Typer(help="Manage feed sources")


def _load_source_configs(config: Config) -> List[SourceConfig]:
    try:
        return load_sources(config.sources_path)
    except FileNotFoundError:
        console.print("[red]Sources file not found. Run 'feedlens init' first.[/red]")
        raise typer.Exit(1)


def _store(config: Config) -> SourceStore:
    return SourceStore(get_connection_pool(config.get_db_config()))


@sources_app.command("list")
def sources_list() -> None:
    """List sources known to the database."""
    config = Config()
    try:
        sources = _store(config).list_sources()
    except Exception as e:
        console.print(f"[red]Could not read sources: {e}[/red]")
        raise typer.Exit(1)

    if not sources:
        console.print("[yellow]No sources in the database. Run 'feedlens sources sync'.[/yellow]")
        return

    table = Table(title="Sources")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Enabled", style="yellow")
    table.add_column("Script", style="magenta")
    table.add_column("Errors", style="red")
    table.add_column("Last Updated", style="green")
    table.add_column("URL", style="blue")

    for source in sources:
        table.add_row(
            str(source.id),
            source.name,
            "✓" if source.enabled else "✗",
            "✓" if source.parsing_script else "",
            str(source.error_count),
            source.last_updated.strftime("%Y-%m-%d %H:%M") if source.last_updated else "never",
            source.url,
        )

    console.print(table)


@sources_app.command("add")
def sources_add(
    name: str = typer.Option(..., "--name", "-n", help="Source name"),
    url: str = typer.Option(..., "--url", "-u", help="Feed or page URL"),
    proxy: Optional[str] = typer.Option(None, "--proxy", help="Proxy for this source only"),
    script_file: Optional[Path] = typer.Option(
        None,
        "--script",
        "-s",
        help="File with a parse(content) script for non-standard pages",
        exists=True,
        dir_okay=False,
    ),
    enabled: bool = typer.Option(True, "--enabled/--disabled", help="Fetch this source on updates"),
) -> None:
    """Add a new source to sources.yaml."""
    config = Config()
    try:
        sources = load_sources(config.sources_path)
    except FileNotFoundError:
        sources = []

    if any(s.name == name or s.url == url for s in sources):
        console.print(f"[red]Source '{name}' or URL already exists.[/red]")
        raise typer.Exit(1)

    new_source = SourceConfig(
        name=name,
        url=url,
        proxy_override=proxy,
        parsing_script=script_file.read_text() if script_file else None,
        enabled=enabled,
    )

    sources.append(new_source)
    save_sources(sources, config.sources_path)
    console.print(f"[green]✅ Added source: {name}[/green] (run 'feedlens sources sync' to apply)")


async def _delete_from_database(config: Config, name: str) -> List[int]:
    async with Pipeline(config) as pipeline:
        return [
            source.id
            for source in pipeline.sources.list_sources()
            if source.name == name and pipeline.delete_source(source.id)
        ]


@sources_app.command("remove")
def sources_remove(
    name: str = typer.Argument(..., help="Source name to remove"),
    keep_records: bool = typer.Option(
        False,
        "--keep-db",
        help="Only edit sources.yaml; leave the source and its records in the database",
    ),
) -> None:
    """Remove a source and, by default, its records."""
    config = Config()
    sources = _load_source_configs(config)

    remaining = [s for s in sources if s.name != name]
    if len(remaining) == len(sources):
        console.print(f"[red]Source '{name}' not found.[/red]")
        raise typer.Exit(1)

    save_sources(remaining, config.sources_path)
    console.print(f"[green]✅ Removed source: {name}[/green]")

    if keep_records:
        return

    try:
        deleted = asyncio.run(_delete_from_database(config, name))
    except Exception as e:
        console.print(f"[red]Could not delete from database: {e}[/red]")
        raise typer.Exit(1)

    for source_id in deleted:
        console.print(f"[dim]Deleted source {source_id} with its records and embeddings[/dim]")


@sources_app.command("sync")
def sources_sync() -> None:
    """Upsert sources.yaml into the database."""
    config = Config()
    sources = _load_source_configs(config)
    try:
        source_map = _store(config).sync_sources(sources)
    except Exception as e:
        console.print(f"[red]Sync failed: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✅ Synced {len(source_map)} sources[/green]")


@sources_app.command("test")
def sources_test(
    name: Optional[str] = typer.Argument(None, help="Source name to test (or test all)"),
) -> None:
    """Fetch and extract sources without storing anything."""
    config = Config()
    sources = _load_source_configs(config)

    if name:
        sources = [s for s in sources if s.name == name]
        if not sources:
            console.print(f"[red]Source '{name}' not found.[/red]")
            raise typer.Exit(1)

    settings = config.config
    extractor = Extractor(ScriptSandbox(timeout=settings.sandbox.timeout_seconds))
    # Previews never touch the stores
    scheduler = FeedScheduler(None, None, EventBus(), extractor, settings=settings.scheduler)

    for source in sources:
        if not source.enabled:
            console.print(f"[yellow]⚠️  {source.name}: Disabled[/yellow]")
            continue

        preview = asyncio.run(
            scheduler.preview(source.url, script=source.parsing_script, proxy=source.proxy_override)
        )
        if not preview.success:
            console.print(f"[red]❌ {source.name}: Failed - {preview.error}[/red]")
            continue

        heading = preview.title or source.url
        console.print(f"[green]✅ {source.name}: OK[/green] [dim]{heading}[/dim]")
        for item in preview.items:
            console.print(f"   • {item.title or '(untitled)'} [blue]{item.url or '(no url)'}[/blue]")
