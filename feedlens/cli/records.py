"""Record browsing commands."""

import typer
from rich.console import Console
from rich.table import Table

from ..config import Config
from ..db import RecordStore, get_connection_pool

console = Console()
records_app = typer.Typer(help="Browse and flag records")


def _store() -> RecordStore:
    return RecordStore(get_connection_pool(Config().get_db_config()))


@records_app.command("list")
def records_list(
    source_id: int = typer.Argument(..., help="Source ID"),
    limit: int = typer.Option(20, "--limit", "-n", help="Rows to show"),
) -> None:
    """List the newest records of a source."""
    try:
        records = _store().list_by_source(source_id)[:limit]
    except Exception as e:
        console.print(f"[red]Could not read records: {e}[/red]")
        raise typer.Exit(1)

    if not records:
        console.print(f"[yellow]No records for source {source_id}[/yellow]")
        return

    table = Table(title=f"Records of source {source_id}")
    table.add_column("ID", style="dim")
    table.add_column("Date", style="green")
    table.add_column("Title", style="cyan")
    table.add_column("Flags", style="yellow")
    table.add_column("Embedding", style="magenta")

    for record in records:
        flags = ("★" if record.is_favorite else "") + ("" if record.is_read else "•")
        table.add_row(
            str(record.id),
            record.publish_date or "",
            record.title,
            flags,
            record.embedding_status.value,
        )

    console.print(table)


@records_app.command("read")
def records_read(
    record_id: int = typer.Argument(..., help="Record ID"),
    unread: bool = typer.Option(False, "--unread", help="Mark as unread instead"),
) -> None:
    """Mark a record as read."""
    try:
        _store().mark_read(record_id, not unread)
    except Exception as e:
        console.print(f"[red]Update failed: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"Record {record_id} marked {'unread' if unread else 'read'}")


@records_app.command("favorite")
def records_favorite(
    record_id: int = typer.Argument(..., help="Record ID"),
) -> None:
    """Toggle the favorite flag of a record."""
    try:
        favorite = _store().toggle_favorite(record_id)
    except Exception as e:
        console.print(f"[red]Update failed: {e}[/red]")
        raise typer.Exit(1)

    if favorite is None:
        console.print(f"[red]Record {record_id} not found[/red]")
        raise typer.Exit(1)
    console.print(f"Record {record_id} {'added to' if favorite else 'removed from'} favorites")
