"""Main CLI application."""

import logging

import typer
from dotenv import load_dotenv
from rich.logging import RichHandler

# Load .env file if it exists
load_dotenv()

from .embeddings import embed_app, search_command
from .init import init_command
from .records import records_app
from .run import fetch_command, serve_command, update_command
from .sources import sources_app

app = typer.Typer(
    name="feedlens",
    help="feedlens - Feed aggregation with semantic search",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


# Register commands
app.command("init")(init_command)
app.command("update")(update_command)
app.command("fetch")(fetch_command)
app.command("serve")(serve_command)
app.command("search")(search_command)
app.add_typer(sources_app, name="sources", help="Manage feed sources")
app.add_typer(embed_app, name="embed", help="Manage embeddings")
app.add_typer(records_app, name="records", help="Browse and flag records")


if __name__ == "__main__":
    app()
