"""Init command implementation."""

from pathlib import Path
from typing import List

import typer
from rich.console import Console
from rich.panel import Panel

from ..config import ConfigModel, SourceConfig, save_config, save_sources
from ..db import get_connection_pool, init_database, validate_connection
from ..db.sources import SourceStore

console = Console()


def create_default_sources() -> List[SourceConfig]:
    """Create a few well-known feeds to start with."""
    return [
        SourceConfig(name="arXiv cs.CL", url="https://rss.arxiv.org/rss/cs.CL"),
        SourceConfig(name="Hacker News", url="https://hnrss.org/frontpage"),
        SourceConfig(name="Hugging Face Blog", url="https://huggingface.co/blog/feed.xml"),
        SourceConfig(name="MIT News - AI", url="https://news.mit.edu/rss/topic/artificial-intelligence2"),
    ]


def init_command(
    config_dir: Path = typer.Option(
        Path.home() / ".config" / "feedlens",
        "--config-dir",
        "-c",
        help="Configuration directory",
    ),
    db_host: str = typer.Option("localhost", "--db-host", help="Postgres host"),
    db_port: int = typer.Option(5432, "--db-port", help="Postgres port"),
    db_name: str = typer.Option("feedlens", "--db-name", help="Database name"),
    db_user: str = typer.Option("feedlens_user", "--db-user", help="Database user"),
    provider: str = typer.Option(
        "openai",
        "--provider",
        "-p",
        help="Embedding provider (openai, custom, ollama, local)",
    ),
    seed_sources: bool = typer.Option(
        True,
        "--seed-sources/--no-seed-sources",
        help="Seed a few default sources",
    ),
) -> None:
    """Initialize feedlens configuration and database."""
    console.print(Panel.fit("feedlens - Initialization", style="bold blue"))

    config_dir.mkdir(parents=True, exist_ok=True)
    config_path = config_dir / "config.yaml"
    sources_path = config_dir / "sources.yaml"

    embedding = {"provider": provider, "api_key_env": "OPENAI_API_KEY"}
    if provider == "local":
        embedding = {"provider": provider, "model": "all-MiniLM-L6-v2"}
    elif provider == "ollama":
        embedding = {"provider": provider, "model": "nomic-embed-text"}

    try:
        config = ConfigModel(
            postgres={
                "host": db_host,
                "port": db_port,
                "database": db_name,
                "user": db_user,
                "password_env": "FEEDLENS_DB_PASSWORD",
            },
            embedding=embedding,
        )
    except ValueError as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        raise typer.Exit(1)

    save_config(config, config_path)
    console.print(f"✅ Created config: {config_path}")

    sources = create_default_sources() if seed_sources else []
    save_sources(sources, sources_path)
    console.print(f"✅ Created sources: {sources_path} ({len(sources)} sources)")

    console.print("\n[bold]Testing database connection...[/bold]")
    db_config = config.postgres.model_dump()

    if not validate_connection(db_config):
        console.print(
            "[red]❌ Database connection failed![/red]\n"
            "Please ensure Postgres is running and credentials are correct.\n"
            "Set the password via environment variable: "
            "[bold]export FEEDLENS_DB_PASSWORD=your_password[/bold]"
        )
        raise typer.Exit(1)

    console.print("✅ Database connection successful")

    console.print("\n[bold]Initializing database schema...[/bold]")
    try:
        init_database(db_config)
        SourceStore(get_connection_pool(db_config)).sync_sources(sources)
        console.print("✅ Database schema initialized")
    except Exception as e:
        console.print(f"[red]❌ Failed to initialize database: {e}[/red]")
        raise typer.Exit(1)

    console.print(
        Panel(
            f"[green]✅ feedlens initialized successfully![/green]\n\n"
            f"Configuration: {config_path}\n"
            f"Sources: {sources_path}\n\n"
            f"Next steps:\n"
            f"1. Set database password: [bold]export FEEDLENS_DB_PASSWORD=your_password[/bold]\n"
            f"2. Set embedding API key: [bold]export OPENAI_API_KEY=your_key[/bold]\n"
            f"3. Run: [bold]feedlens update[/bold]",
            style="green",
        )
    )
