"""Init command implementation."""

import typer
from rich.console import Console
from rich.panel import Panel

from ..config import ConfigModel, save_config
from ..db import init_database, validate_connection
from .common import get_config

console = Console()


def init_command(
    ctx: typer.Context,
    db_host: str = typer.Option("localhost", "--db-host", help="Postgres host"),
    db_port: int = typer.Option(5432, "--db-port", help="Postgres port"),
    db_name: str = typer.Option("opinionmap", "--db-name", help="Database name"),
    db_user: str = typer.Option("opinionmap_user", "--db-user", help="Database user"),
    provider: str = typer.Option(
        "openai",
        "--provider",
        help="Embedding and LLM provider (openai, mock)",
    ),
    skip_db: bool = typer.Option(False, "--skip-db", help="Only write the config file"),
) -> None:
    """Write a default configuration and create the database schema."""
    console.print(Panel.fit("🗺️ Opinion Map - Initialization", style="bold blue"))

    config_path = get_config(ctx).config_path

    config = ConfigModel(
        postgres={
            "host": db_host,
            "port": db_port,
            "database": db_name,
            "user": db_user,
            "password_env": "OPINIONMAP_DB_PASSWORD",
        },
        embedding={"provider": provider},
        llm={"provider": provider},
    )

    save_config(config, config_path)
    console.print(f"✅ Created config: {config_path}")

    if skip_db:
        return

    console.print("\n[bold]Testing database connection...[/bold]")
    db_config = config.postgres.model_dump()

    if not validate_connection(db_config):
        console.print(
            "[red]❌ Database connection failed![/red]\n"
            "Please ensure Postgres is running and credentials are correct.\n"
            "Set the password via environment variable: "
            "[bold]export OPINIONMAP_DB_PASSWORD=your_password[/bold]"
        )
        raise typer.Exit(1)

    console.print("✅ Database connection successful")

    console.print("\n[bold]Initializing database schema...[/bold]")
    try:
        init_database(db_config)
        console.print("✅ Database schema initialized")
    except Exception as e:
        console.print(f"[red]❌ Failed to initialize database: {e}[/red]")
        raise typer.Exit(1)

    console.print(
        Panel(
            f"[green]✅ Opinion Map initialized successfully![/green]\n\n"
            f"Configuration: {config_path}\n\n"
            f"Next steps:\n"
            f"1. Set database password: [bold]export OPINIONMAP_DB_PASSWORD=your_password[/bold]\n"
            f"2. Set API key: [bold]export OPENAI_API_KEY=your_key[/bold]\n"
            f"3. Run: [bold]opinionmap generate ZONE_ID[/bold]",
            style="green",
        )
    )
