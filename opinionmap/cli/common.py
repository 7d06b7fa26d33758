"""Helpers shared by CLI commands."""

from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Optional

import pendulum
import typer
from rich.console import Console

from ..config import Config
from ..db import PostgresStore, get_connection
from ..store import ContentStore

console = Console()


def get_config(ctx: typer.Context) -> Config:
    """Config manager set up by the app callback."""
    if isinstance(ctx.obj, Config):
        return ctx.obj
    return Config()


@contextmanager
def open_store(config: Config) -> Generator[ContentStore, None, None]:
    """Postgres-backed store on a pooled connection."""
    with get_connection(config.get_db_config()) as conn:
        yield PostgresStore(conn)


def parse_datetime(value: Optional[str], option: str) -> Optional[datetime]:
    """Parse an ISO-8601 date or datetime, UTC when no offset is given."""
    if value is None:
        return None
    try:
        return pendulum.parse(value, tz="UTC")
    except ValueError as e:
        raise typer.BadParameter(f"Invalid date '{value}': {e}", param_hint=option) from e


def fail(message: str) -> None:
    """Print a one-line error and exit with status 1."""
    console.print(f"[red]❌ {message}[/red]")
    raise typer.Exit(1)
