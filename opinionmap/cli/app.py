"""Main CLI application."""

import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

from ..config import Config
from ..db import close_connection_pools
from ..log import setup_logging
from .generate import generate_command, worker_command
from .init import init_command
from .results import evolution_command, latest_command, stats_command
from .sessions import cancel_command, status_command

app = typer.Typer(
    name="opinionmap",
    help="Opinion Map - cluster a zone's posts into labelled viewpoints",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file (default: $OPINIONMAP_CONFIG or ~/.config/opinionmap/config.yaml)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Opinion Map command line."""
    setup_logging(logging.DEBUG if verbose else logging.INFO)
    ctx.obj = Config(config_path)
    ctx.call_on_close(close_connection_pools)


# Register commands
app.command("init")(init_command)
app.command("generate")(generate_command)
app.command("worker")(worker_command)
app.command("status")(status_command)
app.command("cancel")(cancel_command)
app.command("latest")(latest_command)
app.command("evolution")(evolution_command)
app.command("stats")(stats_command)


if __name__ == "__main__":
    app()
