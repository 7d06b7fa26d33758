"""Session inspection commands."""

import typer
from rich.console import Console
from rich.table import Table

from ..errors import SessionNotFoundError
from ..models import OpinionSession, SessionStatus
from ..pipeline import SessionManager
from .common import fail, get_config, open_store

console = Console()

STATUS_STYLES = {
    SessionStatus.COMPLETED: "green",
    SessionStatus.FAILED: "red",
    SessionStatus.CANCELLED: "yellow",
}


def session_table(session: OpinionSession) -> Table:
    """Key/value table describing a session."""
    style = STATUS_STYLES.get(session.status, "cyan")
    table = Table(title=f"Session {session.session_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Zone", session.zone_id)
    table.add_row("Status", f"[{style}]{session.status.value}[/{style}]")
    table.add_row("Progress", f"{session.progress}%")
    table.add_row("Phase", session.phase_message or "-")
    table.add_row(
        "Period",
        f"{session.config.start_date:%Y-%m-%d %H:%M} → {session.config.end_date:%Y-%m-%d %H:%M}",
    )
    table.add_row("Sample", f"{session.config.actual_sample_size} ({session.config.sampling_strategy})")
    table.add_row("Vectorized", str(session.vectorized_tweets))
    table.add_row("Clusters", str(session.total_clusters))
    table.add_row("Outliers", str(session.outlier_count))
    if session.execution_time_ms is not None:
        table.add_row("Duration", f"{session.execution_time_ms / 1000:.1f}s")
    if session.error_message:
        table.add_row("Error", f"[red]{session.error_message}[/red]")
    if session.created_by:
        table.add_row("Created by", session.created_by)
    return table


def status_command(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session to show"),
) -> None:
    """Show a session's status and progress."""
    try:
        with open_store(get_config(ctx)) as store:
            session = SessionManager(store).get_session(session_id)
        console.print(session_table(session))
    except SessionNotFoundError as e:
        fail(str(e))
    except typer.Exit:
        raise
    except Exception as e:
        fail(f"Failed to read session: {e}")


def cancel_command(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session to cancel"),
) -> None:
    """Cancel a running session. Workers stop at their next checkpoint."""
    try:
        with open_store(get_config(ctx)) as store:
            manager = SessionManager(store)
            cancelled = manager.cancel(session_id)
            session = manager.get_session(session_id)
    except SessionNotFoundError as e:
        fail(str(e))
    except typer.Exit:
        raise
    except Exception as e:
        fail(f"Failed to cancel session: {e}")

    if cancelled:
        console.print(f"✅ Cancelled session {session_id}")
    else:
        console.print(
            f"[yellow]Session {session_id} is already {session.status.value}, nothing to cancel[/yellow]"
        )
