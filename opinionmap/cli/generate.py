"""Generate and worker command implementations."""

from datetime import timedelta
from typing import Optional

import pendulum
import typer
from rich.console import Console
from rich.table import Table

from ..errors import OpinionMapError
from ..pipeline import GenerationPlan, GenerationRequest, OpinionMapPipeline, start_opinion_map
from .common import fail, get_config, open_store, parse_datetime

console = Console()


def _print_plan(plan: GenerationPlan) -> None:
    session = plan.session
    if plan.reused:
        console.print(
            f"[yellow]Zone {session.zone_id} already has an active session: "
            f"{session.session_id} ({session.status.value}, {session.progress}%)[/yellow]"
        )
        return

    table = Table(title="Opinion Map Sample")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    sample = plan.sample
    stats = plan.embedding_stats
    table.add_row("Session", session.session_id)
    table.add_row("Strategy", sample.strategy)
    table.add_row("Available posts", str(sample.total_available))
    table.add_row("Sampled posts", str(sample.actual_sampled))
    table.add_row("Day buckets", str(sample.buckets))
    table.add_row("Cached embeddings", f"{stats.cached} ({stats.cache_hit_rate:.0%})")
    table.add_row("To embed", str(stats.needs_embedding))
    table.add_row("Estimated time", f"~{plan.estimated_seconds}s")
    console.print(table)


def generate_command(
    ctx: typer.Context,
    zone_id: str = typer.Argument(..., help="Zone to map"),
    days: Optional[int] = typer.Option(
        None,
        "--days",
        "-d",
        help="Analyse the last N days (ignored when --start is given)",
        min=1,
    ),
    start: Optional[str] = typer.Option(None, "--start", help="Range start (ISO-8601)"),
    end: Optional[str] = typer.Option(None, "--end", help="Range end (ISO-8601). Default: now"),
    sample_size: Optional[int] = typer.Option(
        None,
        "--sample-size",
        "-n",
        help="Target number of posts to sample",
        min=1,
    ),
    k: Optional[int] = typer.Option(None, "--k", help="Fixed number of clusters", min=1),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for reproducible runs"),
    language: Optional[str] = typer.Option(None, "--language", "-l", help="Label language"),
    context: Optional[str] = typer.Option(None, "--context", help="Operational context for labeling"),
    created_by: Optional[str] = typer.Option(None, "--created-by", help="Requesting user"),
    run: bool = typer.Option(True, "--run/--no-run", help="Run the pipeline right away"),
) -> None:
    """Sample a zone's posts, open a session and build its opinion map."""
    try:
        config = get_config(ctx)
        settings = config.config

        end_date = parse_datetime(end, "--end") or pendulum.now("UTC")
        start_date = parse_datetime(start, "--start")
        if start_date is None:
            start_date = end_date - timedelta(days=days or settings.sampling.default_days)

        request = GenerationRequest(
            zone_id=zone_id,
            start_date=start_date,
            end_date=end_date,
            sample_size=sample_size or settings.sampling.default_sample_size,
            k=k,
            seed=seed,
            language=language or settings.labeling.language,
            operational_context=context,
            created_by=created_by,
        )

        with open_store(config) as store:
            plan = start_opinion_map(store, request, settings)
            _print_plan(plan)

            if not run or plan.reused:
                console.print(f"Run it with: [bold]opinionmap worker {plan.session.session_id}[/bold]")
                return

            pipeline = OpinionMapPipeline.from_config(config, store, show_progress=True)
            result = pipeline.run(plan.session.session_id)

        if not result.success:
            raise typer.Exit(1)

    except typer.Exit:
        raise
    except KeyboardInterrupt:
        console.print("\n[yellow]Pipeline interrupted by user[/yellow]")
        raise typer.Exit(1)
    except (OpinionMapError, ValueError, FileNotFoundError) as e:
        fail(str(e))
    except Exception as e:
        fail(f"Generation failed: {e}")


def worker_command(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Pending session to process"),
) -> None:
    """Run the pipeline for an existing session."""
    try:
        config = get_config(ctx)
        with open_store(config) as store:
            pipeline = OpinionMapPipeline.from_config(config, store, show_progress=True)
            result = pipeline.run(session_id)

        if not result.success:
            raise typer.Exit(1)

    except typer.Exit:
        raise
    except KeyboardInterrupt:
        console.print("\n[yellow]Pipeline interrupted by user[/yellow]")
        raise typer.Exit(1)
    except Exception as e:
        fail(f"Pipeline failed: {e}")
