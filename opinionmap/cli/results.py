"""Commands that read completed opinion maps."""

import typer
from rich.console import Console
from rich.table import Table

from ..analysis import generate_time_series_data
from ..feed import (
    enrich_feed_with_clusters,
    get_active_opinion_map_session,
    get_cluster_statistics,
    get_clusters,
    get_enriched_projections,
    get_latest_session,
    get_opinion_map_stats,
)
from .common import fail, get_config, open_store

console = Console()


def _sentiment(value) -> str:
    if value is None:
        return "-"
    if value > 0.2:
        return f"[green]{value:+.2f}[/green]"
    if value < -0.2:
        return f"[red]{value:+.2f}[/red]"
    return f"{value:+.2f}"


def latest_command(
    ctx: typer.Context,
    zone_id: str = typer.Argument(..., help="Zone to show"),
    keywords: int = typer.Option(5, "--keywords", "-k", help="Keywords shown per cluster", min=0),
) -> None:
    """Show the clusters of a zone's latest completed opinion map."""
    try:
        with open_store(get_config(ctx)) as store:
            latest = get_latest_session(store, zone_id)
            session = get_active_opinion_map_session(store, zone_id)
            clusters = get_clusters(store, zone_id, session.session_id) if session else []
    except typer.Exit:
        raise
    except Exception as e:
        fail(f"Failed to read opinion map: {e}")

    if latest is not None and (session is None or latest.session_id != session.session_id):
        console.print(
            f"[dim]Latest session {latest.session_id} is {latest.status.value} ({latest.progress}%)[/dim]"
        )

    if session is None:
        console.print(f"[yellow]No completed opinion map for zone {zone_id}.[/yellow]")
        return

    table = Table(title=f"Opinion Clusters - {session.session_id}")
    table.add_column("ID", style="dim")
    table.add_column("Label", style="cyan")
    table.add_column("Posts", style="green", justify="right")
    table.add_column("Sentiment", justify="right")
    table.add_column("Coherence", style="yellow", justify="right")
    table.add_column("Keywords", style="magenta")

    for cluster in clusters:
        table.add_row(
            str(cluster.cluster_id),
            cluster.label,
            str(cluster.tweet_count),
            _sentiment(cluster.avg_sentiment),
            f"{cluster.coherence_score:.2f}" if cluster.coherence_score is not None else "-",
            ", ".join(cluster.keywords[:keywords]),
        )

    console.print(table)
    console.print(f"[dim]{session.outlier_count} outliers[/dim]")


def evolution_command(
    ctx: typer.Context,
    zone_id: str = typer.Argument(..., help="Zone to show"),
) -> None:
    """Show cluster sizes over time for the latest completed opinion map."""
    try:
        with open_store(get_config(ctx)) as store:
            session = get_active_opinion_map_session(store, zone_id)
            if session is None:
                console.print(f"[yellow]No completed opinion map for zone {zone_id}.[/yellow]")
                return
            clusters = get_clusters(store, zone_id, session.session_id)
            projections = get_enriched_projections(store, zone_id, session.session_id)
    except typer.Exit:
        raise
    except Exception as e:
        fail(f"Failed to read opinion map: {e}")

    rows = generate_time_series_data(
        projections, clusters, session.config.start_date, session.config.end_date
    )

    table = Table(title=f"Opinion Evolution - {zone_id}")
    table.add_column("Period", style="cyan")
    for cluster in clusters:
        table.add_column(cluster.label[:24], justify="right")

    for row in rows:
        table.add_row(
            str(row["date"]),
            *(str(row.get(f"cluster_{c.cluster_id}", 0)) for c in clusters),
        )

    console.print(table)


def stats_command(
    ctx: typer.Context,
    zone_id: str = typer.Argument(..., help="Zone to summarise"),
) -> None:
    """Show summary statistics of a zone's latest completed opinion map."""
    try:
        with open_store(get_config(ctx)) as store:
            stats = get_opinion_map_stats(store, zone_id)
            if stats is None:
                console.print(f"[yellow]No completed opinion map for zone {zone_id}.[/yellow]")
                return
            projections = get_enriched_projections(store, zone_id, stats.session_id)
            enriched = enrich_feed_with_clusters(
                store, zone_id, [{"id": p.tweet_db_id} for p in projections]
            )
    except typer.Exit:
        raise
    except Exception as e:
        fail(f"Failed to read opinion map: {e}")

    coverage = get_cluster_statistics(enriched)

    table = Table(title=f"Opinion Map Stats - {zone_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Session", stats.session_id)
    table.add_row("Completed", f"{stats.completed_at:%Y-%m-%d %H:%M}" if stats.completed_at else "-")
    table.add_row("Clusters", str(stats.total_clusters))
    table.add_row("Clustered posts", str(stats.total_tweets))
    table.add_row("Outliers", str(stats.outlier_count))
    table.add_row("Coverage", f"{coverage.coverage:.1f}%")
    table.add_row("Clusters in sample", str(coverage.unique_clusters))
    console.print(table)
