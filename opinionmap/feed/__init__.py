"""Read-side helpers: feed enrichment and zone statistics."""

from .enrichment import (
    build_cluster_map,
    build_projection_map,
    enrich_post_with_cluster,
    enrich_posts_with_clusters,
    filter_with_clusters,
    get_cluster_statistics,
    group_by_cluster,
    sort_by_engagement,
    sort_by_recency,
)
from .integration import (
    enrich_feed_with_clusters,
    get_active_opinion_map_session,
    get_clusters,
    get_enriched_projections,
    get_latest_session,
    get_opinion_map_stats,
    get_projections,
    has_completed_opinion_map,
)
from .models import ClusterStatistics, OpinionMapStats

__all__ = [
    "build_cluster_map",
    "build_projection_map",
    "enrich_post_with_cluster",
    "enrich_posts_with_clusters",
    "filter_with_clusters",
    "group_by_cluster",
    "get_cluster_statistics",
    "sort_by_engagement",
    "sort_by_recency",
    "enrich_feed_with_clusters",
    "get_active_opinion_map_session",
    "get_clusters",
    "get_enriched_projections",
    "get_latest_session",
    "get_opinion_map_stats",
    "get_projections",
    "has_completed_opinion_map",
    "ClusterStatistics",
    "OpinionMapStats",
]
