"""Attach cluster data to post lists."""

import logging
from typing import Any, Dict, List, Mapping, Sequence

from ..models import OUTLIER_CLUSTER_ID, EnrichedProjection, OpinionCluster, Projection
from .models import ClusterStatistics

logger = logging.getLogger(__name__)

FeedPost = Dict[str, Any]


def build_cluster_map(clusters: Sequence[OpinionCluster]) -> Dict[int, OpinionCluster]:
    return {cluster.cluster_id: cluster for cluster in clusters}


def build_projection_map(projections: Sequence[Projection]) -> Dict[str, Projection]:
    return {projection.tweet_db_id: projection for projection in projections}


def without_cluster(post: Mapping[str, Any]) -> FeedPost:
    return {**post, "cluster": None, "cluster_confidence": None}


def enrich_post_with_cluster(
    post: Mapping[str, Any],
    projection_map: Mapping[str, Projection],
    cluster_map: Mapping[int, OpinionCluster],
) -> FeedPost:
    """
    Copy of ``post`` with ``cluster`` and ``cluster_confidence`` keys.

    Posts without a projection, outliers and posts whose cluster is
    unknown get ``None`` for both.
    """
    projection = projection_map.get(str(post.get("id")))
    if projection is None or projection.cluster_id == OUTLIER_CLUSTER_ID:
        return without_cluster(post)

    cluster = cluster_map.get(projection.cluster_id)
    if cluster is None:
        logger.warning(
            "Cluster %d not found for post %s", projection.cluster_id, post.get("id")
        )
        return without_cluster(post)

    return {**post, "cluster": cluster, "cluster_confidence": projection.cluster_confidence}


def enrich_posts_with_clusters(
    posts: Sequence[Mapping[str, Any]],
    projection_map: Mapping[str, Projection],
    cluster_map: Mapping[int, OpinionCluster],
) -> List[FeedPost]:
    return [enrich_post_with_cluster(p, projection_map, cluster_map) for p in posts]


def filter_with_clusters(posts: Sequence[FeedPost]) -> List[FeedPost]:
    """Drop posts that carry no cluster."""
    return [p for p in posts if p.get("cluster") is not None]


def group_by_cluster(posts: Sequence[FeedPost]) -> Dict[int, List[FeedPost]]:
    groups: Dict[int, List[FeedPost]] = {}
    for post in posts:
        cluster = post.get("cluster")
        if cluster is None:
            continue
        groups.setdefault(cluster.cluster_id, []).append(post)
    return groups


def get_cluster_statistics(posts: Sequence[FeedPost]) -> ClusterStatistics:
    total = len(posts)
    clustered = [p for p in posts if p.get("cluster") is not None]
    coverage = len(clustered) / total * 100 if total else 0.0
    return ClusterStatistics(
        total=total,
        clustered=len(clustered),
        outliers=total - len(clustered),
        coverage=round(coverage, 1),
        unique_clusters=len({p["cluster"].cluster_id for p in clustered}),
    )


def sort_by_engagement(projections: Sequence[EnrichedProjection]) -> List[EnrichedProjection]:
    """Most engaged first."""
    return sorted(projections, key=lambda p: p.total_engagement, reverse=True)


def sort_by_recency(projections: Sequence[EnrichedProjection]) -> List[EnrichedProjection]:
    """Newest first."""
    return sorted(projections, key=lambda p: p.post_created_at, reverse=True)
