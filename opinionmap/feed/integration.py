"""Dashboard read API backed by the content store.

Every function here degrades to "no cluster data" instead of raising, so
callers can render an ungenerated state.
"""

import logging
from typing import Any, List, Mapping, Optional, Sequence

from ..models import EnrichedProjection, OpinionCluster, OpinionSession, Projection, SessionStatus
from ..store import ContentStore
from .enrichment import (
    FeedPost,
    build_cluster_map,
    build_projection_map,
    enrich_posts_with_clusters,
    without_cluster,
)
from .models import OpinionMapStats

logger = logging.getLogger(__name__)


def get_latest_session(store: ContentStore, zone_id: str) -> Optional[OpinionSession]:
    """Latest session of any status, or None."""
    try:
        return store.get_latest_session(zone_id)
    except Exception as e:
        logger.error("Failed to get latest session for zone %s: %s", zone_id, e)
        return None


def get_clusters(store: ContentStore, zone_id: str, session_id: str) -> List[OpinionCluster]:
    try:
        return store.get_clusters(zone_id, session_id)
    except Exception as e:
        logger.error("Failed to get clusters for session %s: %s", session_id, e)
        return []


def get_projections(store: ContentStore, zone_id: str, session_id: str) -> List[Projection]:
    try:
        return store.get_projections(zone_id, session_id)
    except Exception as e:
        logger.error("Failed to get projections for session %s: %s", session_id, e)
        return []


def get_enriched_projections(store: ContentStore, zone_id: str, session_id: str) -> List[EnrichedProjection]:
    try:
        return store.get_enriched_projections(zone_id, session_id)
    except Exception as e:
        logger.error("Failed to get enriched projections for session %s: %s", session_id, e)
        return []


def get_active_opinion_map_session(store: ContentStore, zone_id: str) -> Optional[OpinionSession]:
    """Latest completed session, or None."""
    try:
        return store.get_latest_session(zone_id, status=SessionStatus.COMPLETED)
    except Exception as e:
        logger.error("Failed to get completed session for zone %s: %s", zone_id, e)
        return None


def has_completed_opinion_map(store: ContentStore, zone_id: str) -> bool:
    return get_active_opinion_map_session(store, zone_id) is not None


def enrich_feed_with_clusters(
    store: ContentStore,
    zone_id: str,
    posts: Sequence[Mapping[str, Any]],
) -> List[FeedPost]:
    """
    Decorate posts with the cluster of the zone's latest completed map.

    Args:
        store: Content store
        zone_id: Zone the posts belong to
        posts: Post dicts carrying an ``id`` key

    Returns:
        Copies of the posts with ``cluster`` and ``cluster_confidence`` keys
    """
    session = get_active_opinion_map_session(store, zone_id)
    if session is None:
        logger.debug("No completed session for zone %s, skipping cluster enrichment", zone_id)
        return [without_cluster(p) for p in posts]

    post_ids = [str(p.get("id")) for p in posts]
    try:
        clusters = store.get_clusters(zone_id, session.session_id)
        projections = store.get_projections_for_posts(zone_id, session.session_id, post_ids)
    except Exception as e:
        logger.error("Failed to enrich feed for zone %s: %s", zone_id, e)
        return [without_cluster(p) for p in posts]

    if not clusters or not projections:
        logger.debug(
            "Session %s has %d clusters and %d matching projections",
            session.session_id, len(clusters), len(projections),
        )
        return [without_cluster(p) for p in posts]

    enriched = enrich_posts_with_clusters(
        posts, build_projection_map(projections), build_cluster_map(clusters)
    )
    logger.debug(
        "Enriched %d posts with clusters from session %s",
        len(enriched), session.session_id,
    )
    return enriched


def get_opinion_map_stats(store: ContentStore, zone_id: str) -> Optional[OpinionMapStats]:
    session = get_active_opinion_map_session(store, zone_id)
    if session is None:
        return None

    try:
        clusters = store.get_clusters(zone_id, session.session_id)
    except Exception as e:
        logger.error("Failed to get stats for zone %s: %s", zone_id, e)
        return None

    return OpinionMapStats(
        session_id=session.session_id,
        total_clusters=len(clusters),
        total_tweets=sum(c.tweet_count for c in clusters),
        outlier_count=session.outlier_count,
        session_created_at=session.created_at,
        completed_at=session.completed_at,
    )
