"""Projection and cluster queries for the Postgres store."""

from typing import List, Sequence

from psycopg import Connection

from ..models import EnrichedProjection, OpinionCluster, Projection
from .connection import store_cursor


class ProjectionQueries:
    """Mixin implementing projection persistence over ``self.conn``."""

    conn: Connection

    def save_projections(self, projections: Sequence[Projection]) -> int:
        if not projections:
            return 0
        with store_cursor(self.conn, commit=True) as cur:
            cur.executemany(
                """
                INSERT INTO opinion_projections (
                    tweet_db_id, zone_id, session_id, x, y, z,
                    cluster_id, cluster_confidence, is_outlier
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (tweet_db_id, session_id) DO NOTHING
                """,
                [
                    (
                        p.tweet_db_id, p.zone_id, p.session_id, p.x, p.y, p.z,
                        p.cluster_id, p.cluster_confidence, p.is_outlier,
                    )
                    for p in projections
                ],
            )
        return len(projections)

    def get_projections(self, zone_id: str, session_id: str) -> List[Projection]:
        with store_cursor(self.conn) as cur:
            cur.execute(
                """
                SELECT * FROM opinion_projections
                WHERE zone_id = %s AND session_id = %s
                """,
                (zone_id, session_id)
            )
            return [Projection(**row) for row in cur.fetchall()]

    def get_enriched_projections(self, zone_id: str, session_id: str) -> List[EnrichedProjection]:
        with store_cursor(self.conn) as cur:
            cur.execute(
                """
                SELECT
                    p.*,
                    t.text,
                    t.author_name,
                    t.author_username,
                    t.created_at AS post_created_at,
                    t.total_engagement
                FROM opinion_projections p
                JOIN posts t ON t.id = p.tweet_db_id
                WHERE p.zone_id = %s AND p.session_id = %s
                ORDER BY t.created_at DESC
                """,
                (zone_id, session_id)
            )
            return [EnrichedProjection(**row) for row in cur.fetchall()]

    def get_projections_for_posts(
        self,
        zone_id: str,
        session_id: str,
        post_ids: Sequence[str],
    ) -> List[Projection]:
        if not post_ids:
            return []
        with store_cursor(self.conn) as cur:
            cur.execute(
                """
                SELECT * FROM opinion_projections
                WHERE zone_id = %s AND session_id = %s AND tweet_db_id = ANY(%s)
                """,
                (zone_id, session_id, list(post_ids))
            )
            return [Projection(**row) for row in cur.fetchall()]


class ClusterQueries:
    """Mixin implementing cluster persistence over ``self.conn``."""

    conn: Connection

    def save_clusters(self, clusters: Sequence[OpinionCluster]) -> int:
        if not clusters:
            return 0
        with store_cursor(self.conn, commit=True) as cur:
            cur.executemany(
                """
                INSERT INTO opinion_clusters (
                    zone_id, session_id, cluster_id, label, keywords, tweet_count,
                    avg_sentiment, coherence_score, reasoning,
                    centroid_x, centroid_y, centroid_z
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (zone_id, session_id, cluster_id) DO NOTHING
                """,
                [
                    (
                        c.zone_id, c.session_id, c.cluster_id, c.label, list(c.keywords),
                        c.tweet_count, c.avg_sentiment, c.coherence_score, c.reasoning,
                        c.centroid_x, c.centroid_y, c.centroid_z,
                    )
                    for c in clusters
                ],
            )
        return len(clusters)

    def get_clusters(self, zone_id: str, session_id: str) -> List[OpinionCluster]:
        with store_cursor(self.conn) as cur:
            cur.execute(
                """
                SELECT * FROM opinion_clusters
                WHERE zone_id = %s AND session_id = %s
                ORDER BY tweet_count DESC
                """,
                (zone_id, session_id)
            )
            return [OpinionCluster(**row) for row in cur.fetchall()]
