"""Database initialization and schema management."""

from typing import Any, Dict

import psycopg
from psycopg.errors import DatabaseError

from .connection import build_conninfo, get_connection

SCHEMA_SQL = """
-- Posts collected for each zone; embeddings are cached on the row
CREATE TABLE IF NOT EXISTS posts (
    id TEXT PRIMARY KEY,
    external_id TEXT NOT NULL,
    zone_id TEXT NOT NULL,
    text TEXT NOT NULL DEFAULT '',
    author_name TEXT,
    author_username TEXT,
    hashtags TEXT[] NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ NOT NULL,
    total_engagement INTEGER NOT NULL DEFAULT 0,
    embedding DOUBLE PRECISION[],
    embedding_model TEXT,
    embedding_created_at TIMESTAMPTZ,
    UNIQUE(zone_id, external_id)
);

-- Opinion map sessions
CREATE TABLE IF NOT EXISTS opinion_sessions (
    id SERIAL PRIMARY KEY,
    session_id TEXT NOT NULL UNIQUE,
    zone_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN (
        'pending', 'vectorizing', 'reducing', 'clustering', 'labeling',
        'completed', 'failed', 'cancelled'
    )),
    progress INTEGER NOT NULL DEFAULT 0 CHECK (progress >= 0 AND progress <= 100),
    phase_message TEXT,
    config JSONB NOT NULL,
    total_tweets INTEGER NOT NULL DEFAULT 0,
    vectorized_tweets INTEGER NOT NULL DEFAULT 0,
    total_clusters INTEGER NOT NULL DEFAULT 0,
    outlier_count INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    error_stack TEXT,
    started_at TIMESTAMPTZ,
    completed_at TIMESTAMPTZ,
    execution_time_ms INTEGER,
    created_by TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- One non-terminal session per zone
CREATE UNIQUE INDEX IF NOT EXISTS idx_one_active_session_per_zone
    ON opinion_sessions (zone_id)
    WHERE status IN ('pending', 'vectorizing', 'reducing', 'clustering', 'labeling');

-- Per-post 3-D coordinates and cluster assignment
CREATE TABLE IF NOT EXISTS opinion_projections (
    id SERIAL PRIMARY KEY,
    tweet_db_id TEXT NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
    zone_id TEXT NOT NULL,
    session_id TEXT NOT NULL REFERENCES opinion_sessions(session_id) ON DELETE CASCADE,
    x DOUBLE PRECISION NOT NULL,
    y DOUBLE PRECISION NOT NULL,
    z DOUBLE PRECISION NOT NULL,
    cluster_id INTEGER NOT NULL DEFAULT -1 CHECK (cluster_id >= -1),
    cluster_confidence DOUBLE PRECISION NOT NULL DEFAULT 0
        CHECK (cluster_confidence >= 0 AND cluster_confidence <= 1),
    is_outlier BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(tweet_db_id, session_id)
);

-- Labelled opinion clusters
CREATE TABLE IF NOT EXISTS opinion_clusters (
    id SERIAL PRIMARY KEY,
    zone_id TEXT NOT NULL,
    session_id TEXT NOT NULL REFERENCES opinion_sessions(session_id) ON DELETE CASCADE,
    cluster_id INTEGER NOT NULL CHECK (cluster_id >= 0),
    label TEXT NOT NULL,
    keywords TEXT[] NOT NULL DEFAULT '{}',
    tweet_count INTEGER NOT NULL DEFAULT 0,
    avg_sentiment DOUBLE PRECISION CHECK (avg_sentiment >= -1 AND avg_sentiment <= 1),
    coherence_score DOUBLE PRECISION,
    reasoning TEXT,
    centroid_x DOUBLE PRECISION,
    centroid_y DOUBLE PRECISION,
    centroid_z DOUBLE PRECISION,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(zone_id, session_id, cluster_id)
);

CREATE INDEX IF NOT EXISTS idx_posts_zone_created ON posts(zone_id, created_at);
CREATE INDEX IF NOT EXISTS idx_posts_missing_embedding ON posts(zone_id) WHERE embedding IS NULL;
CREATE INDEX IF NOT EXISTS idx_opinion_sessions_zone ON opinion_sessions(zone_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_opinion_projections_session ON opinion_projections(zone_id, session_id);
CREATE INDEX IF NOT EXISTS idx_opinion_projections_cluster ON opinion_projections(session_id, cluster_id);
CREATE INDEX IF NOT EXISTS idx_opinion_clusters_session ON opinion_clusters(zone_id, session_id);

-- Update trigger function
CREATE OR REPLACE FUNCTION update_updated_at_column()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = CURRENT_TIMESTAMP;
    RETURN NEW;
END;
$$ language 'plpgsql';

DROP TRIGGER IF EXISTS update_opinion_sessions_updated_at ON opinion_sessions;
CREATE TRIGGER update_opinion_sessions_updated_at BEFORE UPDATE ON opinion_sessions
    FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
"""


def init_database(config: Dict[str, Any]) -> None:
    """Initialize database schema."""
    try:
        with get_connection(config) as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
            conn.commit()
    except DatabaseError as e:
        raise RuntimeError(f"Failed to initialize database: {e}") from e


def validate_connection(config: Dict[str, Any]) -> bool:
    """Check that the database is reachable with the given settings."""
    try:
        with psycopg.connect(build_conninfo(config), connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False
