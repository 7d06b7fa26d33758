"""Data models for the opinion map pipeline."""

from .cluster import OpinionCluster
from .post import Post, PostRef
from .projection import OUTLIER_CLUSTER_ID, EnrichedProjection, Projection
from .session import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    OpinionSession,
    SessionConfig,
    SessionStatus,
)

__all__ = [
    "OpinionSession",
    "SessionConfig",
    "SessionStatus",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Projection",
    "EnrichedProjection",
    "OUTLIER_CLUSTER_ID",
    "OpinionCluster",
    "Post",
    "PostRef",
]
