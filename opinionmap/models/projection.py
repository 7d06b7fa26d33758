"""Projection models: per-post coordinates and cluster assignment."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from .base import DBModel

OUTLIER_CLUSTER_ID = -1


class Projection(DBModel):
    """3-D projection of one sampled post for one session."""

    tweet_db_id: str = Field(..., description="Owning post id")
    zone_id: str = Field(..., description="Zone id")
    session_id: str = Field(..., description="Session id")
    x: float = Field(..., description="X coordinate")
    y: float = Field(..., description="Y coordinate")
    z: float = Field(..., description="Z coordinate")
    cluster_id: int = Field(OUTLIER_CLUSTER_ID, description="Cluster id, -1 for outliers", ge=-1)
    cluster_confidence: float = Field(0.0, description="Assignment confidence", ge=0.0, le=1.0)
    is_outlier: bool = Field(False, description="Whether the point was flagged as an outlier")


class EnrichedProjection(Projection):
    """Projection joined with the post it represents."""

    text: str = Field("", description="Post text")
    author_name: Optional[str] = Field(None, description="Author display name")
    author_username: Optional[str] = Field(None, description="Author handle")
    post_created_at: datetime = Field(..., description="When the post was published")
    total_engagement: int = Field(0, description="Likes, reposts and replies combined")
