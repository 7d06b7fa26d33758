"""Cluster models for opinion groups."""

from typing import List, Optional

from pydantic import Field

from .base import DBModel


class OpinionCluster(DBModel):
    """Labelled opinion cluster for one session."""

    zone_id: str = Field(..., description="Zone id")
    session_id: str = Field(..., description="Session id")
    cluster_id: int = Field(..., description="Cluster id, unique within the session", ge=0)
    label: str = Field(..., description="Short theme label")
    keywords: List[str] = Field(default_factory=list, description="Top keywords, most frequent first")
    tweet_count: int = Field(0, description="Posts assigned to the cluster", ge=0)
    avg_sentiment: Optional[float] = Field(None, description="Sentiment from -1 to 1", ge=-1.0, le=1.0)
    coherence_score: Optional[float] = Field(None, description="Label confidence", ge=0.0, le=1.0)
    reasoning: Optional[str] = Field(None, description="Why the posts belong together")
    centroid_x: Optional[float] = Field(None, description="Mean X of member projections")
    centroid_y: Optional[float] = Field(None, description="Mean Y of member projections")
    centroid_z: Optional[float] = Field(None, description="Mean Z of member projections")
