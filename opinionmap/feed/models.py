"""Read-side models for feed enrichment."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ClusterStatistics(BaseModel):
    """Cluster coverage of an enriched post list."""

    total: int = Field(0, description="Posts in the list")
    clustered: int = Field(0, description="Posts with a cluster")
    outliers: int = Field(0, description="Posts without a cluster")
    coverage: float = Field(0.0, description="Clustered share in percent, one decimal")
    unique_clusters: int = Field(0, description="Distinct clusters seen")


class OpinionMapStats(BaseModel):
    """Summary of a zone's latest completed opinion map."""

    session_id: str = Field(..., description="Completed session")
    total_clusters: int = Field(0, description="Clusters in the session")
    total_tweets: int = Field(0, description="Posts assigned to a cluster")
    outlier_count: int = Field(0, description="Posts flagged as outliers")
    session_created_at: Optional[datetime] = Field(None, description="When the session was created")
    completed_at: Optional[datetime] = Field(None, description="When the session completed")
