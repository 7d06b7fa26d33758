"""Analysis result models."""

from typing import Dict, List, Optional

import numpy as np
from pydantic import BaseModel, Field


class PCAResult(BaseModel):
    """Output of the clustering reduction."""

    vectors: np.ndarray = Field(..., description="Reduced vectors, one row per input")
    n_components: int = Field(..., description="Output dimension")
    explained_variance_ratio: float = Field(..., description="Variance kept, 0 to 1")

    class Config:
        """Pydantic config."""

        arbitrary_types_allowed = True


class ClusteringResult(BaseModel):
    """Output of k-means with outlier flagging."""

    labels: List[int] = Field(..., description="Cluster id per point, -1 for outliers")
    confidence: List[float] = Field(..., description="Assignment confidence per point, 0 to 1")
    centroids: List[List[float]] = Field(..., description="Final centroids")
    cluster_count: int = Field(..., description="K used for the final pass")
    outlier_count: int = Field(0, description="Points relabelled as outliers")
    iterations: int = Field(0, description="Iterations of the final pass")
    wcss: float = Field(0.0, description="Within-cluster sum of squares of the final pass")
    k_scores: Dict[int, float] = Field(default_factory=dict, description="Silhouette proxy per K tried")

    def member_indices(self, cluster_id: int) -> List[int]:
        """Indices of points assigned to a cluster."""
        return [i for i, label in enumerate(self.labels) if label == cluster_id]

    @property
    def cluster_ids(self) -> List[int]:
        """Ids of clusters with at least one non-outlier member."""
        return sorted({label for label in self.labels if label >= 0})


class ClusterLabel(BaseModel):
    """Theme assigned to one cluster."""

    label: str = Field(..., description="Short theme label")
    sentiment: float = Field(0.0, description="Sentiment from -1 to 1", ge=-1.0, le=1.0)
    reasoning: str = Field("", description="Why the posts belong together")
    keywords: List[str] = Field(default_factory=list, description="Top keywords")
    confidence: float = Field(0.0, description="Trust in the label", ge=0.0, le=1.0)
    fallback: bool = Field(False, description="Whether the keyword fallback was used")
    error: Optional[str] = Field(None, description="Last provider error when falling back")
