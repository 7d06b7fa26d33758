"""Pipeline result models."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..models import PostRef, SessionStatus


class SampleResult(BaseModel):
    """Posts chosen by the sampler plus observability counters."""

    posts: List[PostRef] = Field(default_factory=list, description="Sampled post references")
    total_available: int = Field(0, description="Eligible posts in the range")
    actual_sampled: int = Field(0, description="Posts returned")
    buckets: int = Field(0, description="Day buckets used for stratification")
    strategy: str = Field("all", description="Sampling strategy (all, stratified)")

    @property
    def post_ids(self) -> List[str]:
        return [p.id for p in self.posts]


class EmbeddingStats(BaseModel):
    """Embedding cache coverage for a set of posts."""

    total: int = Field(0, description="Posts found")
    cached: int = Field(0, description="Posts with a stored embedding")
    needs_embedding: int = Field(0, description="Posts without an embedding")
    cache_hit_rate: float = Field(0.0, description="cached / total")


class VectorizationResult(BaseModel):
    """Outcome of ensuring embeddings for a sample."""

    success: bool = Field(..., description="Whether enough posts ended up vectorized")
    total: int = Field(0, description="Posts requested")
    already_vectorized: int = Field(0, description="Posts served from the cache")
    newly_vectorized: int = Field(0, description="Posts embedded in this run")
    failed: int = Field(0, description="Posts missing or failed to embed")
    cache_hit_rate: float = Field(0.0, description="Share of vectorized posts served from the cache")

    @property
    def vectorized(self) -> int:
        return self.already_vectorized + self.newly_vectorized


class PipelineResult(BaseModel):
    """Summary of one pipeline execution."""

    session_id: str = Field(..., description="Session processed")
    status: SessionStatus = Field(..., description="Final session status")
    success: bool = Field(False, description="Whether the session completed")
    total_posts: int = Field(0, description="Posts with embeddings that were clustered")
    total_clusters: int = Field(0, description="Clusters saved")
    outlier_count: int = Field(0, description="Posts flagged as outliers")
    explained_variance: Optional[float] = Field(None, description="PCA explained variance ratio")
    execution_time_ms: int = Field(0, description="Wall time of the run")
    error: Optional[str] = Field(None, description="Failure message")
    stage_stats: Dict[str, Dict] = Field(default_factory=dict, description="Per-stage statistics")
    usage: Dict[str, Dict] = Field(default_factory=dict, description="Provider usage statistics")
