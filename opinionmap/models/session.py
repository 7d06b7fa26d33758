"""Session models for tracking opinion map runs."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .base import DBModel


class SessionStatus(str, Enum):
    """Lifecycle states of an opinion map session."""

    PENDING = "pending"
    VECTORIZING = "vectorizing"
    REDUCING = "reducing"
    CLUSTERING = "clustering"
    LABELING = "labeling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED}
)
ACTIVE_STATUSES = frozenset(s for s in SessionStatus if s not in TERMINAL_STATUSES)


class SessionConfig(BaseModel):
    """Parameters a session was started with."""

    start_date: datetime = Field(..., description="Start of the analysed period")
    end_date: datetime = Field(..., description="End of the analysed period")
    sample_size: int = Field(..., description="Requested sample size", ge=1)
    sampled_post_ids: List[str] = Field(default_factory=list, description="Posts chosen by the sampler")
    actual_sample_size: int = Field(0, description="Number of posts actually sampled", ge=0)
    sampling_strategy: str = Field("all", description="Sampling strategy used (all, stratified)")
    k: Optional[int] = Field(None, description="Forced cluster count", ge=1)
    seed: Optional[int] = Field(None, description="Seed for reproducible clustering")
    language: str = Field("en", description="Language requested for labels")
    operational_context: Optional[str] = Field(None, description="Zone context handed to the labeler")


class OpinionSession(DBModel):
    """Opinion map session model."""

    session_id: str = Field(..., description="Unique session identifier")
    zone_id: str = Field(..., description="Zone the session analyses")
    status: SessionStatus = Field(SessionStatus.PENDING, description="Lifecycle status")
    progress: int = Field(0, description="Progress percentage", ge=0, le=100)
    phase_message: Optional[str] = Field(None, description="Operator-facing phase description")
    config: SessionConfig = Field(..., description="Session parameters")
    total_tweets: int = Field(0, description="Posts in the sample", ge=0)
    vectorized_tweets: int = Field(0, description="Posts with embeddings", ge=0)
    total_clusters: int = Field(0, description="Clusters found", ge=0)
    outlier_count: int = Field(0, description="Posts flagged as outliers", ge=0)
    error_message: Optional[str] = Field(None, description="Failure message")
    error_stack: Optional[str] = Field(None, description="Failure traceback")
    started_at: Optional[datetime] = Field(None, description="First non-pending update")
    completed_at: Optional[datetime] = Field(None, description="When a terminal state was reached")
    execution_time_ms: Optional[int] = Field(None, description="Wall time from start to completion")
    created_by: Optional[str] = Field(None, description="Actor who requested the session")

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal
