"""Opinion map initiation: sample a range and open a session for it."""

import logging
import random
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..analysis.rng import make_rng
from ..config import ConfigModel
from ..errors import OpinionMapError
from ..models import OpinionSession, SessionConfig
from ..store import ContentStore
from .models import EmbeddingStats, SampleResult
from .sampling import StratifiedSampler
from .sessions import SessionManager
from .vectorization import estimate_processing_time, get_embedding_stats

logger = logging.getLogger(__name__)


class GenerationRequest(BaseModel):
    """Parameters of one generate request."""

    zone_id: str = Field(..., description="Zone to map")
    start_date: datetime = Field(..., description="Range start (inclusive)")
    end_date: datetime = Field(..., description="Range end (exclusive)")
    sample_size: int = Field(10000, description="Target sample size", ge=1)
    k: Optional[int] = Field(None, description="Fixed cluster count", ge=1)
    seed: Optional[int] = Field(None, description="Seed for sampling and clustering")
    language: str = Field("en", description="Label language")
    operational_context: Optional[str] = Field(None, description="Zone context for labeling")
    created_by: Optional[str] = Field(None, description="Who asked for the map")


class GenerationPlan(BaseModel):
    """Session opened for a request, with what the run will cost."""

    session: OpinionSession = Field(..., description="Session to run")
    reused: bool = Field(False, description="An already active session was returned")
    sample: Optional[SampleResult] = Field(None, description="Sample taken for a new session")
    embedding_stats: Optional[EmbeddingStats] = Field(None, description="Embedding cache coverage")
    estimated_seconds: Optional[int] = Field(None, description="Estimated processing time")


def start_opinion_map(
    store: ContentStore,
    request: GenerationRequest,
    config: Optional[ConfigModel] = None,
    rng: Optional[random.Random] = None,
) -> GenerationPlan:
    """
    Sample posts and create (or reuse) the zone's active session.

    The pipeline itself is not run; hand the session id to a worker.

    Raises:
        OpinionMapError: no eligible posts in the range
    """
    config = config or ConfigModel()
    sessions = SessionManager(store)

    running = sessions.get_running_session(request.zone_id)
    if running is not None:
        logger.info("Zone %s already has active session %s", request.zone_id, running.session_id)
        return GenerationPlan(session=running, reused=True)

    sampler = StratifiedSampler(
        store,
        rng=rng or make_rng(request.seed),
        exclude_reposts=config.sampling.exclude_reposts,
        fill_shortfall=config.sampling.fill_shortfall,
    )
    sample = sampler.sample(request.zone_id, request.start_date, request.end_date, request.sample_size)
    if not sample.posts:
        raise OpinionMapError(
            f"No posts found for zone {request.zone_id} between "
            f"{request.start_date.isoformat()} and {request.end_date.isoformat()}"
        )

    stats = get_embedding_stats(store, sample.post_ids, config.vectorization.fetch_batch_size)
    estimate = estimate_processing_time(sample.actual_sampled, stats.needs_embedding)

    session_config = SessionConfig(
        start_date=request.start_date,
        end_date=request.end_date,
        sample_size=request.sample_size,
        sampled_post_ids=sample.post_ids,
        actual_sample_size=sample.actual_sampled,
        sampling_strategy=sample.strategy,
        k=request.k,
        seed=request.seed,
        language=request.language,
        operational_context=request.operational_context,
    )
    session, reused = sessions.create_or_reuse_active(request.zone_id, session_config, request.created_by)

    return GenerationPlan(
        session=session,
        reused=reused,
        sample=None if reused else sample,
        embedding_stats=None if reused else stats,
        estimated_seconds=None if reused else estimate,
    )
