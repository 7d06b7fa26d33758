"""Opinion map pipeline: sessions, sampling, vectorization and orchestration."""

from .generate import GenerationPlan, GenerationRequest, start_opinion_map
from .models import EmbeddingStats, PipelineResult, SampleResult, VectorizationResult
from .orchestrator import OpinionMapPipeline, PipelineStage
from .sampling import ALL, STRATIFIED, StratifiedSampler
from .sessions import SessionManager, make_session_id
from .vectorization import (
    Vectorizer,
    enrich_post_content,
    estimate_processing_time,
    generate_single_embedding,
    get_embedding_stats,
)

__all__ = [
    "OpinionMapPipeline",
    "PipelineStage",
    "PipelineResult",
    "SessionManager",
    "make_session_id",
    "StratifiedSampler",
    "SampleResult",
    "ALL",
    "STRATIFIED",
    "Vectorizer",
    "VectorizationResult",
    "EmbeddingStats",
    "enrich_post_content",
    "estimate_processing_time",
    "generate_single_embedding",
    "get_embedding_stats",
    "GenerationRequest",
    "GenerationPlan",
    "start_opinion_map",
]
