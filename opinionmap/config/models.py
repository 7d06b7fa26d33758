"""Configuration models."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class PostgresConfig(BaseModel):
    """Postgres configuration."""

    host: str = Field("localhost", description="Database host")
    port: int = Field(5432, description="Database port")
    database: str = Field("opinionmap", description="Database name")
    user: str = Field("opinionmap_user", description="Database user")
    password: Optional[str] = Field(None, description="Database password")
    password_env: Optional[str] = Field(None, description="Environment variable for password")


class EmbeddingConfig(BaseModel):
    """Embedding service configuration."""

    provider: str = Field("openai", description="Embedding provider (openai, mock)")
    model: str = Field("text-embedding-3-small", description="Embedding model name")
    dimensions: Optional[int] = Field(None, description="Requested vector size", ge=8)
    api_key_env: Optional[str] = Field("OPENAI_API_KEY", description="Environment variable for API key")
    api_key: Optional[str] = Field(None, description="API key (prefer api_key_env)")
    base_url: Optional[str] = Field(None, description="Base URL for API")


class LLMConfig(BaseModel):
    """Text generation provider configuration."""

    provider: str = Field("openai", description="LLM provider (openai, mock)")
    model: str = Field("gpt-4o-mini", description="Model name")
    api_key_env: Optional[str] = Field("OPENAI_API_KEY", description="Environment variable for API key")
    api_key: Optional[str] = Field(None, description="API key (prefer api_key_env)")
    base_url: Optional[str] = Field(None, description="Base URL for API (e.g., for Ollama)")


class SamplingConfig(BaseModel):
    """Sampling defaults."""

    default_sample_size: int = Field(10000, description="Default target sample size", ge=1, le=100000)
    default_days: int = Field(7, description="Default analysis window in days", ge=1, le=365)
    exclude_reposts: bool = Field(True, description="Skip pure reposts (RT @...)")
    fill_shortfall: bool = Field(True, description="Top up sparse stratified samples from remaining posts")


class VectorizationConfig(BaseModel):
    """Embedding cache and batching configuration."""

    fetch_batch_size: int = Field(500, description="Max ids per store query", ge=1, le=5000)
    embed_batch_size: int = Field(100, description="Texts per embedding request", ge=1, le=2048)
    inter_batch_delay: float = Field(2.0, description="Seconds between embedding requests", ge=0.0)
    max_content_length: int = Field(8000, description="Max characters per embedded text", ge=100)
    max_concurrency: int = Field(1, description="Embedding requests in flight", ge=1, le=16)
    min_success_ratio: float = Field(0.5, description="Minimum vectorized ratio", ge=0.0, le=1.0)
    rate_limit_retries: int = Field(3, description="Attempts per batch on rate limiting", ge=1, le=10)
    rate_limit_base_delay: float = Field(5.0, description="Initial backoff in seconds", ge=0.0)


class ReductionConfig(BaseModel):
    """Dimensionality reduction configuration."""

    pca_components: int = Field(20, description="PCA output dimension for clustering", ge=2, le=512)
    umap_neighbors: int = Field(15, description="UMAP neighbour count", ge=2, le=200)
    umap_min_dist: float = Field(0.1, description="UMAP minimum distance", ge=0.0, le=1.0)
    umap_spread: float = Field(1.0, description="UMAP spread", gt=0.0)
    umap_metric: str = Field("cosine", description="UMAP distance metric")
    target_min: float = Field(0.0, description="Lower bound of normalized coordinates")
    target_max: float = Field(100.0, description="Upper bound of normalized coordinates")

    @field_validator("target_max")
    @classmethod
    def validate_range(cls, v: float, info) -> float:
        """Validate that the target range is not empty."""
        if v <= info.data.get("target_min", 0.0):
            raise ValueError("target_max must be greater than target_min")
        return v


class ClusteringConfig(BaseModel):
    """K-means configuration."""

    k: Optional[int] = Field(None, description="Fixed cluster count (auto-detect when unset)", ge=1, le=100)
    k_min: int = Field(5, description="Smallest K tried by auto-detection", ge=2, le=100)
    k_max: int = Field(12, description="Largest K tried by auto-detection", ge=2, le=100)
    max_iterations: int = Field(100, description="Iteration cap for the final pass", ge=1)
    selection_iterations: int = Field(50, description="Iteration cap while choosing K", ge=1)
    tolerance: float = Field(1e-4, description="Centroid shift convergence tolerance", gt=0.0)
    confidence_threshold: float = Field(0.2, description="Points below become outliers", ge=0.0, le=1.0)
    silhouette_sample_size: int = Field(500, description="Points used by the silhouette proxy", ge=10)
    seed: Optional[int] = Field(None, description="Seed for reproducible runs")

    @field_validator("k_max")
    @classmethod
    def validate_k_range(cls, v: int, info) -> int:
        """Validate that k_min <= k_max."""
        k_min = info.data.get("k_min", 5)
        if v < k_min:
            raise ValueError(f"k_max ({v}) must be >= k_min ({k_min})")
        return v


class LabelingConfig(BaseModel):
    """Cluster labeling configuration."""

    max_posts: int = Field(50, description="Posts sampled per cluster prompt", ge=1, le=500)
    top_keywords: int = Field(10, description="Keywords extracted per cluster", ge=1, le=50)
    max_retries: int = Field(3, description="Attempts per cluster", ge=1, le=10)
    base_retry_delay: float = Field(5.0, description="Initial rate-limit backoff in seconds", ge=0.0)
    temperature: float = Field(0.5, ge=0.0, le=2.0)
    max_tokens: int = Field(500, ge=50, le=4000)
    language: str = Field("en", description="Language requested for labels")
    ai_confidence: float = Field(0.8, ge=0.0, le=1.0)
    fallback_confidence: float = Field(0.3, ge=0.0, le=1.0)


class ConfigModel(BaseModel):
    """Main configuration model."""

    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)
    vectorization: VectorizationConfig = Field(default_factory=VectorizationConfig)
    reduction: ReductionConfig = Field(default_factory=ReductionConfig)
    clustering: ClusteringConfig = Field(default_factory=ClusteringConfig)
    labeling: LabelingConfig = Field(default_factory=LabelingConfig)
