"""Configuration management for the opinion map pipeline."""

from .loader import Config, default_config_path, load_config, save_config
from .models import (
    ClusteringConfig,
    ConfigModel,
    EmbeddingConfig,
    LabelingConfig,
    LLMConfig,
    PostgresConfig,
    ReductionConfig,
    SamplingConfig,
    VectorizationConfig,
)

__all__ = [
    "Config",
    "ConfigModel",
    "PostgresConfig",
    "EmbeddingConfig",
    "LLMConfig",
    "SamplingConfig",
    "VectorizationConfig",
    "ReductionConfig",
    "ClusteringConfig",
    "LabelingConfig",
    "default_config_path",
    "load_config",
    "save_config",
]
