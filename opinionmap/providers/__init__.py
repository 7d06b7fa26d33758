"""Embedding and text generation providers."""

from .embedding_provider import EmbeddingProvider, MockEmbeddingProvider, OpenAIEmbeddingProvider
from .factory import get_embedding_provider, get_llm_provider
from .llm_provider import LLMProvider, MockLLMProvider, OpenAIProvider

__all__ = [
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "MockEmbeddingProvider",
    "LLMProvider",
    "OpenAIProvider",
    "MockLLMProvider",
    "get_embedding_provider",
    "get_llm_provider",
]
