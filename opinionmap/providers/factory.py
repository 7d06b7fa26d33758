"""Build providers from configuration."""

import logging

from ..config import Config
from .embedding_provider import EmbeddingProvider, MockEmbeddingProvider, OpenAIEmbeddingProvider
from .llm_provider import LLMProvider, MockLLMProvider, OpenAIProvider

logger = logging.getLogger(__name__)


def get_llm_provider(config: Config) -> LLMProvider:
    """Get configured LLM provider."""
    llm_config = config.get_llm_config()

    if llm_config.get("provider") == "openai":
        api_key = llm_config.get("api_key")
        if not api_key:
            logger.warning("No OpenAI API key found. Using mock LLM provider.")
            return MockLLMProvider()

        return OpenAIProvider(
            api_key=api_key,
            model=llm_config.get("model", "gpt-4o-mini"),
            base_url=llm_config.get("base_url"),
        )
    if llm_config.get("provider") != "mock":
        logger.warning("Unknown LLM provider %r. Using mock provider.", llm_config.get("provider"))
    return MockLLMProvider()


def get_embedding_provider(config: Config) -> EmbeddingProvider:
    """Get configured embedding provider.

    Unlike the LLM provider there is no silent mock fallback: mock vectors
    would be cached on the posts and poison later sessions.
    """
    embedding_config = config.get_embedding_config()
    provider = embedding_config.get("provider")

    if provider == "openai":
        api_key = embedding_config.get("api_key")
        if not api_key:
            raise ValueError(
                f"No API key for embeddings. Set {embedding_config.get('api_key_env') or 'embedding.api_key'}."
            )
        return OpenAIEmbeddingProvider(
            api_key=api_key,
            model=embedding_config.get("model", "text-embedding-3-small"),
            base_url=embedding_config.get("base_url"),
            dimensions=embedding_config.get("dimensions"),
        )
    if provider == "mock":
        return MockEmbeddingProvider(dimensions=embedding_config.get("dimensions") or 64)

    raise ValueError(f"Unknown embedding provider: {provider}")
