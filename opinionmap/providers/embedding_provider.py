"""Embedding provider interface and implementations."""

import hashlib
import math
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import openai
from openai import OpenAI

from ..errors import RateLimitError


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    model: str = "unknown"

    @abstractmethod
    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed a batch of texts.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text, in input order

        Raises:
            RateLimitError: the provider is rate limiting us
        """
        pass

    def embed_one(self, text: str) -> List[float]:
        """Embed a single text."""
        return self.embed([text])[0]

    @abstractmethod
    def get_usage_stats(self) -> Dict:
        """Get usage statistics."""
        pass


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI implementation of embedding provider."""

    # Cost estimates (per 1K tokens)
    cost_per_1k_tokens = {
        "text-embedding-3-small": 0.00002,
        "text-embedding-3-large": 0.00013,
        "text-embedding-ada-002": 0.0001,
    }

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: Optional[str] = None,
        dimensions: Optional[int] = None,
    ) -> None:
        """
        Initialize OpenAI embedding provider.

        Args:
            api_key: OpenAI API key
            model: Embedding model name
            base_url: Custom base URL (for compatible servers)
            dimensions: Optional vector size for models that support it
        """
        self.client = OpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self.dimensions = dimensions
        self.total_tokens = 0
        self.api_calls = 0

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts with the embeddings API."""
        if not texts:
            return []

        kwargs = {"model": self.model, "input": list(texts)}
        if self.dimensions:
            kwargs["dimensions"] = self.dimensions

        self.api_calls += 1
        try:
            response = self.client.embeddings.create(**kwargs)
        except openai.RateLimitError as e:
            raise RateLimitError(f"OpenAI rate limit: {e}") from e

        if response.usage:
            self.total_tokens += response.usage.total_tokens

        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]

    def get_usage_stats(self) -> Dict:
        """Get usage statistics."""
        rate = self.cost_per_1k_tokens.get(self.model, 0.0)
        return {
            "total_tokens": self.total_tokens,
            "api_calls": self.api_calls,
            "estimated_cost": (self.total_tokens / 1000) * rate,
            "model": self.model,
        }


class MockEmbeddingProvider(EmbeddingProvider):
    """Deterministic hashed bag-of-words embeddings.

    Texts sharing words end up close together, which is enough to exercise
    clustering without calling a real service.
    """

    def __init__(self, dimensions: int = 64, model: str = "mock-embedding") -> None:
        """Initialize mock provider."""
        self.dimensions = dimensions
        self.model = model
        self.calls: List[List[str]] = []

    def _vector(self, text: str) -> List[float]:
        vector = [0.0] * self.dimensions
        for token in re.findall(r"\w+", text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self.dimensions
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            vector[index] += sign
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            vector[0] = 1.0
            return vector
        return [v / norm for v in vector]

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Mock batch embedding."""
        self.calls.append(list(texts))
        return [self._vector(text) for text in texts]

    def get_usage_stats(self) -> Dict:
        """Get mock usage statistics."""
        return {
            "total_tokens": sum(len(batch) for batch in self.calls) * 50,
            "api_calls": len(self.calls),
            "estimated_cost": 0.0,
            "model": self.model,
        }
