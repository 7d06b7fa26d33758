import json
import math
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from opinionmap.config import Config, ConfigModel
from opinionmap.providers import (
    MockEmbeddingProvider,
    MockLLMProvider,
    OpenAIEmbeddingProvider,
    OpenAIProvider,
    get_embedding_provider,
    get_llm_provider,
)


def config_with(**sections):
    return Config.from_model(ConfigModel(**sections))


def test_mock_embeddings_are_deterministic_unit_vectors():
    provider = MockEmbeddingProvider(dimensions=32)

    first, second = provider.embed(["energy prices", "energy prices"])

    assert first == second
    assert len(first) == 32
    assert math.isclose(math.sqrt(sum(v * v for v in first)), 1.0)
    assert provider.get_usage_stats()["api_calls"] == 1


def test_mock_llm_answers_with_keyword_label():
    response = MockLLMProvider().generate("Posts:\n1. x\n\nKeywords: coal, prices, strike, union\n")
    assert json.loads(response)["label"] == "Coal / Prices / Strike"


def test_embedding_factory_mock():
    provider = get_embedding_provider(config_with(embedding={"provider": "mock", "dimensions": 16}))
    assert isinstance(provider, MockEmbeddingProvider)
    assert provider.dimensions == 16


def test_embedding_factory_requires_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ValueError, match="No API key"):
        get_embedding_provider(config_with(embedding={"provider": "openai"}))


def test_embedding_factory_unknown_provider():
    with pytest.raises(ValueError, match="Unknown embedding provider"):
        get_embedding_provider(config_with(embedding={"provider": "carrier-pigeon"}))


def test_embedding_factory_openai(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    provider = get_embedding_provider(config_with(embedding={"provider": "openai", "dimensions": 256}))
    assert isinstance(provider, OpenAIEmbeddingProvider)
    assert provider.dimensions == 256


def test_llm_factory_falls_back_to_mock_without_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    assert isinstance(get_llm_provider(config_with(llm={"provider": "openai"})), MockLLMProvider)


def test_llm_factory_openai(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    assert isinstance(get_llm_provider(config_with(llm={"provider": "openai"})), OpenAIProvider)


def test_openai_embeddings_reordered_by_index():
    provider = OpenAIEmbeddingProvider(api_key="sk-test")
    provider.client = MagicMock()
    provider.client.embeddings.create.return_value = SimpleNamespace(
        data=[
            SimpleNamespace(index=1, embedding=[0.0, 2.0]),
            SimpleNamespace(index=0, embedding=[1.0, 0.0]),
        ],
        usage=SimpleNamespace(total_tokens=12),
    )

    vectors = provider.embed(["a", "b"])

    assert vectors == [[1.0, 0.0], [0.0, 2.0]]
    stats = provider.get_usage_stats()
    assert stats["total_tokens"] == 12
    assert stats["api_calls"] == 1
    provider.client.embeddings.create.assert_called_once_with(
        model="text-embedding-3-small", input=["a", "b"]
    )
