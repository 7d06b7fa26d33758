"""LLM provider interface and implementations."""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import openai
from openai import OpenAI

from ..errors import RateLimitError

logger = logging.getLogger(__name__)


class LLMProvider(ABC):
    """Abstract base class for text generation providers."""

    model: str = "unknown"

    @abstractmethod
    def generate(
        self,
        prompt: str,
        temperature: float = 0.5,
        max_tokens: int = 500,
    ) -> str:
        """
        Generate a completion for a prompt.

        Args:
            prompt: Full prompt text
            temperature: Sampling temperature
            max_tokens: Completion token cap

        Returns:
            Raw completion text (may not be valid JSON)

        Raises:
            RateLimitError: the provider is rate limiting us
        """
        pass

    @abstractmethod
    def get_usage_stats(self) -> Dict:
        """Get usage statistics."""
        pass


class OpenAIProvider(LLMProvider):
    """OpenAI implementation of LLM provider."""

    # Token cost estimates (per 1K tokens)
    cost_per_1k_tokens = {
        "gpt-4o": {"input": 0.0025, "output": 0.01},
        "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
        "gpt-4.1-mini": {"input": 0.0004, "output": 0.0016},
        "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
    }

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
    ) -> None:
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Model name to use
            base_url: Custom base URL (for compatible servers)
        """
        self.client = OpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.api_calls = 0

    def generate(
        self,
        prompt: str,
        temperature: float = 0.5,
        max_tokens: int = 500,
    ) -> str:
        """Generate a completion using the chat completions API."""
        self.api_calls += 1
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.RateLimitError as e:
            raise RateLimitError(f"OpenAI rate limit: {e}") from e

        if response.usage:
            self.prompt_tokens += response.usage.prompt_tokens
            self.completion_tokens += response.usage.completion_tokens

        return (response.choices[0].message.content or "").strip()

    def get_usage_stats(self) -> Dict:
        """Get usage statistics."""
        estimated_cost = 0.0
        rates = self.cost_per_1k_tokens.get(self.model)
        if rates:
            estimated_cost = (
                (self.prompt_tokens / 1000) * rates["input"]
                + (self.completion_tokens / 1000) * rates["output"]
            )

        return {
            "total_tokens": self.prompt_tokens + self.completion_tokens,
            "api_calls": self.api_calls,
            "estimated_cost": estimated_cost,
            "model": self.model,
        }


class MockLLMProvider(LLMProvider):
    """Mock LLM provider for testing and offline runs.

    Answers labeling prompts with a JSON label built from the keyword line.
    """

    model = "mock"

    def __init__(self) -> None:
        """Initialize mock provider."""
        self.calls: List[str] = []

    def generate(
        self,
        prompt: str,
        temperature: float = 0.5,
        max_tokens: int = 500,
    ) -> str:
        """Mock completion."""
        self.calls.append(prompt)

        match = re.search(r"^Keywords: (.*)$", prompt, re.MULTILINE)
        keywords = [k.strip() for k in match.group(1).split(",")] if match else []
        keywords = [k for k in keywords if k]
        label = " / ".join(k.title() for k in keywords[:3]) or "General discussion"

        return json.dumps({
            "label": label,
            "sentiment": 0.0,
            "reasoning": "Mock analysis of the sampled posts.",
        })

    def get_usage_stats(self) -> Dict:
        """Get mock usage statistics."""
        return {
            "total_tokens": len(self.calls) * 100,
            "api_calls": len(self.calls),
            "estimated_cost": 0.0,
            "model": self.model,
        }
