import json

import pytest

from opinionmap.analysis import ClusterLabeler, extract_keywords, parse_ai_response, sample_texts
from opinionmap.errors import RateLimitError
from opinionmap.providers import LLMProvider, MockLLMProvider

TEXTS = [
    "Climate policy debate heats up in parliament",
    "New climate policy announced for coal plants",
    "The climate crisis needs action",
]


class ScriptedLLM(LLMProvider):
    """Replays scripted responses; exceptions are raised."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.prompts = []

    def generate(self, prompt, temperature=0.5, max_tokens=500):
        self.prompts.append(prompt)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get_usage_stats(self):
        return {"api_calls": len(self.prompts)}


def labeler(llm, sleeps=None, **kwargs):
    sink = sleeps if sleeps is not None else []
    return ClusterLabeler(llm, sleep=sink.append, **kwargs)


def test_extract_keywords_drops_stop_words_and_numbers():
    keywords = extract_keywords(TEXTS + ["2024 the and of"], top_n=3)
    assert keywords == ["climate", "policy", "debate"]


def test_sample_texts_spreads_evenly():
    texts = [str(i) for i in range(100)]
    assert sample_texts(texts, 10) == [str(i) for i in range(0, 100, 10)]
    assert sample_texts(texts[:3], 10) == texts[:3]


@pytest.mark.parametrize("raw", [
    '{"label": "Coal Phase-Out", "sentiment": -0.4, "reasoning": "Critics."}',
    '```json\n{"label": "Coal Phase-Out", "sentiment": -0.4, "reasoning": "Critics."}\n```',
    'Sure! Here it is: {"label": "Coal Phase-Out", "sentiment": -0.4, "reasoning": "Critics.",} Hope it helps.',
    '[{"label": "Coal Phase-Out", "sentiment": -0.4, "description": "Critics."}]',
    '[{"label": "Coal Phase-Out", "sentiment": -0.4, "reasoning": "Critics."}, '
    '{"label": "Other", "sentiment": 0.1}]',
    '{"label": "Coal Phase-Out", "sentiment": -0.4, "reasoning": "Critics."}\n'
    'Alternative: {"label": "Other", "sentiment": 0.1}',
    'Label {draft}: {"label": "Coal Phase-Out", "sentiment": -0.4, "reasoning": "Critics."}',
])
def test_parse_ai_response_variants(raw):
    parsed = parse_ai_response(raw)
    assert parsed == {"label": "Coal Phase-Out", "sentiment": -0.4, "reasoning": "Critics."}


def test_parse_ai_response_clamps_and_trims():
    raw = json.dumps({"label": "x" * 120, "sentiment": 3, "reasoning": "y" * 500})

    parsed = parse_ai_response(raw)

    assert len(parsed["label"]) == 80
    assert len(parsed["reasoning"]) == 350
    assert parsed["sentiment"] == 1.0


@pytest.mark.parametrize("raw", [
    "no json here",
    '{"label": "", "sentiment": 0.1}',
    '{"label": "Fine label", "sentiment": "positive"}',
    '{"label": "Fine label", "sentiment": true}',
    "[]",
])
def test_parse_ai_response_rejects_unusable(raw):
    with pytest.raises(ValueError):
        parse_ai_response(raw)


def test_label_from_ai():
    result = labeler(MockLLMProvider()).label_cluster(TEXTS, 0)

    assert result.label == "Climate / Policy / Debate"
    assert result.confidence == 0.8
    assert not result.fallback
    assert result.keywords[:2] == ["climate", "policy"]


def test_prompt_carries_context_and_language():
    llm = MockLLMProvider()

    labeler(llm).label_cluster(TEXTS, 0, operational_context="Energy ministry watch", language="fr")

    prompt = llm.calls[0]
    assert "Energy ministry watch" in prompt
    assert "Write the label and reasoning in French." in prompt
    assert "The cluster contains 3 posts" in prompt


def test_fallback_after_persistent_failure():
    llm = ScriptedLLM([RuntimeError("service down")] * 3)
    sleeps = []

    result = labeler(llm, sleeps).label_cluster(TEXTS, 4)

    assert result.fallback
    assert result.label == "climate, policy, debate"
    assert result.sentiment == 0.0
    assert result.confidence == 0.3
    assert result.error == "service down"
    assert "AI labeling was unavailable." in result.reasoning
    assert len(llm.prompts) == 3
    assert sleeps == []


def test_invalid_json_retries_then_succeeds():
    llm = ScriptedLLM(["not json", '{"label": "Coal Debate", "sentiment": 0.2, "reasoning": "ok"}'])

    result = labeler(llm).label_cluster(TEXTS, 1)

    assert result.label == "Coal Debate"
    assert len(llm.prompts) == 2


def test_rate_limit_backoff_doubles():
    llm = ScriptedLLM([
        RateLimitError("429 Too Many Requests"),
        RateLimitError("429 Too Many Requests"),
        '{"label": "Coal Debate", "sentiment": 0.2, "reasoning": "ok"}',
    ])
    sleeps = []

    result = labeler(llm, sleeps).label_cluster(TEXTS, 2)

    assert not result.fallback
    assert sleeps == [5.0, 10.0]


def test_rate_limit_exhaustion_falls_back():
    llm = ScriptedLLM([RateLimitError("rate limit")] * 3)
    sleeps = []

    result = labeler(llm, sleeps).label_cluster(TEXTS, 2)

    assert result.fallback
    assert sleeps == [5.0, 10.0]


def test_fallback_is_localised():
    result = labeler(MockLLMProvider()).fallback_label(["énergie", "prix"], 0, language="fr")
    assert result.reasoning.startswith("Ce cluster traite de sujets liés à énergie, prix.")


def test_fallback_without_keywords():
    result = labeler(MockLLMProvider()).fallback_label([], 7)
    assert result.label == "Cluster 7"
    assert result.reasoning.startswith("Cluster analysis unavailable.")
