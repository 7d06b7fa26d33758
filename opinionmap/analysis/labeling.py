"""AI cluster labeling with a keyword fallback."""

import json
import logging
import re
import time
from collections import Counter
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..errors import is_rate_limit_error
from ..providers import LLMProvider
from .models import ClusterLabel

logger = logging.getLogger(__name__)

MAX_LABEL_LENGTH = 80
MAX_REASONING_LENGTH = 350
MAX_POST_CHARS_IN_PROMPT = 200

STOP_WORDS = frozenset({
    # English
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "is", "are", "was", "were", "be", "been",
    "being", "have", "has", "had", "do", "does", "did", "will", "would",
    "could", "should", "may", "might", "must", "can", "this", "that",
    "these", "those", "i", "you", "he", "she", "it", "we", "they", "rt",
    "https", "http", "com", "www", "not", "just", "all", "our", "your",
    "their", "its", "what", "who", "how", "why", "about", "there", "here",
    # French
    "le", "la", "les", "un", "une", "des", "du", "de", "d", "et", "ou", "mais",
    "en", "dans", "sur", "au", "aux", "pour", "par", "avec", "sans", "ce", "cet",
    "cette", "ces", "je", "tu", "il", "elle", "nous", "vous", "ils", "elles",
    "est", "sont", "été", "etre", "être", "as", "ai", "ont", "avoir", "fait",
    "plus", "moins", "très", "tres", "ici", "là", "pas", "ne", "qui", "que",
})

LANGUAGE_NAMES = {
    "en": "English",
    "fr": "French",
    "es": "Spanish",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
}

FALLBACK_MESSAGES = {
    "en": ("This cluster discusses topics related to", "Cluster analysis unavailable.",
           "AI labeling was unavailable."),
    "fr": ("Ce cluster traite de sujets liés à", "Analyse du cluster non disponible.",
           "L'étiquetage IA était indisponible."),
    "es": ("Este cluster discute temas relacionados con", "Análisis del cluster no disponible.",
           "El etiquetado por IA no estaba disponible."),
    "de": ("Dieser Cluster diskutiert Themen im Zusammenhang mit", "Cluster-Analyse nicht verfügbar.",
           "Die KI-Beschriftung war nicht verfügbar."),
    "it": ("Questo cluster discute argomenti relativi a", "Analisi del cluster non disponibile.",
           "L'etichettatura IA non era disponibile."),
    "pt": ("Este cluster discute tópicos relacionados a", "Análise do cluster não disponível.",
           "A rotulagem por IA não estava disponível."),
}

_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_JSON_START = re.compile(r"[{\[]")
_CONTROL_CHARS = re.compile(r"[\u0000-\u001f\u007f-\u009f]")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_NON_WORD = re.compile(r"[^\w\s#@]")
_DIGITS = re.compile(r"^\d+$")


def sample_texts(texts: Sequence[str], max_count: int) -> List[str]:
    """Pick up to ``max_count`` texts spread evenly over the input order."""
    if len(texts) <= max_count:
        return list(texts)
    step = len(texts) / max_count
    return [texts[int(i * step)] for i in range(max_count)]


def extract_keywords(texts: Sequence[str], top_n: int = 10) -> List[str]:
    """Most frequent words after dropping stop words, short words and numbers."""
    counts: Counter = Counter()
    for text in texts:
        words = _NON_WORD.sub(" ", text.lower()).split()
        counts.update(
            w for w in words
            if len(w) > 2 and w not in STOP_WORDS and not _DIGITS.match(w)
        )
    return [word for word, _ in counts.most_common(top_n)]


def _first_json_value(text: str) -> Any:
    """Decode the first complete JSON object or array in ``text``, ignoring what follows it."""
    decoder = json.JSONDecoder()
    for start in _JSON_START.finditer(text):
        try:
            value, _ = decoder.raw_decode(text, start.start())
        except json.JSONDecodeError:
            continue
        return value
    raise ValueError(f"Response is not JSON: {text[:80]!r}")


def parse_ai_response(text: str) -> Dict[str, Any]:
    """
    Parse a labeling response that may be wrapped or slightly malformed.

    Returns:
        Dict with ``label``, ``sentiment`` (clamped to [-1, 1]) and ``reasoning``

    Raises:
        ValueError: no usable label/sentiment could be recovered
    """
    json_text = text.strip()

    fence = _CODE_FENCE.search(json_text)
    if fence:
        json_text = fence.group(1).strip()

    json_text = _TRAILING_COMMA.sub(r"\1", _CONTROL_CHARS.sub("", json_text)).strip()
    parsed = _first_json_value(json_text)

    if isinstance(parsed, list):
        if not parsed:
            raise ValueError("Empty array in response")
        parsed = parsed[0]

    if not isinstance(parsed, dict):
        raise ValueError(f"Invalid response format: {parsed!r}")

    label = parsed.get("label")
    if not isinstance(label, str) or len(label.strip()) < 2:
        raise ValueError(f"Invalid label: {parsed!r}")

    sentiment = parsed.get("sentiment")
    if isinstance(sentiment, bool) or not isinstance(sentiment, (int, float)):
        raise ValueError(f"Invalid sentiment: {parsed!r}")
    sentiment = float(sentiment)
    if sentiment != sentiment or sentiment in (float("inf"), float("-inf")):
        raise ValueError(f"Invalid sentiment (non-finite): {parsed!r}")

    reasoning = parsed.get("reasoning") or parsed.get("description") or ""
    if not isinstance(reasoning, str):
        reasoning = str(reasoning)

    return {
        "label": label.strip()[:MAX_LABEL_LENGTH],
        "sentiment": max(-1.0, min(1.0, sentiment)),
        "reasoning": reasoning.strip()[:MAX_REASONING_LENGTH],
    }


def build_labeling_prompt(
    texts: Sequence[str],
    keywords: Sequence[str],
    cluster_size: int,
    operational_context: Optional[str] = None,
    language: str = "en",
) -> str:
    """Build the labeling prompt for one cluster."""
    target_language = LANGUAGE_NAMES.get(language, LANGUAGE_NAMES["en"])
    context_section = ""
    if operational_context:
        context_section = (
            f"\n\nOperational context:\n{operational_context}\n\n"
            "Use this context to judge the significance of the posts."
        )

    posts = "\n".join(
        f"{i}. {text[:MAX_POST_CHARS_IN_PROMPT]}" for i, text in enumerate(texts, start=1)
    )

    return f"""You are an analyst identifying opinion clusters in social media data.

The cluster contains {cluster_size} posts. Analyze these {len(texts)} sampled posts.{context_section}

Posts:
{posts}

Keywords: {', '.join(keywords)}

Provide:
- label: a specific title of 2-5 words saying who says what or what is happening (avoid "Discussion", "Various Topics", "Mixed Opinions")
- reasoning: 2-4 sentences on the shared narrative, the voices involved and why it matters
- sentiment: a number from -1.0 (strongly negative) through 0.0 (neutral) to 1.0 (strongly positive)

Write the label and reasoning in {target_language}.

Respond with ONLY a JSON object, no markdown:
{{"label": "Specific Title", "sentiment": 0.0, "reasoning": "..."}}"""


class ClusterLabeler:
    """Label clusters through an LLM provider, never failing the pipeline."""

    def __init__(
        self,
        llm_provider: LLMProvider,
        max_posts: int = 50,
        top_keywords: int = 10,
        max_retries: int = 3,
        base_retry_delay: float = 5.0,
        temperature: float = 0.5,
        max_tokens: int = 500,
        ai_confidence: float = 0.8,
        fallback_confidence: float = 0.3,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize cluster labeler.

        Args:
            llm_provider: Text generation provider
            max_posts: Posts sampled into each prompt
            top_keywords: Keywords extracted per cluster
            max_retries: Attempts per cluster before falling back
            base_retry_delay: First rate-limit backoff in seconds, doubled per attempt
            temperature: Sampling temperature
            max_tokens: Completion token cap
            ai_confidence: Confidence attached to AI labels
            fallback_confidence: Confidence attached to keyword labels
            sleep: Sleep function (injected in tests)
        """
        self.llm_provider = llm_provider
        self.max_posts = max_posts
        self.top_keywords = top_keywords
        self.max_retries = max_retries
        self.base_retry_delay = base_retry_delay
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.ai_confidence = ai_confidence
        self.fallback_confidence = fallback_confidence
        self.sleep = sleep

    def label_cluster(
        self,
        texts: Sequence[str],
        cluster_id: int,
        operational_context: Optional[str] = None,
        language: str = "en",
    ) -> ClusterLabel:
        """Label one cluster from its member texts."""
        sampled = sample_texts(texts, self.max_posts)
        keywords = extract_keywords(sampled, self.top_keywords)
        prompt = build_labeling_prompt(
            sampled, keywords, len(texts), operational_context, language
        )

        last_error: Optional[str] = None
        for attempt in range(self.max_retries):
            try:
                response = self.llm_provider.generate(
                    prompt,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                )
                parsed = parse_ai_response(response)
                logger.info("Labelled cluster %d as %r", cluster_id, parsed["label"])
                return ClusterLabel(
                    label=parsed["label"],
                    sentiment=parsed["sentiment"],
                    reasoning=parsed["reasoning"],
                    keywords=keywords,
                    confidence=self.ai_confidence,
                )
            except Exception as e:
                last_error = str(e)
                if is_rate_limit_error(e) and attempt < self.max_retries - 1:
                    delay = self.base_retry_delay * (2 ** attempt)
                    logger.warning(
                        "Rate limited labelling cluster %d (attempt %d), retrying in %.1fs",
                        cluster_id, attempt + 1, delay,
                    )
                    self.sleep(delay)
                    continue
                logger.warning(
                    "Labelling cluster %d failed (attempt %d/%d): %s",
                    cluster_id, attempt + 1, self.max_retries, e,
                )

        logger.warning("Using keyword fallback label for cluster %d", cluster_id)
        return self.fallback_label(keywords, cluster_id, language, last_error)

    def fallback_label(
        self,
        keywords: Sequence[str],
        cluster_id: int,
        language: str = "en",
        error: Optional[str] = None,
    ) -> ClusterLabel:
        """Keyword-joined label used when the provider cannot be used."""
        topics_related, unavailable, ai_note = FALLBACK_MESSAGES.get(language, FALLBACK_MESSAGES["en"])
        if keywords:
            label = ", ".join(keywords[:3])
            reasoning = f"{topics_related} {', '.join(keywords[:5])}. {ai_note}"
        else:
            label = f"Cluster {cluster_id}"
            reasoning = f"{unavailable} {ai_note}"

        return ClusterLabel(
            label=label[:MAX_LABEL_LENGTH],
            sentiment=0.0,
            reasoning=reasoning,
            keywords=list(keywords),
            confidence=self.fallback_confidence,
            fallback=True,
            error=error,
        )
