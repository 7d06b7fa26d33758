import threading
import time

import pytest

from conftest import START, make_post
from opinionmap.config import VectorizationConfig
from opinionmap.errors import RateLimitError, SampleIntegrityError, SessionCancelledError
from opinionmap.pipeline import (
    Vectorizer,
    enrich_post_content,
    estimate_processing_time,
    generate_single_embedding,
    get_embedding_stats,
)
from opinionmap.providers import MockEmbeddingProvider


def fast_config(**overrides):
    values = {"inter_batch_delay": 0, "embed_batch_size": 4}
    values.update(overrides)
    return VectorizationConfig(**values)


def seed(store, count, embedded=0):
    posts = []
    for i in range(count):
        post = make_post(
            created_at=START,
            text=f"post number {i}",
            embedding=[0.1, 0.2, 0.3] if i < embedded else None,
        )
        store.add_post(post)
        posts.append(post)
    return [p.id for p in posts]


class ScriptedProvider(MockEmbeddingProvider):
    """Raises the scripted errors in order, then embeds normally."""

    def __init__(self, errors=()):
        super().__init__(dimensions=8)
        self.errors = list(errors)

    def embed(self, texts):
        if self.errors:
            raise self.errors.pop(0)
        return super().embed(texts)


def test_all_cached_skips_provider(store):
    ids = seed(store, 6, embedded=6)
    provider = MockEmbeddingProvider()

    result = Vectorizer(store, provider, fast_config()).ensure_embeddings(ids)

    assert result.success
    assert result.already_vectorized == result.total == 6
    assert result.newly_vectorized == 0
    assert result.cache_hit_rate == 1.0
    assert provider.calls == []


def test_embeds_missing_in_batches(store):
    ids = seed(store, 10, embedded=4)
    provider = MockEmbeddingProvider(dimensions=16)
    progress = []

    result = Vectorizer(store, provider, fast_config()).ensure_embeddings(
        ids, on_progress=lambda done, total: progress.append((done, total))
    )

    assert result.success
    assert result.already_vectorized == 4
    assert result.newly_vectorized == 6
    assert result.failed == 0
    assert result.cache_hit_rate == pytest.approx(0.4)
    assert [len(batch) for batch in provider.calls] == [4, 2]
    assert progress[0] == (4, 10)
    assert progress[-1] == (10, 10)

    stored = store.get_posts(ids)
    assert all(p.has_embedding for p in stored)
    assert {p.embedding_model for p in stored[4:]} == {"mock-embedding"}
    assert all(len(p.embedding) == 16 for p in stored[4:])


def test_duplicate_ids_counted_once(store):
    ids = seed(store, 3)
    result = Vectorizer(store, MockEmbeddingProvider(), fast_config()).ensure_embeddings(ids + ids)
    assert result.total == 3
    assert result.newly_vectorized == 3


def test_integrity_failure_when_most_posts_missing(store):
    ids = seed(store, 4) + [f"missing-{i}" for i in range(6)]
    with pytest.raises(SampleIntegrityError):
        Vectorizer(store, MockEmbeddingProvider(), fast_config()).ensure_embeddings(ids)


def test_missing_posts_count_as_failed(store):
    ids = seed(store, 8) + ["missing-1", "missing-2"]

    result = Vectorizer(store, MockEmbeddingProvider(), fast_config()).ensure_embeddings(ids)

    assert result.success
    assert result.newly_vectorized == 8
    assert result.failed == 2


def test_empty_request_is_not_successful(store):
    result = Vectorizer(store, MockEmbeddingProvider(), fast_config()).ensure_embeddings([])
    assert not result.success
    assert result.total == 0


def test_failed_batches_tolerated_above_threshold(store):
    ids = seed(store, 8)
    provider = ScriptedProvider(errors=[ValueError("bad batch")])

    result = Vectorizer(store, provider, fast_config()).ensure_embeddings(ids)

    assert result.success
    assert result.failed == 4
    assert result.newly_vectorized == 4


def test_reports_failure_below_threshold(store):
    ids = seed(store, 8)
    provider = ScriptedProvider(errors=[ValueError("down")] * 3)

    result = Vectorizer(store, provider, fast_config(embed_batch_size=3)).ensure_embeddings(ids)

    assert not result.success
    assert result.failed == 8
    assert result.newly_vectorized == 0


def test_vector_count_mismatch_fails_batch(store):
    ids = seed(store, 4)

    class ShortProvider(MockEmbeddingProvider):
        def embed(self, texts):
            return super().embed(texts)[:-1]

    result = Vectorizer(store, ShortProvider(), fast_config()).ensure_embeddings(ids)

    assert not result.success
    assert result.failed == 4


def test_rate_limit_backoff(store):
    ids = seed(store, 4)
    provider = ScriptedProvider(errors=[RateLimitError("slow down"), RateLimitError("slow down")])
    sleeps = []

    result = Vectorizer(store, provider, fast_config(), sleep=sleeps.append).ensure_embeddings(ids)

    assert result.success
    assert result.newly_vectorized == 4
    assert sleeps == [5.0, 10.0]


def test_rate_limit_gives_up_after_retries(store):
    ids = seed(store, 4)
    provider = ScriptedProvider(errors=[RateLimitError("429")] * 5)
    sleeps = []

    result = Vectorizer(
        store, provider, fast_config(rate_limit_retries=2), sleep=sleeps.append
    ).ensure_embeddings(ids)

    assert not result.success
    assert result.failed == 4
    assert sleeps == [5.0]


def test_cancellation_between_batches(store):
    ids = seed(store, 8)
    with pytest.raises(SessionCancelledError):
        Vectorizer(store, MockEmbeddingProvider(), fast_config()).ensure_embeddings(
            ids, should_cancel=lambda: True
        )


def test_save_failures_counted(store):
    ids = seed(store, 4)

    def broken_save(*args, **kwargs):
        raise RuntimeError("disk full")

    store.save_embedding = broken_save
    result = Vectorizer(store, MockEmbeddingProvider(), fast_config()).ensure_embeddings(ids)

    assert result.failed == 4
    assert result.newly_vectorized == 0


def test_store_calls_run_off_the_event_loop_one_at_a_time(store):
    ids = seed(store, 12)
    calls = []
    in_flight = []
    original_save = store.save_embedding

    def record(kind):
        calls.append((kind, threading.current_thread() is threading.main_thread()))

    def slow_save(*args, **kwargs):
        in_flight.append(1)
        assert len(in_flight) == 1
        record("save")
        time.sleep(0.001)
        original_save(*args, **kwargs)
        in_flight.pop()

    def should_cancel():
        record("cancel")
        return False

    store.save_embedding = slow_save
    vectorizer = Vectorizer(store, MockEmbeddingProvider(), fast_config(max_concurrency=3))

    result = vectorizer.ensure_embeddings(
        ids,
        should_cancel=should_cancel,
        on_progress=lambda done, total: record("progress"),
    )

    assert result.newly_vectorized == 12
    # the first progress report comes before any batch starts
    assert calls[0] == ("progress", True)
    assert {kind for kind, _ in calls[1:]} == {"save", "cancel", "progress"}
    assert not any(on_main for _, on_main in calls[1:])


def test_fetch_embeddings_keeps_request_order(store):
    ids = seed(store, 5, embedded=5)
    vectorizer = Vectorizer(store, MockEmbeddingProvider(), fast_config(fetch_batch_size=2))

    posts = vectorizer.fetch_embeddings(list(reversed(ids)))

    assert [p.id for p in posts] == list(reversed(ids))


def test_enrich_post_content():
    post = make_post(
        text="  Big news today ",
        author_name="Jane Doe",
        author_username="@jane",
        hashtags=["news", "#today"],
    )

    content = enrich_post_content(post)

    assert content == "Big news today\nAuthor: Jane Doe\n@jane\n#news #today"
    assert len(enrich_post_content(post, max_length=5)) == 5


def test_embedding_stats(store):
    ids = seed(store, 4, embedded=1)

    stats = get_embedding_stats(store, ids + ["missing"], fetch_batch_size=2)

    assert stats.total == 4
    assert stats.cached == 1
    assert stats.needs_embedding == 3
    assert stats.cache_hit_rate == pytest.approx(0.25)


def test_generate_single_embedding():
    provider = MockEmbeddingProvider(dimensions=8)
    vector = generate_single_embedding(provider, "opinion")
    assert len(vector) == 8
    assert vector == provider.embed(["opinion"])[0]


def test_estimate_processing_time():
    assert estimate_processing_time(500, 0) == 90
    assert estimate_processing_time(2000, 1000) == 125
    assert estimate_processing_time(10000, 10000) == 230
