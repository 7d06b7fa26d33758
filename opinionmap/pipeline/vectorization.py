"""Embedding cache: make sure every sampled post has a vector."""

import asyncio
import logging
import math
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from ..config import VectorizationConfig
from ..errors import SampleIntegrityError, SessionCancelledError, is_rate_limit_error
from ..models import Post
from ..providers import EmbeddingProvider
from ..store import ContentStore
from .models import EmbeddingStats, VectorizationResult

logger = logging.getLogger(__name__)

# Below this share of found posts the sample and the store disagree
INTEGRITY_RATIO = 0.5


def _chunks(items: Sequence, size: int) -> Iterator[Sequence]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def enrich_post_content(post: Post, max_length: int = 8000) -> str:
    """Text sent to the embedding model: body, author and hashtags."""
    parts = [post.text.strip()]
    if post.author_name:
        parts.append(f"Author: {post.author_name}")
    if post.author_username:
        parts.append(f"@{post.author_username.lstrip('@')}")
    if post.hashtags:
        parts.append(" ".join(f"#{tag.lstrip('#')}" for tag in post.hashtags))
    return "\n".join(p for p in parts if p)[:max_length]


def generate_single_embedding(provider: EmbeddingProvider, text: str) -> List[float]:
    """Embed one text, e.g. a search query."""
    return provider.embed_one(text)


def get_embedding_stats(
    store: ContentStore,
    post_ids: Sequence[str],
    fetch_batch_size: int = 500,
) -> EmbeddingStats:
    """Count how many of the posts already have embeddings."""
    total = cached = 0
    for batch in _chunks(list(post_ids), fetch_batch_size):
        posts = store.get_posts(batch)
        total += len(posts)
        cached += sum(1 for p in posts if p.has_embedding)

    return EmbeddingStats(
        total=total,
        cached=cached,
        needs_embedding=total - cached,
        cache_hit_rate=cached / total if total else 0.0,
    )


def estimate_processing_time(total_posts: int, needs_embedding: int) -> int:
    """Rough wall time in seconds for a pipeline run."""
    vectorization = math.ceil(needs_embedding / 100) * 0.5
    pca = 10
    if total_posts < 1000:
        umap_time = 30
    elif total_posts < 5000:
        umap_time = 60
    else:
        umap_time = 120
    kmeans = 10
    labeling = 8 * 5
    return math.ceil(vectorization + pca + umap_time + kmeans + labeling)


class Vectorizer:
    """Ensure posts carry embeddings, reusing the ones already stored."""

    def __init__(
        self,
        store: ContentStore,
        provider: EmbeddingProvider,
        config: Optional[VectorizationConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize vectorizer.

        Args:
            store: Content store holding the posts
            provider: Embedding provider
            config: Batching and retry settings
            sleep: Blocking sleep used for rate-limit backoff (injected in tests)
        """
        self.store = store
        self.provider = provider
        self.config = config or VectorizationConfig()
        self.sleep = sleep
        self._store_lock = threading.Lock()

    def fetch_posts(self, post_ids: Sequence[str]) -> List[Post]:
        """Fetch posts in bounded batches, keeping the requested order."""
        by_id = {}
        for batch in _chunks(list(post_ids), self.config.fetch_batch_size):
            for post in self.store.get_posts(batch):
                by_id[post.id] = post
        return [by_id[pid] for pid in post_ids if pid in by_id]

    def fetch_embeddings(self, post_ids: Sequence[str]) -> List[Post]:
        """Posts that have an embedding, in requested order."""
        return [p for p in self.fetch_posts(post_ids) if p.has_embedding]

    def ensure_embeddings(
        self,
        post_ids: Sequence[str],
        should_cancel: Optional[Callable[[], bool]] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> VectorizationResult:
        """
        Embed every post that has no embedding yet.

        Args:
            post_ids: Posts to vectorize
            should_cancel: Polled between batches; raise when it returns True
            on_progress: Called with (vectorized so far, total requested)

        Returns:
            VectorizationResult

        Raises:
            SampleIntegrityError: fewer than half the posts exist in the store
            SessionCancelledError: should_cancel returned True
        """
        requested = list(dict.fromkeys(post_ids))
        if not requested:
            logger.warning("No posts to vectorize")
            return VectorizationResult(success=False)

        posts = self.fetch_posts(requested)
        if len(posts) < len(requested) * INTEGRITY_RATIO:
            raise SampleIntegrityError(
                f"Only {len(posts)} of {len(requested)} sampled posts exist in the store"
            )

        cached = [p for p in posts if p.has_embedding]
        pending = [p for p in posts if not p.has_embedding]
        missing = len(requested) - len(posts)
        if missing:
            logger.warning("%d sampled posts were not found in the store", missing)
        logger.info(
            "Embedding cache: %d cached, %d to embed (%.1f%% hit rate)",
            len(cached), len(pending), 100 * len(cached) / len(posts),
        )

        if on_progress:
            on_progress(len(cached), len(requested))

        newly, failed = 0, 0
        if pending:
            newly, failed = asyncio.run(
                self._embed_all(pending, len(cached), len(requested), should_cancel, on_progress)
            )

        vectorized = len(cached) + newly
        success = vectorized / len(requested) >= self.config.min_success_ratio
        result = VectorizationResult(
            success=success,
            total=len(requested),
            already_vectorized=len(cached),
            newly_vectorized=newly,
            failed=failed + missing,
            cache_hit_rate=len(cached) / vectorized if vectorized else 0.0,
        )
        logger.info(
            "Vectorization %s: %d cached, %d new, %d failed",
            "succeeded" if success else "failed",
            result.already_vectorized, result.newly_vectorized, result.failed,
        )
        return result

    async def _embed_all(
        self,
        posts: List[Post],
        already_done: int,
        total: int,
        should_cancel: Optional[Callable[[], bool]],
        on_progress: Optional[Callable[[int, int], None]],
    ) -> Tuple[int, int]:
        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        batches = list(_chunks(posts, self.config.embed_batch_size))
        counts = {"newly": 0, "failed": 0}

        async def run_batch(index: int, batch: Sequence[Post]) -> None:
            async with semaphore:
                if should_cancel and await self._off_loop(should_cancel):
                    raise SessionCancelledError("Cancelled during vectorization")

                texts = [enrich_post_content(p, self.config.max_content_length) for p in batch]
                try:
                    vectors = await asyncio.to_thread(self._embed_with_backoff, texts)
                except Exception as e:
                    logger.error("Embedding batch %d/%d failed: %s", index + 1, len(batches), e)
                    counts["failed"] += len(batch)
                    vectors = None

                if vectors is not None and len(vectors) != len(batch):
                    logger.error(
                        "Embedding batch %d returned %d vectors for %d texts",
                        index + 1, len(vectors), len(batch),
                    )
                    counts["failed"] += len(batch)
                    vectors = None

                if vectors is not None:
                    newly, failed = await self._off_loop(self._persist, batch, vectors)
                    counts["newly"] += newly
                    counts["failed"] += failed

                if on_progress:
                    await self._off_loop(on_progress, already_done + counts["newly"], total)

                # hold the slot during the pause to keep the request rate bounded
                if index < len(batches) - 1 and self.config.inter_batch_delay > 0:
                    await asyncio.sleep(self.config.inter_batch_delay)

        await asyncio.gather(*(run_batch(i, b) for i, b in enumerate(batches)))
        return counts["newly"], counts["failed"]

    def _embed_with_backoff(self, texts: List[str]) -> List[List[float]]:
        attempt = 0
        while True:
            try:
                return self.provider.embed(texts)
            except Exception as e:
                attempt += 1
                if not is_rate_limit_error(e) or attempt >= self.config.rate_limit_retries:
                    raise
                delay = self.config.rate_limit_base_delay * (2 ** (attempt - 1))
                logger.warning("Embedding rate limited, retrying in %.1fs", delay)
                self.sleep(delay)

    async def _off_loop(self, func: Callable, *args):
        """Run a store-touching call in a worker thread, one at a time."""
        def locked():
            with self._store_lock:
                return func(*args)

        return await asyncio.to_thread(locked)

    def _persist(self, batch: Sequence[Post], vectors: List[List[float]]) -> Tuple[int, int]:
        """Save one batch of vectors; returns (saved, failed)."""
        now = datetime.now(timezone.utc)
        newly = failed = 0
        for post, vector in zip(batch, vectors):
            try:
                self.store.save_embedding(post.id, vector, self.provider.model, now)
                newly += 1
            except Exception as e:
                logger.error("Failed to store embedding for post %s: %s", post.id, e)
                failed += 1
        return newly, failed
