"""Temporally stratified post sampling."""

import logging
import math
import random
from datetime import datetime, timedelta
from typing import List, Optional

from ..analysis.rng import make_rng
from ..models import PostRef
from ..store import ContentStore
from .models import SampleResult

logger = logging.getLogger(__name__)

ALL = "all"
STRATIFIED = "stratified"


class StratifiedSampler:
    """Sample posts evenly across the days of a range.

    Without stratification a busy day would crowd out quieter ones, so each
    day-long bucket contributes the same number of randomly chosen posts.
    """

    def __init__(
        self,
        store: ContentStore,
        rng: Optional[random.Random] = None,
        exclude_reposts: bool = True,
        fill_shortfall: bool = True,
    ) -> None:
        """
        Initialize sampler.

        Args:
            store: Content store to read posts from
            rng: Random source; pass a seeded generator for reproducible samples
            exclude_reposts: Skip pure reposts
            fill_shortfall: Top up sparse samples from the remaining posts
        """
        self.store = store
        self.rng = rng or make_rng()
        self.exclude_reposts = exclude_reposts
        self.fill_shortfall = fill_shortfall

    def sample(
        self,
        zone_id: str,
        start: datetime,
        end: datetime,
        target: int,
    ) -> SampleResult:
        """Sample up to ``target`` posts created in ``[start, end)``."""
        if target < 1:
            raise ValueError(f"Sample size must be positive, got {target}")
        if end <= start:
            raise ValueError("End date must be after start date")

        total = self.store.count_posts(zone_id, start, end, self.exclude_reposts)
        if total == 0:
            logger.info("No posts for zone %s between %s and %s", zone_id, start, end)
            return SampleResult(strategy=ALL)

        if total <= target:
            posts = self.store.list_post_refs(zone_id, start, end, self.exclude_reposts)
            logger.info("Taking all %d posts for zone %s", len(posts), zone_id)
            return SampleResult(
                posts=posts,
                total_available=total,
                actual_sampled=len(posts),
                buckets=1,
                strategy=ALL,
            )

        days = (end - start).total_seconds() / 86400
        bucket_count = max(1, math.ceil(days))
        per_bucket = math.ceil(target / bucket_count)

        sampled: List[PostRef] = []
        for index in range(bucket_count):
            bucket_start = start + timedelta(days=index)
            bucket_end = min(start + timedelta(days=index + 1), end)
            refs = self.store.list_post_refs(zone_id, bucket_start, bucket_end, self.exclude_reposts)
            if refs:
                sampled.extend(self.rng.sample(refs, min(per_bucket, len(refs))))

        sampled = sampled[:target]

        if self.fill_shortfall and len(sampled) < target:
            chosen = {ref.id for ref in sampled}
            remaining = [
                ref
                for ref in self.store.list_post_refs(zone_id, start, end, self.exclude_reposts)
                if ref.id not in chosen
            ]
            needed = min(target - len(sampled), len(remaining))
            if needed:
                sampled.extend(self.rng.sample(remaining, needed))
                logger.info("Topped up sparse sample with %d posts", needed)

        logger.info(
            "Sampled %d of %d posts for zone %s across %d buckets (%d per bucket)",
            len(sampled), total, zone_id, bucket_count, per_bucket,
        )
        return SampleResult(
            posts=sampled,
            total_available=total,
            actual_sampled=len(sampled),
            buckets=bucket_count,
            strategy=STRATIFIED,
        )
