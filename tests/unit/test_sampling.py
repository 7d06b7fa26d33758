from collections import Counter
from datetime import timedelta

import pytest

from conftest import START, ZONE, make_post
from opinionmap.analysis.rng import XorShift32
from opinionmap.pipeline import ALL, STRATIFIED, StratifiedSampler


def test_takes_everything_when_under_target(store, add_posts):
    add_posts(days=5, per_day=10)
    sampler = StratifiedSampler(store, rng=XorShift32(1))

    result = sampler.sample(ZONE, START, START + timedelta(days=5), 100)

    assert result.strategy == ALL
    assert result.actual_sampled == 50
    assert result.total_available == 50
    assert result.buckets == 1
    created = [store.get_posts([pid])[0].created_at for pid in result.post_ids]
    assert created == sorted(created)


def test_target_equal_to_total_takes_everything(store, add_posts):
    add_posts(days=1, per_day=10)
    result = StratifiedSampler(store).sample(ZONE, START, START + timedelta(days=1), 10)

    assert result.strategy == ALL
    assert result.actual_sampled == 10


def test_stratifies_across_days(store, add_posts):
    add_posts(days=30, per_day=100)
    sampler = StratifiedSampler(store, rng=XorShift32(3))

    result = sampler.sample(ZONE, START, START + timedelta(days=30), 300)

    assert result.strategy == STRATIFIED
    assert result.total_available == 3000
    assert result.buckets == 30
    assert result.actual_sampled == 300
    assert len(set(result.post_ids)) == 300

    per_day = Counter(
        (store.get_posts([pid])[0].created_at - START).days for pid in result.post_ids
    )
    assert set(per_day.values()) == {10}


def test_seeded_samples_repeat(store, add_posts):
    add_posts(days=10, per_day=20)
    end = START + timedelta(days=10)

    first = StratifiedSampler(store, rng=XorShift32(11)).sample(ZONE, START, end, 50)
    second = StratifiedSampler(store, rng=XorShift32(11)).sample(ZONE, START, end, 50)

    assert first.post_ids == second.post_ids


def test_sparse_days_are_topped_up(store, add_posts):
    add_posts(days=1, per_day=100)
    add_posts(days=9, per_day=1, start=START + timedelta(days=1))
    end = START + timedelta(days=10)

    filled = StratifiedSampler(store, rng=XorShift32(2)).sample(ZONE, START, end, 50)
    unfilled = StratifiedSampler(store, rng=XorShift32(2), fill_shortfall=False).sample(ZONE, START, end, 50)

    assert unfilled.actual_sampled == 14
    assert filled.actual_sampled == 50
    assert len(set(filled.post_ids)) == 50


def test_reposts_excluded_by_default(store):
    store.add_post(make_post(created_at=START, text="RT @someone: hello"))
    store.add_post(make_post(created_at=START, text="original take"))
    end = START + timedelta(days=1)

    assert StratifiedSampler(store).sample(ZONE, START, end, 10).actual_sampled == 1
    assert StratifiedSampler(store, exclude_reposts=False).sample(ZONE, START, end, 10).actual_sampled == 2


def test_range_is_half_open(store):
    end = START + timedelta(days=1)
    store.add_post(make_post(created_at=START))
    store.add_post(make_post(created_at=end))

    result = StratifiedSampler(store).sample(ZONE, START, end, 10)

    assert result.actual_sampled == 1


def test_zero_posts(store):
    result = StratifiedSampler(store).sample(ZONE, START, START + timedelta(days=3), 10)

    assert result.posts == []
    assert result.strategy == ALL
    assert result.total_available == 0


def test_invalid_arguments(store):
    sampler = StratifiedSampler(store)
    with pytest.raises(ValueError):
        sampler.sample(ZONE, START, START + timedelta(days=1), 0)
    with pytest.raises(ValueError):
        sampler.sample(ZONE, START, START, 10)
