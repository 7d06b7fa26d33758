from datetime import timedelta

import pytest

from conftest import START, ZONE
from opinionmap.config import ConfigModel
from opinionmap.errors import OpinionMapError
from opinionmap.models import SessionStatus
from opinionmap.pipeline import GenerationRequest, start_opinion_map


def request(**overrides):
    values = {
        "zone_id": ZONE,
        "start_date": START,
        "end_date": START + timedelta(days=3),
        "sample_size": 20,
        "seed": 3,
    }
    values.update(overrides)
    return GenerationRequest(**values)


def test_creates_pending_session(store, add_posts):
    add_posts(days=3, per_day=10)

    plan = start_opinion_map(store, request(k=4, language="fr", created_by="analyst"))

    assert not plan.reused
    session = plan.session
    assert session.status == SessionStatus.PENDING
    assert session.created_by == "analyst"
    assert session.config.k == 4
    assert session.config.language == "fr"
    assert session.config.actual_sample_size == 20
    assert session.config.sampling_strategy == "stratified"
    assert plan.sample.actual_sampled == 20
    assert plan.embedding_stats.needs_embedding == 20
    assert plan.estimated_seconds > 0


def test_seeded_requests_sample_the_same_posts(store, add_posts):
    add_posts(days=3, per_day=10)

    first = start_opinion_map(store, request())
    store.update_session(first.session.session_id, {"status": SessionStatus.COMPLETED})
    second = start_opinion_map(store, request())

    assert first.session.session_id != second.session.session_id
    assert first.session.config.sampled_post_ids == second.session.config.sampled_post_ids


def test_reuses_running_session(store, add_posts):
    add_posts(days=3, per_day=10)
    first = start_opinion_map(store, request())

    second = start_opinion_map(store, request(sample_size=5))

    assert second.reused
    assert second.session.session_id == first.session.session_id
    assert second.sample is None
    assert second.estimated_seconds is None


def test_small_range_takes_every_post(store, add_posts):
    add_posts(days=1, per_day=8)

    plan = start_opinion_map(store, request(), ConfigModel())

    assert plan.sample.strategy == "all"
    assert plan.session.config.actual_sample_size == 8


def test_no_posts_in_range(store, add_posts):
    add_posts(days=1, per_day=5, start=START - timedelta(days=10))

    with pytest.raises(OpinionMapError, match="No posts found"):
        start_opinion_map(store, request())
    assert store.get_latest_session(ZONE) is None
