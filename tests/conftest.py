from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from opinionmap.models import Post, SessionConfig
from opinionmap.store import InMemoryStore

START = datetime(2024, 3, 1, tzinfo=timezone.utc)
ZONE = "zone-1"

_ids = count(1)


def make_post(created_at=None, text="hello world", zone_id=ZONE, embedding=None, **extra):
    index = next(_ids)
    return Post(
        id=extra.pop("id", f"p{index}"),
        external_id=extra.pop("external_id", f"x{index}"),
        zone_id=zone_id,
        text=text,
        created_at=created_at or START,
        embedding=embedding,
        **extra,
    )


def make_session_config(post_ids, start=START, end=None, **extra):
    return SessionConfig(
        start_date=start,
        end_date=end or start + timedelta(days=3),
        sample_size=max(1, len(post_ids)),
        sampled_post_ids=list(post_ids),
        actual_sample_size=len(post_ids),
        **extra,
    )


class TickingClock:
    """Clock that advances one second per call."""

    def __init__(self, start=START):
        self.now = start

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def add_posts(store):
    """Seed ``per_day`` posts on each of ``days`` days from START."""

    def _add(days=1, per_day=10, start=START, zone_id=ZONE, text="hello world", embedding=None):
        posts = []
        for day in range(days):
            for i in range(per_day):
                created = start + timedelta(days=day, minutes=i * (1440 // max(per_day, 1)))
                post = make_post(created_at=created, text=text, zone_id=zone_id, embedding=embedding)
                store.add_post(post)
                posts.append(post)
        return posts

    return _add
