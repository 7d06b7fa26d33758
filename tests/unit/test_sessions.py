from datetime import datetime, timezone

import pytest

from conftest import ZONE, make_session_config
from opinionmap.errors import ActiveSessionExistsError, SessionNotFoundError
from opinionmap.models import SessionStatus
from opinionmap.pipeline import SessionManager, make_session_id
from opinionmap.store import InMemoryStore


@pytest.fixture
def manager(store, clock):
    return SessionManager(store, clock=clock)


def test_session_id_format():
    now = datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)
    assert make_session_id("abc", now).startswith("zone_abc_2024-03-01T12:30:00")


def test_create_starts_pending(manager):
    session = manager.create(ZONE, make_session_config(["p1", "p2"]), created_by="ops")

    assert session.status == SessionStatus.PENDING
    assert session.progress == 0
    assert session.total_tweets == 2
    assert session.created_by == "ops"
    assert session.session_id.startswith(f"zone_{ZONE}_")


def test_second_active_session_rejected(manager):
    manager.create(ZONE, make_session_config(["p1"]))
    with pytest.raises(ActiveSessionExistsError):
        manager.create(ZONE, make_session_config(["p2"]))


def test_other_zone_is_independent(manager):
    manager.create(ZONE, make_session_config(["p1"]))
    other = manager.create("zone-2", make_session_config(["p2"]))
    assert other.status == SessionStatus.PENDING


def test_new_session_allowed_after_terminal(manager):
    first = manager.create(ZONE, make_session_config(["p1"]))
    manager.cancel(first.session_id)
    second = manager.create(ZONE, make_session_config(["p1"]))
    assert second.session_id != first.session_id


def test_create_or_reuse_returns_existing(manager):
    first, reused = manager.create_or_reuse_active(ZONE, make_session_config(["p1"]))
    assert not reused

    again, reused = manager.create_or_reuse_active(ZONE, make_session_config(["p2"]))
    assert reused
    assert again.session_id == first.session_id


class RacingStore(InMemoryStore):
    """Hides the active session from the first lookup, as if it was created concurrently."""

    def __init__(self):
        super().__init__()
        self.hide_next_lookup = False

    def get_active_session(self, zone_id):
        if self.hide_next_lookup:
            self.hide_next_lookup = False
            return None
        return super().get_active_session(zone_id)


def test_create_or_reuse_adopts_race_winner(clock):
    store = RacingStore()
    manager = SessionManager(store, clock=clock)
    winner = manager.create(ZONE, make_session_config(["p1"]))

    store.hide_next_lookup = True
    session, reused = manager.create_or_reuse_active(ZONE, make_session_config(["p2"]))

    assert reused
    assert session.session_id == winner.session_id
    assert len(store.list_sessions(ZONE)) == 1


class FlakyInsertStore(InMemoryStore):
    """Reports a conflict once, for a winner that is already gone."""

    def __init__(self):
        super().__init__()
        self.conflicts = 1

    def insert_session(self, session):
        if self.conflicts:
            self.conflicts -= 1
            raise ActiveSessionExistsError(session.zone_id)
        return super().insert_session(session)


def test_create_or_reuse_recreates_when_winner_finished(clock):
    store = FlakyInsertStore()
    manager = SessionManager(store, clock=clock)

    session, reused = manager.create_or_reuse_active(ZONE, make_session_config(["p1"]))

    assert not reused
    assert session.status == SessionStatus.PENDING


def test_progress_is_monotonic_and_clamped(manager, store):
    session = manager.create(ZONE, make_session_config(["p1"]))
    sid = session.session_id

    assert manager.update_progress(sid, SessionStatus.VECTORIZING, 30, "Embedding")
    manager.update_progress(sid, SessionStatus.REDUCING, 20, "Reducing")
    assert store.get_session(sid).progress == 30
    assert store.get_session(sid).status == SessionStatus.REDUCING

    manager.update_progress(sid, SessionStatus.CLUSTERING, 150)
    assert store.get_session(sid).progress == 100


def test_started_at_stamped_once(manager, store):
    session = manager.create(ZONE, make_session_config(["p1"]))
    sid = session.session_id
    assert store.get_session(sid).started_at is None

    manager.update_progress(sid, SessionStatus.VECTORIZING, 5)
    started = store.get_session(sid).started_at
    manager.update_progress(sid, SessionStatus.REDUCING, 25)

    assert started is not None
    assert store.get_session(sid).started_at == started


def test_completion_stamps_timing(manager, store):
    session = manager.create(ZONE, make_session_config(["p1"]))
    sid = session.session_id
    manager.update_progress(sid, SessionStatus.VECTORIZING, 10)
    manager.update_progress(sid, SessionStatus.COMPLETED, 90, "Done", total_clusters=4)

    done = store.get_session(sid)
    assert done.status == SessionStatus.COMPLETED
    assert done.progress == 100
    assert done.total_clusters == 4
    assert done.completed_at is not None
    assert done.execution_time_ms == 1000


def test_terminal_session_ignores_updates(manager, store):
    session = manager.create(ZONE, make_session_config(["p1"]))
    sid = session.session_id
    manager.update_progress(sid, SessionStatus.COMPLETED, 100)

    assert not manager.update_progress(sid, SessionStatus.LABELING, 50)
    assert store.get_session(sid).status == SessionStatus.COMPLETED


def test_update_progress_rejects_failure_statuses(manager):
    session = manager.create(ZONE, make_session_config(["p1"]))
    with pytest.raises(ValueError):
        manager.update_progress(session.session_id, SessionStatus.FAILED, 10)
    with pytest.raises(ValueError):
        manager.update_progress(session.session_id, SessionStatus.VECTORIZING, 10, bogus=1)


def test_mark_failed_records_diagnostics(manager, store):
    session = manager.create(ZONE, make_session_config(["p1"]))
    sid = session.session_id

    assert manager.mark_failed(sid, "boom", "Traceback ...")

    failed = store.get_session(sid)
    assert failed.status == SessionStatus.FAILED
    assert failed.error_message == "boom"
    assert failed.error_stack == "Traceback ..."
    assert failed.completed_at is not None


def test_mark_failed_leaves_completed_session_alone(manager, store):
    session = manager.create(ZONE, make_session_config(["p1"]))
    sid = session.session_id
    manager.update_progress(sid, SessionStatus.COMPLETED, 100)

    assert not manager.mark_failed(sid, "late failure")
    assert store.get_session(sid).status == SessionStatus.COMPLETED


def test_cancel_is_compare_and_set(manager):
    session = manager.create(ZONE, make_session_config(["p1"]))
    sid = session.session_id

    assert manager.cancel(sid)
    assert manager.is_cancelled(sid)
    assert not manager.cancel(sid)


def test_cancel_completed_is_noop(manager):
    session = manager.create(ZONE, make_session_config(["p1"]))
    manager.update_progress(session.session_id, SessionStatus.COMPLETED, 100)

    assert not manager.cancel(session.session_id)
    assert manager.get_session(session.session_id).status == SessionStatus.COMPLETED


def test_get_session_missing(manager):
    with pytest.raises(SessionNotFoundError):
        manager.get_session("nope")


def test_latest_and_running(manager):
    assert manager.get_latest_session(ZONE) is None
    first = manager.create(ZONE, make_session_config(["p1"]))
    manager.update_progress(first.session_id, SessionStatus.COMPLETED, 100)
    second = manager.create(ZONE, make_session_config(["p1"]))

    assert manager.get_latest_session(ZONE).session_id == second.session_id
    assert manager.get_running_session(ZONE).session_id == second.session_id
