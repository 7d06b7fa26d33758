"""Session lifecycle management."""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

import pendulum

from ..errors import ActiveSessionExistsError, SessionNotFoundError
from ..models import OpinionSession, SessionConfig, SessionStatus
from ..store import ContentStore

logger = logging.getLogger(__name__)

COUNTER_FIELDS = frozenset({"total_tweets", "vectorized_tweets", "total_clusters", "outlier_count"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def make_session_id(zone_id: str, now: datetime) -> str:
    """Session ids look like ``zone_<zone>_<ISO-8601 UTC timestamp>``."""
    return f"zone_{zone_id}_{pendulum.instance(now).in_timezone('UTC').to_iso8601_string()}"


def _elapsed_ms(started_at: Optional[datetime], now: datetime) -> Optional[int]:
    if started_at is None:
        return None
    return max(0, int((now - started_at).total_seconds() * 1000))


class SessionManager:
    """Manage opinion map sessions in the content store.

    Every mutation is written through to the store immediately; workers read
    the session back between stages to notice cancellation.
    """

    def __init__(
        self,
        store: ContentStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.clock = clock

    def create(
        self,
        zone_id: str,
        config: SessionConfig,
        created_by: Optional[str] = None,
    ) -> OpinionSession:
        """
        Create a pending session.

        Raises:
            ActiveSessionExistsError: the zone already has an active session
        """
        session = OpinionSession(
            session_id=make_session_id(zone_id, self.clock()),
            zone_id=zone_id,
            status=SessionStatus.PENDING,
            progress=0,
            phase_message="Queued",
            config=config,
            total_tweets=config.actual_sample_size,
            created_by=created_by,
        )
        created = self.store.insert_session(session)
        logger.info("Created session %s for zone %s", created.session_id, zone_id)
        return created

    def create_or_reuse_active(
        self,
        zone_id: str,
        config: SessionConfig,
        created_by: Optional[str] = None,
    ) -> Tuple[OpinionSession, bool]:
        """
        Return the zone's active session, creating one if there is none.

        Returns:
            (session, reused) where reused is True when an existing session
            was returned instead of a new one
        """
        existing = self.store.get_active_session(zone_id)
        if existing is not None:
            logger.info("Reusing active session %s for zone %s", existing.session_id, zone_id)
            return existing, True

        try:
            return self.create(zone_id, config, created_by), False
        except ActiveSessionExistsError:
            winner = self.store.get_active_session(zone_id)
            if winner is None:
                # the concurrent session already reached a terminal state
                return self.create(zone_id, config, created_by), False
            logger.info(
                "Lost creation race for zone %s, adopting session %s",
                zone_id, winner.session_id,
            )
            return winner, True

    def get_session(self, session_id: str) -> OpinionSession:
        """Get a session or raise SessionNotFoundError."""
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def get_latest_session(self, zone_id: str) -> Optional[OpinionSession]:
        return self.store.get_latest_session(zone_id)

    def get_running_session(self, zone_id: str) -> Optional[OpinionSession]:
        return self.store.get_active_session(zone_id)

    def is_cancelled(self, session_id: str) -> bool:
        return self.get_session(session_id).status == SessionStatus.CANCELLED

    def update_progress(
        self,
        session_id: str,
        status: SessionStatus,
        progress: int,
        message: Optional[str] = None,
        **counters: int,
    ) -> bool:
        """
        Move a session forward.

        Progress is clamped to [0, 100] and never goes backwards. Updates to
        a session that is already terminal are ignored.

        Args:
            session_id: Session to update
            status: New non-failure status
            progress: Progress percentage
            message: Operator-facing phase message
            **counters: total_tweets, vectorized_tweets, total_clusters, outlier_count

        Returns:
            True if the session was updated
        """
        if status in (SessionStatus.FAILED, SessionStatus.CANCELLED):
            raise ValueError(f"Use mark_failed or cancel to set status {status.value}")
        unknown = set(counters) - COUNTER_FIELDS
        if unknown:
            raise ValueError(f"Unknown session counters: {sorted(unknown)}")

        session = self.get_session(session_id)
        if not session.is_active:
            logger.debug("Ignoring progress update for %s session %s", session.status.value, session_id)
            return False

        clamped = max(0, min(100, int(progress)))
        now = self.clock()
        changes = {
            "status": status,
            "progress": max(clamped, session.progress),
            "phase_message": message,
            **counters,
        }

        started_at = session.started_at
        if status != SessionStatus.PENDING and started_at is None:
            started_at = now
            changes["started_at"] = now

        if status == SessionStatus.COMPLETED:
            changes["progress"] = 100
            changes["completed_at"] = now
            changes["execution_time_ms"] = _elapsed_ms(started_at, now)

        return self.store.update_session(session_id, changes, only_if_active=True)

    def mark_failed(
        self,
        session_id: str,
        message: str,
        stack: Optional[str] = None,
    ) -> bool:
        """Record a failure. Already-terminal sessions are left untouched."""
        session = self.get_session(session_id)
        now = self.clock()
        updated = self.store.update_session(
            session_id,
            {
                "status": SessionStatus.FAILED,
                "phase_message": "Failed",
                "error_message": message,
                "error_stack": stack,
                "completed_at": now,
                "execution_time_ms": _elapsed_ms(session.started_at, now),
            },
            only_if_active=True,
        )
        if updated:
            logger.error("Session %s failed: %s", session_id, message)
        return updated

    def cancel(self, session_id: str) -> bool:
        """
        Cancel a session if it is still active.

        Returns:
            True if the session moved to cancelled, False if it was already terminal
        """
        session = self.get_session(session_id)
        now = self.clock()
        cancelled = self.store.update_session(
            session_id,
            {
                "status": SessionStatus.CANCELLED,
                "phase_message": "Cancelled",
                "completed_at": now,
                "execution_time_ms": _elapsed_ms(session.started_at, now),
            },
            only_if_active=True,
        )
        if cancelled:
            logger.info("Cancelled session %s", session_id)
        return cancelled
