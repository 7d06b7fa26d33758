"""Content store interface used by every pipeline stage."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..models import (
    EnrichedProjection,
    OpinionCluster,
    OpinionSession,
    Post,
    PostRef,
    Projection,
    SessionStatus,
)


class ContentStore(ABC):
    """Abstract store for posts, sessions, projections and clusters.

    Implementations must enforce that at most one non-terminal session
    exists per zone and raise ``ActiveSessionExistsError`` otherwise.
    Post date ranges are half-open: ``start <= created_at < end``.
    """

    # Sessions

    @abstractmethod
    def insert_session(self, session: OpinionSession) -> OpinionSession:
        """
        Persist a new session.

        Raises:
            ActiveSessionExistsError: the zone already has an active session
        """
        pass

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[OpinionSession]:
        """Get a session by its id."""
        pass

    @abstractmethod
    def get_active_session(self, zone_id: str) -> Optional[OpinionSession]:
        """Get the zone's non-terminal session, if any."""
        pass

    @abstractmethod
    def get_latest_session(
        self,
        zone_id: str,
        status: Optional[SessionStatus] = None,
    ) -> Optional[OpinionSession]:
        """Get the most recently created session, optionally filtered by status."""
        pass

    @abstractmethod
    def list_sessions(self, zone_id: str, limit: int = 10) -> List[OpinionSession]:
        """List a zone's sessions, newest first."""
        pass

    @abstractmethod
    def update_session(
        self,
        session_id: str,
        changes: Dict[str, Any],
        only_if_active: bool = True,
    ) -> bool:
        """
        Apply column changes to a session.

        Args:
            session_id: Session to update
            changes: Field name to new value
            only_if_active: Only update while the session is non-terminal

        Returns:
            True if a row was updated
        """
        pass

    # Posts

    @abstractmethod
    def count_posts(
        self,
        zone_id: str,
        start: datetime,
        end: datetime,
        exclude_reposts: bool = True,
    ) -> int:
        """Count eligible posts in a date range."""
        pass

    @abstractmethod
    def list_post_refs(
        self,
        zone_id: str,
        start: datetime,
        end: datetime,
        exclude_reposts: bool = True,
    ) -> List[PostRef]:
        """List eligible post references in a date range, oldest first."""
        pass

    @abstractmethod
    def get_posts(self, post_ids: Sequence[str]) -> List[Post]:
        """Fetch posts by id. Unknown ids are skipped."""
        pass

    @abstractmethod
    def save_embedding(
        self,
        post_id: str,
        embedding: List[float],
        model: str,
        created_at: datetime,
    ) -> None:
        """Store an embedding on a post."""
        pass

    # Projections

    @abstractmethod
    def save_projections(self, projections: Sequence[Projection]) -> int:
        """Persist projections, returning the number written."""
        pass

    @abstractmethod
    def get_projections(self, zone_id: str, session_id: str) -> List[Projection]:
        """Get all projections of a session."""
        pass

    @abstractmethod
    def get_enriched_projections(self, zone_id: str, session_id: str) -> List[EnrichedProjection]:
        """Get projections joined with their posts, newest post first."""
        pass

    @abstractmethod
    def get_projections_for_posts(
        self,
        zone_id: str,
        session_id: str,
        post_ids: Sequence[str],
    ) -> List[Projection]:
        """Get the session's projections for specific posts."""
        pass

    # Clusters

    @abstractmethod
    def save_clusters(self, clusters: Sequence[OpinionCluster]) -> int:
        """Persist clusters, returning the number written."""
        pass

    @abstractmethod
    def get_clusters(self, zone_id: str, session_id: str) -> List[OpinionCluster]:
        """Get a session's clusters, largest first."""
        pass
