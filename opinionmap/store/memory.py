"""In-memory content store for tests and dry runs."""

import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..errors import ActiveSessionExistsError
from ..models import (
    EnrichedProjection,
    OpinionCluster,
    OpinionSession,
    Post,
    PostRef,
    Projection,
    SessionStatus,
)
from .base import ContentStore


def _is_repost(post: Post) -> bool:
    return post.text.startswith("RT @")


class InMemoryStore(ContentStore):
    """Keeps every record in dictionaries guarded by a lock."""

    def __init__(self, posts: Optional[Sequence[Post]] = None) -> None:
        self._lock = threading.RLock()
        self._posts: Dict[str, Post] = {}
        self._sessions: Dict[str, OpinionSession] = {}
        self._session_order: List[str] = []
        self._projections: Dict[tuple, Projection] = {}
        self._clusters: Dict[tuple, OpinionCluster] = {}
        self._next_id = 1
        for post in posts or []:
            self.add_post(post)

    def add_post(self, post: Post) -> None:
        """Seed a post."""
        with self._lock:
            self._posts[post.id] = post.model_copy(deep=True)

    def _allocate_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    # Sessions

    def insert_session(self, session: OpinionSession) -> OpinionSession:
        with self._lock:
            if session.is_active and self._find_active(session.zone_id) is not None:
                raise ActiveSessionExistsError(session.zone_id)
            if session.session_id in self._sessions:
                raise ValueError(f"Duplicate session id: {session.session_id}")
            now = datetime.now().astimezone()
            stored = session.model_copy(
                update={"id": self._allocate_id(), "created_at": now, "updated_at": now},
                deep=True,
            )
            self._sessions[stored.session_id] = stored
            self._session_order.append(stored.session_id)
            return stored.model_copy(deep=True)

    def _find_active(self, zone_id: str) -> Optional[OpinionSession]:
        for session_id in reversed(self._session_order):
            session = self._sessions[session_id]
            if session.zone_id == zone_id and session.is_active:
                return session
        return None

    def get_session(self, session_id: str) -> Optional[OpinionSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    def get_active_session(self, zone_id: str) -> Optional[OpinionSession]:
        with self._lock:
            session = self._find_active(zone_id)
            return session.model_copy(deep=True) if session else None

    def get_latest_session(
        self,
        zone_id: str,
        status: Optional[SessionStatus] = None,
    ) -> Optional[OpinionSession]:
        with self._lock:
            for session_id in reversed(self._session_order):
                session = self._sessions[session_id]
                if session.zone_id != zone_id:
                    continue
                if status is not None and session.status != status:
                    continue
                return session.model_copy(deep=True)
            return None

    def list_sessions(self, zone_id: str, limit: int = 10) -> List[OpinionSession]:
        with self._lock:
            sessions = [
                self._sessions[sid].model_copy(deep=True)
                for sid in reversed(self._session_order)
                if self._sessions[sid].zone_id == zone_id
            ]
            return sessions[:limit]

    def update_session(
        self,
        session_id: str,
        changes: Dict[str, Any],
        only_if_active: bool = True,
    ) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if only_if_active and not session.is_active:
                return False
            updated = session.model_copy(
                update={**changes, "updated_at": datetime.now().astimezone()}
            )
            # model_copy skips validation; re-validate to keep records typed
            self._sessions[session_id] = OpinionSession.model_validate(updated.model_dump())
            return True

    # Posts

    def _eligible(
        self,
        zone_id: str,
        start: datetime,
        end: datetime,
        exclude_reposts: bool,
    ) -> List[Post]:
        posts = [
            p
            for p in self._posts.values()
            if p.zone_id == zone_id
            and start <= p.created_at < end
            and not (exclude_reposts and _is_repost(p))
        ]
        posts.sort(key=lambda p: (p.created_at, p.id))
        return posts

    def count_posts(
        self,
        zone_id: str,
        start: datetime,
        end: datetime,
        exclude_reposts: bool = True,
    ) -> int:
        with self._lock:
            return len(self._eligible(zone_id, start, end, exclude_reposts))

    def list_post_refs(
        self,
        zone_id: str,
        start: datetime,
        end: datetime,
        exclude_reposts: bool = True,
    ) -> List[PostRef]:
        with self._lock:
            return [
                PostRef(id=p.id, external_id=p.external_id)
                for p in self._eligible(zone_id, start, end, exclude_reposts)
            ]

    def get_posts(self, post_ids: Sequence[str]) -> List[Post]:
        with self._lock:
            return [
                self._posts[pid].model_copy(deep=True)
                for pid in post_ids
                if pid in self._posts
            ]

    def save_embedding(
        self,
        post_id: str,
        embedding: List[float],
        model: str,
        created_at: datetime,
    ) -> None:
        with self._lock:
            post = self._posts.get(post_id)
            if post is None:
                raise KeyError(f"Post not found: {post_id}")
            self._posts[post_id] = post.model_copy(
                update={
                    "embedding": list(embedding),
                    "embedding_model": model,
                    "embedding_created_at": created_at,
                }
            )

    # Projections

    def save_projections(self, projections: Sequence[Projection]) -> int:
        with self._lock:
            for projection in projections:
                key = (projection.tweet_db_id, projection.session_id)
                existing = self._projections.get(key)
                stored = projection.model_copy(
                    update={"id": existing.id if existing else self._allocate_id()}
                )
                self._projections[key] = stored
            return len(projections)

    def get_projections(self, zone_id: str, session_id: str) -> List[Projection]:
        with self._lock:
            return [
                p.model_copy()
                for p in self._projections.values()
                if p.zone_id == zone_id and p.session_id == session_id
            ]

    def get_enriched_projections(self, zone_id: str, session_id: str) -> List[EnrichedProjection]:
        with self._lock:
            enriched = []
            for projection in self._projections.values():
                if projection.zone_id != zone_id or projection.session_id != session_id:
                    continue
                post = self._posts.get(projection.tweet_db_id)
                if post is None:
                    continue
                enriched.append(
                    EnrichedProjection(
                        **projection.model_dump(),
                        text=post.text,
                        author_name=post.author_name,
                        author_username=post.author_username,
                        post_created_at=post.created_at,
                        total_engagement=post.total_engagement,
                    )
                )
            enriched.sort(key=lambda p: p.post_created_at, reverse=True)
            return enriched

    def get_projections_for_posts(
        self,
        zone_id: str,
        session_id: str,
        post_ids: Sequence[str],
    ) -> List[Projection]:
        with self._lock:
            wanted = set(post_ids)
            return [
                p.model_copy()
                for p in self._projections.values()
                if p.zone_id == zone_id and p.session_id == session_id and p.tweet_db_id in wanted
            ]

    # Clusters

    def save_clusters(self, clusters: Sequence[OpinionCluster]) -> int:
        with self._lock:
            for cluster in clusters:
                key = (cluster.zone_id, cluster.session_id, cluster.cluster_id)
                existing = self._clusters.get(key)
                self._clusters[key] = cluster.model_copy(
                    update={"id": existing.id if existing else self._allocate_id()}
                )
            return len(clusters)

    def get_clusters(self, zone_id: str, session_id: str) -> List[OpinionCluster]:
        with self._lock:
            clusters = [
                c.model_copy()
                for c in self._clusters.values()
                if c.zone_id == zone_id and c.session_id == session_id
            ]
            clusters.sort(key=lambda c: c.tweet_count, reverse=True)
            return clusters
