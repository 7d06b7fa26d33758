"""Session queries for the Postgres store."""

import json
from typing import Any, Dict, List, Optional

from psycopg import Connection, sql
from psycopg.errors import UniqueViolation

from ..errors import ActiveSessionExistsError
from ..models import ACTIVE_STATUSES, OpinionSession, SessionConfig, SessionStatus
from .connection import store_cursor

ACTIVE_INDEX_NAME = "idx_one_active_session_per_zone"

UPDATABLE_COLUMNS = frozenset({
    "status",
    "progress",
    "phase_message",
    "config",
    "total_tweets",
    "vectorized_tweets",
    "total_clusters",
    "outlier_count",
    "error_message",
    "error_stack",
    "started_at",
    "completed_at",
    "execution_time_ms",
})


def _active_values() -> List[str]:
    return sorted(s.value for s in ACTIVE_STATUSES)


def _to_column_value(column: str, value: Any) -> Any:
    if isinstance(value, SessionStatus):
        return value.value
    if column == "config":
        if isinstance(value, SessionConfig):
            value = value.model_dump(mode="json")
        return json.dumps(value)
    return value


class SessionQueries:
    """Mixin implementing session persistence over ``self.conn``."""

    conn: Connection

    def insert_session(self, session: OpinionSession) -> OpinionSession:
        try:
            with store_cursor(self.conn, commit=True) as cur:
                cur.execute(
                    """
                    INSERT INTO opinion_sessions (
                        session_id, zone_id, status, progress, phase_message,
                        config, total_tweets, created_by
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        session.session_id,
                        session.zone_id,
                        session.status.value,
                        session.progress,
                        session.phase_message,
                        _to_column_value("config", session.config),
                        session.total_tweets,
                        session.created_by,
                    ),
                )
                row = cur.fetchone()
        except UniqueViolation as e:
            if e.diag.constraint_name == ACTIVE_INDEX_NAME:
                raise ActiveSessionExistsError(session.zone_id) from e
            raise

        return OpinionSession(**row)

    def get_session(self, session_id: str) -> Optional[OpinionSession]:
        with store_cursor(self.conn) as cur:
            cur.execute(
                "SELECT * FROM opinion_sessions WHERE session_id = %s",
                (session_id,)
            )
            row = cur.fetchone()
        return OpinionSession(**row) if row else None

    def get_active_session(self, zone_id: str) -> Optional[OpinionSession]:
        with store_cursor(self.conn) as cur:
            cur.execute(
                """
                SELECT * FROM opinion_sessions
                WHERE zone_id = %s AND status = ANY(%s)
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (zone_id, _active_values())
            )
            row = cur.fetchone()
        return OpinionSession(**row) if row else None

    def get_latest_session(
        self,
        zone_id: str,
        status: Optional[SessionStatus] = None,
    ) -> Optional[OpinionSession]:
        with store_cursor(self.conn) as cur:
            if status is None:
                cur.execute(
                    """
                    SELECT * FROM opinion_sessions
                    WHERE zone_id = %s
                    ORDER BY created_at DESC, id DESC
                    LIMIT 1
                    """,
                    (zone_id,)
                )
            else:
                cur.execute(
                    """
                    SELECT * FROM opinion_sessions
                    WHERE zone_id = %s AND status = %s
                    ORDER BY created_at DESC, id DESC
                    LIMIT 1
                    """,
                    (zone_id, status.value)
                )
            row = cur.fetchone()
        return OpinionSession(**row) if row else None

    def list_sessions(self, zone_id: str, limit: int = 10) -> List[OpinionSession]:
        with store_cursor(self.conn) as cur:
            cur.execute(
                """
                SELECT * FROM opinion_sessions
                WHERE zone_id = %s
                ORDER BY created_at DESC, id DESC
                LIMIT %s
                """,
                (zone_id, limit)
            )
            return [OpinionSession(**row) for row in cur.fetchall()]

    def update_session(
        self,
        session_id: str,
        changes: Dict[str, Any],
        only_if_active: bool = True,
    ) -> bool:
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update session columns: {sorted(unknown)}")
        if not changes:
            return False

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in changes
        )
        params = [_to_column_value(column, value) for column, value in changes.items()]

        query = sql.SQL("UPDATE opinion_sessions SET {} WHERE session_id = %s").format(assignments)
        params.append(session_id)
        if only_if_active:
            query = query + sql.SQL(" AND status = ANY(%s)")
            params.append(_active_values())

        with store_cursor(self.conn, commit=True) as cur:
            cur.execute(query, params)
            updated = cur.rowcount > 0
        return updated
