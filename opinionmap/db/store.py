"""Postgres-backed content store."""

from psycopg import Connection

from ..store import ContentStore
from .posts import PostQueries
from .results import ClusterQueries, ProjectionQueries
from .sessions import SessionQueries


class PostgresStore(SessionQueries, PostQueries, ProjectionQueries, ClusterQueries, ContentStore):
    """Content store over a single psycopg connection using ``dict_row`` rows."""

    def __init__(self, conn: Connection) -> None:
        self.conn = conn
