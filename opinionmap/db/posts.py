"""Post queries for the Postgres store."""

from datetime import datetime
from typing import List, Sequence

from psycopg import Connection

from ..models import Post, PostRef
from .connection import store_cursor

# Pure reposts carry no opinion of their own
ELIGIBLE_POSTS_SQL = """
    zone_id = %(zone_id)s
    AND created_at >= %(start)s
    AND created_at < %(end)s
    AND (NOT %(exclude_reposts)s OR text NOT LIKE 'RT @%%')
"""


class PostQueries:
    """Mixin implementing post reads and embedding writes over ``self.conn``."""

    conn: Connection

    def count_posts(
        self,
        zone_id: str,
        start: datetime,
        end: datetime,
        exclude_reposts: bool = True,
    ) -> int:
        with store_cursor(self.conn) as cur:
            cur.execute(
                f"SELECT COUNT(*) AS count FROM posts WHERE {ELIGIBLE_POSTS_SQL}",
                {"zone_id": zone_id, "start": start, "end": end, "exclude_reposts": exclude_reposts},
            )
            return cur.fetchone()["count"]

    def list_post_refs(
        self,
        zone_id: str,
        start: datetime,
        end: datetime,
        exclude_reposts: bool = True,
    ) -> List[PostRef]:
        with store_cursor(self.conn) as cur:
            cur.execute(
                f"""
                SELECT id, external_id FROM posts
                WHERE {ELIGIBLE_POSTS_SQL}
                ORDER BY created_at ASC, id ASC
                """,
                {"zone_id": zone_id, "start": start, "end": end, "exclude_reposts": exclude_reposts},
            )
            return [PostRef(**row) for row in cur.fetchall()]

    def get_posts(self, post_ids: Sequence[str]) -> List[Post]:
        if not post_ids:
            return []
        with store_cursor(self.conn) as cur:
            cur.execute(
                "SELECT * FROM posts WHERE id = ANY(%s)",
                (list(post_ids),)
            )
            return [Post(**row) for row in cur.fetchall()]

    def save_embedding(
        self,
        post_id: str,
        embedding: List[float],
        model: str,
        created_at: datetime,
    ) -> None:
        with store_cursor(self.conn, commit=True) as cur:
            cur.execute(
                """
                UPDATE posts
                SET embedding = %s, embedding_model = %s, embedding_created_at = %s
                WHERE id = %s
                """,
                (list(embedding), model, created_at, post_id)
            )
            if cur.rowcount == 0:
                raise KeyError(f"Post not found: {post_id}")
