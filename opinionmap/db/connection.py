"""Database connection management."""

import logging
import os
import threading
from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterator

import psycopg
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

logger = logging.getLogger(__name__)

_pools: Dict[str, ConnectionPool] = {}
_pools_lock = threading.Lock()


def build_conninfo(config: Dict[str, Any]) -> str:
    """Connection string for a ``postgres`` config section.

    ``password_env`` is only consulted when no literal password is set.
    """
    password = config.get("password")
    if not password and config.get("password_env"):
        password = os.environ.get(config["password_env"])

    params = {
        "host": config.get("host", "localhost"),
        "port": config.get("port", 5432),
        "dbname": config.get("database", "opinionmap"),
        "user": config.get("user", "opinionmap_user"),
    }
    if password:
        params["password"] = password
    return make_conninfo(**params)


def get_connection_pool(config: Dict[str, Any]) -> ConnectionPool:
    """Get the pool for these connection settings, opening it on first use."""
    conninfo = build_conninfo(config)
    with _pools_lock:
        pool = _pools.get(conninfo)
        if pool is None:
            pool = ConnectionPool(
                conninfo,
                min_size=1,
                max_size=10,
                kwargs={"row_factory": dict_row},
                open=True,
            )
            _pools[conninfo] = pool
        return pool


def close_connection_pools() -> None:
    """Close every pool opened by this process."""
    with _pools_lock:
        pools = list(_pools.values())
        _pools.clear()
    for pool in pools:
        pool.close()


@contextmanager
def get_connection(config: Dict[str, Any]) -> Generator[psycopg.Connection, None, None]:
    """Get a database connection from the pool."""
    pool = get_connection_pool(config)
    with pool.connection() as conn:
        yield conn


@contextmanager
def store_cursor(conn: psycopg.Connection, commit: bool = False) -> Iterator[psycopg.Cursor]:
    """
    Cursor for one store operation.

    A failing operation rolls the transaction back before the error
    propagates, so the connection stays usable for the next statement
    (marking the session failed, for one).

    Args:
        conn: Connection owned by the store
        commit: Commit once the block finishes without error
    """
    try:
        with conn.cursor() as cur:
            yield cur
    except Exception:
        try:
            conn.rollback()
        except psycopg.Error as rollback_error:
            logger.error("Rollback failed: %s", rollback_error)
        raise
    if commit:
        conn.commit()
