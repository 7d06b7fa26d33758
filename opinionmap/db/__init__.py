"""Database management for the opinion map pipeline."""

from .connection import (
    build_conninfo,
    close_connection_pools,
    get_connection,
    get_connection_pool,
    store_cursor,
)
from .init import init_database, validate_connection
from .store import PostgresStore

__all__ = [
    "build_conninfo",
    "close_connection_pools",
    "get_connection",
    "get_connection_pool",
    "store_cursor",
    "init_database",
    "validate_connection",
    "PostgresStore",
]
