"""Content store interface and implementations."""

from .base import ContentStore
from .memory import InMemoryStore

__all__ = ["ContentStore", "InMemoryStore"]
