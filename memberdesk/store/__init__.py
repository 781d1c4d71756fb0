"""Room session store abstractions and implementations."""

from .base import TABLE_NAME, SessionStore
from .memory import InMemorySessionStore
from .sqlite import SqliteSessionStore


def build_session_store(db_path: str) -> SessionStore:
    """SQLite when a path is configured, otherwise in-memory."""
    if db_path:
        return SqliteSessionStore(db_path)
    return InMemorySessionStore()


__all__ = [
    "InMemorySessionStore",
    "SessionStore",
    "SqliteSessionStore",
    "TABLE_NAME",
    "build_session_store",
]
