"""DB connection and schema for the audit store (local SQLite)."""

from __future__ import annotations

import functools
import logging
import sqlite3
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from auditmark.config import AuditConfig

logger = logging.getLogger("auditmark.db")

_F = TypeVar("_F", bound="Callable[..., Any]")

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS setting (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        value TEXT
    );

    CREATE TABLE IF NOT EXISTS scope (
        id INTEGER PRIMARY KEY,       -- insertion order is rule precedence
        path TEXT NOT NULL,
        include INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS file (
        id INTEGER PRIMARY KEY,
        path TEXT NOT NULL UNIQUE,    -- relative to the project root
        line_count INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS tag (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS thread_node (
        id INTEGER PRIMARY KEY,
        file INTEGER REFERENCES file(id),
        line INTEGER DEFAULT 0,
        tag INTEGER REFERENCES tag(id),
        name TEXT NOT NULL,
        "desc" TEXT DEFAULT '',
        parent INTEGER REFERENCES thread_node(id)
    );

    CREATE TABLE IF NOT EXISTS review (
        id INTEGER PRIMARY KEY,
        file INTEGER NOT NULL REFERENCES file(id),
        line_start INTEGER NOT NULL,
        line_end INTEGER NOT NULL,
        created TEXT
    );

    CREATE TABLE IF NOT EXISTS note (
        id INTEGER PRIMARY KEY,
        file INTEGER NOT NULL REFERENCES file(id),
        line_start INTEGER NOT NULL,
        line_end INTEGER NOT NULL,
        col_start INTEGER DEFAULT 0,
        col_end INTEGER DEFAULT 0,
        note TEXT NOT NULL,
        tag INTEGER REFERENCES tag(id),
        note_type TEXT NOT NULL,
        thread_node INTEGER NOT NULL REFERENCES thread_node(id),
        created TEXT
    );

    CREATE INDEX IF NOT EXISTS review_file ON review(file);
    CREATE INDEX IF NOT EXISTS note_file ON note(file);
    CREATE INDEX IF NOT EXISTS thread_node_parent ON thread_node(parent);
"""


def connect(db_path: Path) -> sqlite3.Connection:
    """Open a local SQLite connection with foreign key enforcement."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(_SCHEMA)
    conn.commit()


def get_conn(cfg: AuditConfig, *, create: bool = False) -> sqlite3.Connection | None:
    """Return a connection to the project's audit database.

    Returns None when no database exists yet and create is False; callers
    then run in degraded mode (writes skipped, reads empty).
    """
    if not cfg.has_db and not create:
        logger.info("no audit database at %s", cfg.db_path)
        return None
    if create:
        cfg.ensure_dirs()
    conn = connect(cfg.db_path)
    ensure_schema(conn)
    return conn


def requires_db(default: Any = None) -> Callable[[_F], _F]:
    """Skip the wrapped method when ``self.conn`` is None.

    ``default`` is returned instead; pass a type (list, set, dict) to get a
    fresh empty container per call.
    """
    def decorator(fn: _F) -> _F:
        @functools.wraps(fn)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if self.conn is None:
                logger.debug("%s skipped: no audit database", fn.__qualname__)
                return default() if isinstance(default, type) else default
            return fn(self, *args, **kwargs)
        return wrapper  # type: ignore[return-value]
    return decorator
