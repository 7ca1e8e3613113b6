"""SQLite database helpers for the folder/node schema."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from pathlib import Path
import sqlite3
import threading
from typing import Iterable, Iterator

from .config import DEFAULT_DB_PATH
from .errors import DatabaseError

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"

PRAGMA_STATEMENTS: tuple[str, ...] = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA busy_timeout = 5000",
)

DDL_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS folders (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        color TEXT NOT NULL DEFAULT '#e94560',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS nodes (
        id TEXT PRIMARY KEY,
        folder_id TEXT NOT NULL REFERENCES folders(id) ON DELETE CASCADE,
        type TEXT NOT NULL,
        content TEXT NOT NULL DEFAULT '',
        summary TEXT NOT NULL DEFAULT '',
        timestamp TEXT NOT NULL,
        parent_id TEXT,
        children TEXT NOT NULL DEFAULT '[]',
        expanded INTEGER NOT NULL DEFAULT 0,
        selected INTEGER NOT NULL DEFAULT 0,
        session_id TEXT NOT NULL DEFAULT '',
        has_loaded INTEGER NOT NULL DEFAULT 0,
        locked INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_nodes_folder ON nodes(folder_id)",
    "CREATE INDEX IF NOT EXISTS idx_nodes_parent ON nodes(parent_id)",
    "CREATE INDEX IF NOT EXISTS idx_nodes_session ON nodes(session_id)",
    """
    CREATE TABLE IF NOT EXISTS tags (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        node_id TEXT NOT NULL REFERENCES nodes(id) ON DELETE CASCADE,
        tag TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tags_node ON tags(node_id)",
    "CREATE INDEX IF NOT EXISTS idx_tags_tag ON tags(tag)",
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS nodes_fts USING fts5(
        node_id UNINDEXED,
        content,
        summary,
        type,
        tokenize='unicode61'
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS nodes_fts_insert AFTER INSERT ON nodes BEGIN
        INSERT INTO nodes_fts (node_id, content, summary, type)
        VALUES (new.id, new.content, new.summary, new.type);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS nodes_fts_delete AFTER DELETE ON nodes BEGIN
        DELETE FROM nodes_fts WHERE node_id = old.id;
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS nodes_fts_update AFTER UPDATE ON nodes BEGIN
        DELETE FROM nodes_fts WHERE node_id = old.id;
        INSERT INTO nodes_fts (node_id, content, summary, type)
        VALUES (new.id, new.content, new.summary, new.type);
    END
    """,
)


class DatabaseService:
    """Own the single SQLite connection every read and write goes through."""

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def in_memory(self) -> bool:
        return str(self.db_path) == MEMORY_DB

    def _ensure_directory(self) -> None:
        if not self.in_memory:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        """Return the shared connection, opening it on first use."""
        with self._lock:
            if self._conn is not None:
                return self._conn
            try:
                self._ensure_directory()
                conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
                conn.row_factory = sqlite3.Row
                for pragma in PRAGMA_STATEMENTS:
                    conn.execute(pragma)
                if not self.in_memory:
                    conn.execute("PRAGMA journal_mode = WAL")
            except (OSError, sqlite3.Error) as exc:
                raise DatabaseError(f"Cannot open database at {self.db_path}", exc) from exc
            self._conn = conn
            return conn

    @contextmanager
    def session(self) -> Iterator[sqlite3.Connection]:
        """Hold the connection lock for the duration of the block."""
        with self._lock:
            yield self.connect()

    def initialize(self, statements: Iterable[str] | None = None) -> Path:
        """Create all schema artifacts required by the explorer."""
        with self.session() as conn:
            try:
                with conn:  # Transactional apply of DDL
                    for statement in statements or DDL_STATEMENTS:
                        conn.execute(statement)
            except sqlite3.Error as exc:
                raise DatabaseError("Failed to initialize database schema", exc) from exc
        logger.info("Database initialized", extra={"db_path": str(self.db_path)})
        return self.db_path

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


__all__ = ["DatabaseService", "DDL_STATEMENTS", "MEMORY_DB"]
