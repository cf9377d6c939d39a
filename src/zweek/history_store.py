"""SQLite persistence for chat history.

Stores every exchange so earlier sessions can be listed and reloaded with
slash commands. Each launch starts a new session; a session row is written
only once its first message is stored, so idle launches leave no trace.

Connections are thread-local: the worker thread mirrors finished exchanges
while the UI thread runs /history and /sessions.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator
from uuid import uuid4

from .errors import PersistenceError
from .settings import settings

logger = logging.getLogger(__name__)

# Schema version for migrations
# v1: Initial schema
SCHEMA_VERSION = 1

# Oldest messages beyond this are pruned on insert
MAX_CHAT_MESSAGES = 10_000


@dataclass(frozen=True)
class StoredMessage:
    """A persisted chat message."""

    id: int
    session_id: str
    role: str
    content: str
    created_at: str


@dataclass(frozen=True)
class SessionInfo:
    """Summary of a saved session."""

    session_id: str
    created_at: str
    message_count: int


def _now_iso() -> str:
    """Get current UTC timestamp as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def _new_session_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"session_{stamp}_{uuid4().hex[:6]}"


class HistoryStore:
    """Chat history database.

    Usage:
        store = HistoryStore()
        store.append_turn("user", "hello")
        for msg in store.read_recent(10):
            print(msg.role, msg.content)
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = Path(db_path) if db_path is not None else settings.history_db_path
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._lock = threading.Lock()
        self._session_id = _new_session_id()
        with self._transaction() as conn:
            _init_schema(conn)
        logger.debug("History store opened at %s", self._db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def current_session_id(self) -> str:
        with self._lock:
            return self._session_id

    # -------------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------------

    def _get_connection(self) -> sqlite3.Connection:
        """Get a thread-local database connection."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            try:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            except (OSError, sqlite3.Error) as e:
                raise PersistenceError(
                    f"Cannot open history database: {e}",
                    operation="connect",
                    path=str(self._db_path),
                ) from e
            conn.row_factory = sqlite3.Row
            # WAL mode for better concurrent access
            conn.execute("PRAGMA journal_mode = WAL")
            self._local.conn = conn
            with self._lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions.

        sqlite3 errors are re-raised as PersistenceError.
        """
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(
                f"History database error: {e}", path=str(self._db_path)
            ) from e
        except Exception:
            conn.rollback()
            raise

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.debug("Error closing history connection: %s", e)
        self._local = threading.local()

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def start_new_session(self) -> str:
        """Switch to a fresh session and return its id."""
        session_id = _new_session_id()
        with self._lock:
            self._session_id = session_id
        logger.info("Started history session %s", session_id)
        return session_id

    def list_sessions(self) -> list[SessionInfo]:
        """Saved sessions, newest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT s.session_id, s.created_at, COUNT(m.id) AS message_count
                FROM sessions s
                LEFT JOIN chat_messages m ON m.session_id = s.session_id
                GROUP BY s.session_id
                ORDER BY s.created_at DESC, s.rowid DESC
                """
            ).fetchall()
        return [
            SessionInfo(
                session_id=row["session_id"],
                created_at=row["created_at"],
                message_count=row["message_count"],
            )
            for row in rows
        ]

    def load_session(self, session_id: str) -> list[StoredMessage]:
        """Make a saved session current and return its messages in order.

        Raises:
            PersistenceError: If no such session exists.
        """
        with self._transaction() as conn:
            exists = conn.execute(
                "SELECT 1 FROM sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
            if exists is None:
                raise PersistenceError(
                    f"Session not found: {session_id}", operation="load_session"
                )
            rows = conn.execute(
                "SELECT * FROM chat_messages WHERE session_id = ? ORDER BY id",
                (session_id,),
            ).fetchall()
        with self._lock:
            self._session_id = session_id
        logger.info("Loaded history session %s (%d messages)", session_id, len(rows))
        return [_row_to_message(row) for row in rows]

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    def append_turn(self, role: str, content: str) -> int:
        """Store one message in the current session. Returns its row id."""
        session_id = self.current_session_id
        now = _now_iso()
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO sessions (session_id, created_at) VALUES (?, ?)",
                (session_id, now),
            )
            cursor = conn.execute(
                """
                INSERT INTO chat_messages (session_id, role, content, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (session_id, role, content, now),
            )
            conn.execute(
                """
                DELETE FROM chat_messages WHERE id <= (
                    SELECT id FROM chat_messages ORDER BY id DESC LIMIT 1 OFFSET ?
                )
                """,
                (MAX_CHAT_MESSAGES,),
            )
            return int(cursor.lastrowid)

    def read_recent(self, limit: int = 10) -> list[StoredMessage]:
        """Last `limit` messages of the current session, oldest first."""
        if limit <= 0:
            return []
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM (
                    SELECT * FROM chat_messages WHERE session_id = ?
                    ORDER BY id DESC LIMIT ?
                ) ORDER BY id
                """,
                (self.current_session_id, limit),
            ).fetchall()
        return [_row_to_message(row) for row in rows]

    def clear_session(self) -> int:
        """Delete the current session's messages. Returns how many were removed."""
        session_id = self.current_session_id
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM chat_messages WHERE session_id = ?", (session_id,)
            )
            conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
        logger.info("Cleared %d messages from session %s", cursor.rowcount, session_id)
        return cursor.rowcount


def _row_to_message(row: sqlite3.Row) -> StoredMessage:
    return StoredMessage(
        id=row["id"],
        session_id=row["session_id"],
        role=row["role"],
        content=row["content"],
        created_at=row["created_at"],
    )


def _init_schema(conn: sqlite3.Connection) -> None:
    """Initialize the database schema."""
    conn.executescript("""
        -- Schema version tracking
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY
        );

        CREATE TABLE IF NOT EXISTS sessions (
            session_id TEXT PRIMARY KEY,
            created_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS chat_messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id TEXT NOT NULL,
            role TEXT NOT NULL,  -- "user" or "assistant"
            content TEXT NOT NULL,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_chat_messages_session
            ON chat_messages(session_id, id);
    """)
    conn.execute(
        "INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
    )
