"""SQLiteStore: primary storage backend using stdlib sqlite3."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

from ..core.store import ThreadStore
from ..types import Message, Role, StorageError, ThreadState
from .helpers import dt_to_str, str_to_dt

logger = logging.getLogger(__name__)

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS threads (
    id TEXT PRIMARY KEY,
    summary TEXT NOT NULL DEFAULT '',
    last_updated TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    thread_id TEXT NOT NULL,
    seq INTEGER NOT NULL,
    id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (thread_id, seq),
    FOREIGN KEY (thread_id) REFERENCES threads(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_threads_last_updated ON threads(last_updated);
"""


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        role=Role(row["role"]),
        content=row["content"],
        created_at=str_to_dt(row["created_at"]),
    )


class SQLiteStore(ThreadStore):
    """SQLite-based storage. Each save rewrites a thread inside one transaction."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        # One shared connection; sqlite3 connections are not safe for
        # concurrent use from several threads without external locking.
        self._lock = threading.RLock()
        self._ensure_schema()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
        return self._conn

    def _ensure_schema(self) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def get(self, thread_id: str) -> ThreadState | None:
        try:
            with self._lock:
                conn = self._get_conn()
                row = conn.execute(
                    "SELECT id, summary, last_updated FROM threads WHERE id = ?",
                    (thread_id,),
                ).fetchone()
                if row is None:
                    return None
                message_rows = conn.execute(
                    "SELECT id, role, content, created_at FROM messages "
                    "WHERE thread_id = ? ORDER BY seq",
                    (thread_id,),
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to load thread {thread_id}: {e}") from e

        return ThreadState(
            id=row["id"],
            summary=row["summary"],
            last_updated=str_to_dt(row["last_updated"]),
            messages=tuple(_row_to_message(r) for r in message_rows),
        )

    def save(self, state: ThreadState) -> None:
        try:
            with self._lock:
                conn = self._get_conn()
                # ``with conn`` commits on success and rolls back on error,
                # so a failed save leaves the previous rows in place.
                with conn:
                    conn.execute(
                        "INSERT INTO threads (id, summary, last_updated) VALUES (?, ?, ?) "
                        "ON CONFLICT(id) DO UPDATE SET "
                        "summary = excluded.summary, last_updated = excluded.last_updated",
                        (state.id, state.summary, dt_to_str(state.last_updated)),
                    )
                    conn.execute("DELETE FROM messages WHERE thread_id = ?", (state.id,))
                    conn.executemany(
                        "INSERT INTO messages (thread_id, seq, id, role, content, created_at) "
                        "VALUES (?, ?, ?, ?, ?, ?)",
                        [
                            (state.id, seq, m.id, m.role.value, m.content, dt_to_str(m.created_at))
                            for seq, m in enumerate(state.messages)
                        ],
                    )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save thread {state.id}: {e}") from e
        logger.debug("Saved thread %s (%d messages)", state.id, len(state.messages))

    def delete(self, thread_id: str) -> bool:
        try:
            with self._lock:
                conn = self._get_conn()
                with conn:
                    cur = conn.execute("DELETE FROM threads WHERE id = ?", (thread_id,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete thread {thread_id}: {e}") from e
        return cur.rowcount > 0

    def list_threads(self) -> list[str]:
        try:
            with self._lock:
                rows = self._get_conn().execute(
                    "SELECT id FROM threads ORDER BY last_updated DESC"
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list threads: {e}") from e
        return [r["id"] for r in rows]

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
