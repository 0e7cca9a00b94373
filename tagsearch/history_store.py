"""
Search history using SQLite.

Stores recent searches for replay. Each entry is either simple-mode
criteria (tag ids, combinator, name substring) or a raw query string.
Appending a search that is already in the history bumps its
last_used_at instead of inserting a duplicate.

History is write-only from the engine's point of view: nothing here
affects evaluation.
"""

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from .types import SearchCriteria, SearchHistoryEntry, utc_now

logger = logging.getLogger(__name__)

KIND_CRITERIA = "criteria"
KIND_QUERY = "query"


def _signature(criteria: Optional[SearchCriteria], query: Optional[str]) -> tuple[str, str]:
    """(kind, payload) pair; equal searches give equal pairs."""
    if (criteria is None) == (query is None):
        raise ValueError("Exactly one of criteria or query must be given")
    if criteria is not None:
        return KIND_CRITERIA, json.dumps(criteria.to_dict(), sort_keys=True)
    text = query.strip()
    if not text:
        raise ValueError("Cannot record an empty query")
    return KIND_QUERY, text


def _row_to_entry(row: sqlite3.Row) -> SearchHistoryEntry:
    if row["kind"] == KIND_CRITERIA:
        data = json.loads(row["payload"])
        criteria = SearchCriteria(
            tag_ids=tuple(data.get("tag_ids", ())),
            mode=data.get("mode", "AND"),
            name_substring=data.get("name_substring"),
        )
        return SearchHistoryEntry(id=row["id"], last_used_at=row["last_used_at"], criteria=criteria)
    return SearchHistoryEntry(id=row["id"], last_used_at=row["last_used_at"], query=row["payload"])


class SearchHistoryStore:
    """
    SQLite-backed search history.

    Entries are ordered by use: the most recently appended (or re-used)
    search comes first.
    """

    def __init__(self, history_path: Path):
        """
        Args:
            history_path: Path to SQLite database file
        """
        self._history_path = history_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._history_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._history_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrent access across processes
        self._conn.execute("PRAGMA journal_mode=WAL")
        # Wait up to 5 seconds for locks instead of failing immediately
        self._conn.execute("PRAGMA busy_timeout=5000")

        # use_seq orders entries used within the same second
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS search_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT NOT NULL,
                payload TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                last_used_at INTEGER NOT NULL,
                use_seq INTEGER NOT NULL,
                UNIQUE(kind, payload)
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_history_use_seq
            ON search_history(use_seq)
        """)
        self._conn.commit()

    def append(
        self,
        *,
        criteria: Optional[SearchCriteria] = None,
        query: Optional[str] = None,
    ) -> SearchHistoryEntry:
        """
        Record a search.

        Args:
            criteria: Simple-mode search, or
            query: Structured query text (exactly one of the two)

        Returns:
            The new or bumped entry
        """
        kind, payload = _signature(criteria, query)
        now = utc_now()
        with self._lock:
            next_seq = self._conn.execute(
                "SELECT COALESCE(MAX(use_seq), 0) + 1 FROM search_history"
            ).fetchone()[0]
            self._conn.execute("""
                INSERT INTO search_history (kind, payload, created_at, last_used_at, use_seq)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(kind, payload) DO UPDATE SET
                    last_used_at = excluded.last_used_at,
                    use_seq = excluded.use_seq
            """, (kind, payload, now, now, next_seq))
            self._conn.commit()
            row = self._conn.execute("""
                SELECT id, kind, payload, last_used_at FROM search_history
                WHERE kind = ? AND payload = ?
            """, (kind, payload)).fetchone()
        logger.debug("Recorded %s search in history (id=%d)", kind, row["id"])
        return _row_to_entry(row)

    def list_recent(self, limit: int = 10) -> list[SearchHistoryEntry]:
        """Most recently used entries first."""
        if limit <= 0:
            return []
        with self._lock:
            cursor = self._conn.execute("""
                SELECT id, kind, payload, last_used_at FROM search_history
                ORDER BY use_seq DESC
                LIMIT ?
            """, (limit,))
            rows = cursor.fetchall()
        return [_row_to_entry(row) for row in rows]

    def get(self, entry_id: int) -> Optional[SearchHistoryEntry]:
        with self._lock:
            row = self._conn.execute("""
                SELECT id, kind, payload, last_used_at FROM search_history
                WHERE id = ?
            """, (entry_id,)).fetchone()
        return _row_to_entry(row) if row is not None else None

    def delete(self, entry_id: int) -> bool:
        """Remove one entry. Returns True if it existed."""
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM search_history WHERE id = ?", (entry_id,)
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        with self._lock:
            cursor = self._conn.execute("DELETE FROM search_history")
            self._conn.commit()
        return cursor.rowcount

    def prune(self, keep: int) -> int:
        """Drop all but the `keep` most recently used entries."""
        with self._lock:
            cursor = self._conn.execute("""
                DELETE FROM search_history
                WHERE id NOT IN (
                    SELECT id FROM search_history ORDER BY use_seq DESC LIMIT ?
                )
            """, (max(keep, 0),))
            self._conn.commit()
        return cursor.rowcount

    def count(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM search_history").fetchone()[0]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
