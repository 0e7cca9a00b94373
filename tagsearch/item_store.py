"""
Item and tag store using SQLite.

Stores tag groups, tags, tagged items and the item-tag edges between
them. This is the repository the search engine reads from; it implements
ItemRepositoryProtocol.

The store is the source of truth for:
- Item identity (path) and file attributes (size, mtime, directory flag)
- Tag groups and the tag values they own
- Which tags each item carries
- Soft deletion (items hidden from search but kept with their tags)

The write methods exist so applications (and tests) can populate a store;
the search engine itself only reads.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, Optional

from .types import (
    Item,
    Tag,
    TagGroup,
    normalize_group_name,
    normalize_tag_value,
    utc_now,
    validate_color,
)

logger = logging.getLogger(__name__)

_ITEM_COLUMNS = "id, path, is_directory, size, modified_time, is_deleted, deleted_at"


def _row_to_item(row: sqlite3.Row) -> Item:
    return Item(
        id=row["id"],
        path=row["path"],
        is_directory=bool(row["is_directory"]),
        size=row["size"],
        modified_time=row["modified_time"],
        is_deleted=bool(row["is_deleted"]),
        deleted_at=row["deleted_at"],
    )


class ItemStore:
    """
    SQLite-backed store for items and tags.

    One connection shared across threads; a lock serializes access so
    concurrent searches each read a consistent result per call.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = store_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        # Wait up to 5 seconds for locks instead of failing immediately
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS tag_groups (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE COLLATE NOCASE,
                color TEXT,
                display_order INTEGER NOT NULL DEFAULT 0,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            )
        """)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS tags (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_id INTEGER NOT NULL,
                value TEXT NOT NULL COLLATE NOCASE,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                FOREIGN KEY (group_id) REFERENCES tag_groups(id) ON DELETE CASCADE,
                UNIQUE(group_id, value)
            )
        """)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                path TEXT NOT NULL UNIQUE,
                is_directory INTEGER NOT NULL,
                size INTEGER,
                modified_time INTEGER,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                is_deleted INTEGER NOT NULL DEFAULT 0,
                deleted_at INTEGER
            )
        """)

        # Item-Tags junction table (many-to-many)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS item_tags (
                item_id INTEGER NOT NULL,
                tag_id INTEGER NOT NULL,
                created_at INTEGER NOT NULL,
                PRIMARY KEY (item_id, tag_id),
                FOREIGN KEY (item_id) REFERENCES items(id) ON DELETE CASCADE,
                FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
            )
        """)

        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_items_is_deleted
            ON items(is_deleted)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_tags_group_id
            ON tags(group_id)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_item_tags_tag_id
            ON item_tags(tag_id)
        """)

        self._conn.commit()

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add_tag_group(
        self,
        name: str,
        color: Optional[str] = None,
        display_order: Optional[int] = None,
    ) -> TagGroup:
        """
        Create a tag group.

        Args:
            name: Group name (trimmed, unique case-insensitively)
            color: Optional hex display color
            display_order: Position among groups; appended last if None

        Raises:
            ValueError: invalid or duplicate name, invalid color
        """
        name = normalize_group_name(name)
        color = validate_color(color)
        now = utc_now()
        with self._lock:
            if display_order is None:
                row = self._conn.execute(
                    "SELECT COALESCE(MAX(display_order) + 1, 0) FROM tag_groups"
                ).fetchone()
                display_order = row[0]
            try:
                cursor = self._conn.execute("""
                    INSERT INTO tag_groups (name, color, display_order, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (name, color, display_order, now, now))
            except sqlite3.IntegrityError:
                raise ValueError(f"Tag group already exists: {name!r}") from None
            self._conn.commit()
        return TagGroup(id=cursor.lastrowid, name=name, color=color, display_order=display_order)

    def add_tag(self, group_id: int, value: str) -> Tag:
        """
        Create a tag in a group.

        Raises:
            ValueError: empty value, duplicate within the group, or unknown group
        """
        value = normalize_tag_value(value)
        now = utc_now()
        with self._lock:
            try:
                cursor = self._conn.execute("""
                    INSERT INTO tags (group_id, value, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                """, (group_id, value, now, now))
            except sqlite3.IntegrityError as e:
                raise ValueError(f"Cannot add tag {value!r} to group {group_id}: {e}") from None
            self._conn.commit()
        return Tag(id=cursor.lastrowid, group_id=group_id, value=value)

    def upsert_item(
        self,
        path: str,
        *,
        is_directory: bool = False,
        size: Optional[int] = None,
        modified_time: Optional[int] = None,
    ) -> Item:
        """
        Insert or update an item by path.

        Directories never store a size. Updating an item does not change
        its soft-delete state.

        Returns:
            The stored Item
        """
        if not path:
            raise ValueError("Item path cannot be empty")
        if is_directory:
            size = None
        now = utc_now()
        with self._lock:
            self._conn.execute("""
                INSERT INTO items (path, is_directory, size, modified_time, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    is_directory = excluded.is_directory,
                    size = excluded.size,
                    modified_time = excluded.modified_time,
                    updated_at = excluded.updated_at
            """, (path, int(is_directory), size, modified_time, now, now))
            self._conn.commit()
            row = self._conn.execute(
                f"SELECT {_ITEM_COLUMNS} FROM items WHERE path = ?", (path,)
            ).fetchone()
        return _row_to_item(row)

    def tag_item(self, item_id: int, tag_id: int) -> bool:
        """
        Attach a tag to an item.

        Returns:
            True if the edge was added, False if it already existed
        """
        with self._lock:
            try:
                cursor = self._conn.execute("""
                    INSERT OR IGNORE INTO item_tags (item_id, tag_id, created_at)
                    VALUES (?, ?, ?)
                """, (item_id, tag_id, utc_now()))
            except sqlite3.IntegrityError as e:
                raise ValueError(f"Cannot tag item {item_id} with tag {tag_id}: {e}") from None
            self._conn.commit()
        return cursor.rowcount > 0

    def untag_item(self, item_id: int, tag_id: int) -> bool:
        """Detach a tag from an item. Returns True if an edge was removed."""
        with self._lock:
            cursor = self._conn.execute("""
                DELETE FROM item_tags WHERE item_id = ? AND tag_id = ?
            """, (item_id, tag_id))
            self._conn.commit()
        return cursor.rowcount > 0

    def soft_delete_item(self, item_id: int) -> bool:
        """
        Hide an item from search, keeping its row and tags.

        Returns:
            True if a live item was marked deleted
        """
        with self._lock:
            cursor = self._conn.execute("""
                UPDATE items SET is_deleted = 1, deleted_at = ?
                WHERE id = ? AND is_deleted = 0
            """, (utc_now(), item_id))
            self._conn.commit()
        return cursor.rowcount > 0

    def restore_item(self, item_id: int) -> bool:
        """Undo a soft delete. Returns True if the item was deleted before."""
        with self._lock:
            cursor = self._conn.execute("""
                UPDATE items SET is_deleted = 0, deleted_at = NULL
                WHERE id = ? AND is_deleted = 1
            """, (item_id,))
            self._conn.commit()
        return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def list_tag_groups(self) -> list[TagGroup]:
        """All tag groups in display order."""
        with self._lock:
            cursor = self._conn.execute("""
                SELECT id, name, color, display_order FROM tag_groups
                ORDER BY display_order, id
            """)
            rows = cursor.fetchall()
        return [
            TagGroup(
                id=row["id"],
                name=row["name"],
                color=row["color"],
                display_order=row["display_order"],
            )
            for row in rows
        ]

    def list_tags(self) -> list[Tag]:
        """All tags, grouped by group display order."""
        with self._lock:
            cursor = self._conn.execute("""
                SELECT t.id, t.group_id, t.value FROM tags t
                JOIN tag_groups g ON g.id = t.group_id
                ORDER BY g.display_order, g.id, t.value COLLATE NOCASE, t.id
            """)
            rows = cursor.fetchall()
        return [Tag(id=row["id"], group_id=row["group_id"], value=row["value"]) for row in rows]

    def tag_values_by_id(self) -> dict[int, str]:
        """Tag id -> value lookup, as the filter builder wants it."""
        return {tag.id: tag.value for tag in self.list_tags()}

    def get_item(self, item_id: int) -> Optional[Item]:
        """Get an item by id, including soft-deleted ones."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_ITEM_COLUMNS} FROM items WHERE id = ?", (item_id,)
            ).fetchone()
        return _row_to_item(row) if row is not None else None

    def resolve_item_tag_values(self, item_id: int) -> set[str]:
        """Set of tag values an item carries, across all groups."""
        return self.resolve_tag_values_many([item_id]).get(item_id, set())

    def resolve_tag_values_many(self, item_ids: Iterable[int]) -> dict[int, set[str]]:
        """
        Tag values for many items at once.

        Args:
            item_ids: Item identifiers

        Returns:
            Dict mapping item id -> set of tag values (untagged ids omitted)
        """
        ids = list(item_ids)
        if not ids:
            return {}
        with self._lock:
            return self._tag_values_for(ids)

    def list_candidate_items(self) -> list[Item]:
        """All items that are not soft-deleted."""
        with self._lock:
            rows = self._candidate_rows()
        return [_row_to_item(row) for row in rows]

    def read_snapshot(self, with_tags: bool = True) -> tuple[list[Item], dict[int, set[str]]]:
        """
        Candidate items and their tag values from one consistent read.

        Both queries run inside a single read transaction while holding the
        store lock, so no write (from this process or another) lands
        between them.

        Args:
            with_tags: Also resolve tag values for the candidates

        Returns:
            (candidate items, item id -> set of tag values)
        """
        with self._lock:
            self._conn.execute("BEGIN")
            try:
                rows = self._candidate_rows()
                tag_map = self._tag_values_for([row["id"] for row in rows]) if with_tags else {}
            finally:
                self._conn.execute("COMMIT")
        return [_row_to_item(row) for row in rows], tag_map

    def _candidate_rows(self) -> list[sqlite3.Row]:
        # Caller holds self._lock
        return self._conn.execute(f"""
            SELECT {_ITEM_COLUMNS} FROM items
            WHERE is_deleted = 0
            ORDER BY id
        """).fetchall()

    def _tag_values_for(self, ids: list[int]) -> dict[int, set[str]]:
        # Caller holds self._lock
        results: dict[int, set[str]] = {}
        # Stay under SQLite's bound-parameter limit
        chunk_size = 500
        for start in range(0, len(ids), chunk_size):
            chunk = ids[start:start + chunk_size]
            placeholders = ",".join("?" * len(chunk))
            cursor = self._conn.execute(f"""
                SELECT it.item_id, t.value
                FROM item_tags it
                JOIN tags t ON t.id = it.tag_id
                WHERE it.item_id IN ({placeholders})
            """, chunk)
            for row in cursor:
                results.setdefault(row["item_id"], set()).add(row["value"])
        return results

    def count_items(self, include_deleted: bool = False) -> int:
        """Count items, optionally including soft-deleted ones."""
        sql = "SELECT COUNT(*) FROM items"
        if not include_deleted:
            sql += " WHERE is_deleted = 0"
        with self._lock:
            return self._conn.execute(sql).fetchone()[0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

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
