"""
Item Repository
===============

Repository pattern implementation for ingested items. Inserts are
insert-if-absent against the (source_id, remote_id) unique constraint, so
re-ingesting an entry never touches the stored row or its read/saved flags.
"""

import json
import sqlite3
from datetime import datetime
from typing import Iterable, List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import Item, to_epoch_ms
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


_INSERT_IF_ABSENT = """
    INSERT INTO items (
        source_id, remote_id, title, canonical_link, content_html,
        content_text, excerpt, author, published_at, image_url, tags,
        read, saved, first_seen_at
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(source_id, remote_id) DO NOTHING
"""


def _item_params(item: Item) -> tuple:
    return (
        item.source_id,
        item.remote_id,
        item.title,
        item.canonical_link,
        item.content_html,
        item.content_text,
        item.excerpt,
        item.author,
        to_epoch_ms(item.published_at),
        item.image_url,
        json.dumps(item.tags),
        int(item.read),
        int(item.saved),
        to_epoch_ms(item.first_seen_at),
    )


class ItemRepository:
    """Repository for item storage and the read/saved write path."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize item repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("item_repository")

    def insert_item_if_absent(self, item: Item) -> bool:
        """Insert an item unless (source_id, remote_id) already exists.

        Returns:
            True if a new row was written, False if the item already existed

        Raises:
            DatabaseError: If the insert fails for any other reason
        """
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(_INSERT_IF_ABSENT, _item_params(item))
                conn.commit()
                return cursor.rowcount == 1
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to insert item {item.remote_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

    def insert_items_if_absent(self, items: Iterable[Item]) -> int:
        """Insert several items in one transaction.

        Returns:
            Number of rows actually written
        """
        inserted = 0
        try:
            with self.db.transaction() as conn:
                for item in items:
                    cursor = conn.execute(_INSERT_IF_ABSENT, _item_params(item))
                    inserted += cursor.rowcount
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to insert items: {e}",
                error_code=ErrorCode.DATABASE_TRANSACTION,
            ) from e

        return inserted

    def get_item(self, item_id: int) -> Optional[Item]:
        """Get item by ID."""
        try:
            with self.db.get_connection() as conn:
                row = conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to get item {item_id}: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

        return Item.from_db_row(row) if row else None

    def get_item_by_remote_id(self, source_id: int, remote_id: str) -> Optional[Item]:
        """Get the item a source stored for a remote id."""
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM items WHERE source_id = ? AND remote_id = ?",
                    (source_id, remote_id),
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to get item {remote_id} of source {source_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return Item.from_db_row(row) if row else None

    def list_items(
        self,
        source_ids: Optional[List[int]] = None,
        limit: int = 100,
        offset: int = 0,
        unread_only: bool = False,
        saved_only: bool = False,
    ) -> List[Item]:
        """List items newest first.

        Args:
            source_ids: Restrict to these sources (None means all sources)
            limit: Maximum number of items
            offset: Number of items to skip
            unread_only: Only unread items
            saved_only: Only saved items

        Returns:
            Items ordered by publication date, falling back to first-seen
        """
        if source_ids is not None and not source_ids:
            return []

        conditions = []
        params: list = []
        if source_ids is not None:
            conditions.append(f"source_id IN ({', '.join('?' for _ in source_ids)})")
            params.extend(source_ids)
        if unread_only:
            conditions.append("read = 0")
        if saved_only:
            conditions.append("saved = 1")

        query = "SELECT * FROM items"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY COALESCE(published_at, first_seen_at) DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to list items: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

        return [Item.from_db_row(row) for row in rows]

    def count_items(self, source_id: Optional[int] = None) -> int:
        """Count stored items, optionally for one source."""
        query = "SELECT COUNT(*) FROM items"
        params: tuple = ()
        if source_id is not None:
            query += " WHERE source_id = ?"
            params = (source_id,)

        try:
            with self.db.get_connection() as conn:
                result = conn.execute(query, params).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to count items: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

        return result[0] if result else 0

    def mark_read(self, item_id: int, read: bool = True) -> bool:
        """Set the read flag of an item."""
        return self._set_flag(item_id, "read", read)

    def mark_saved(self, item_id: int, saved: bool = True) -> bool:
        """Set the saved flag of an item."""
        return self._set_flag(item_id, "saved", saved)

    def _set_flag(self, item_id: int, column: str, value: bool) -> bool:
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    f"UPDATE items SET {column} = ? WHERE id = ?", (int(value), item_id)
                )
                conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to update {column} on item {item_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return cursor.rowcount > 0

    def delete_items_older_than(
        self, source_id: int, cutoff: datetime, exclude_saved: bool = True
    ) -> int:
        """Delete a source's items dated before the cutoff.

        Items without a publication date are aged by when they were first
        seen.

        Args:
            source_id: Source whose items are swept
            cutoff: Items dated strictly before this are deleted
            exclude_saved: Keep saved items regardless of age

        Returns:
            Number of items deleted
        """
        query = """
            DELETE FROM items
            WHERE source_id = ?
              AND COALESCE(published_at, first_seen_at) < ?
        """
        if exclude_saved:
            query += " AND saved = 0"

        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(query, (source_id, to_epoch_ms(cutoff)))
                conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to delete old items of source {source_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        deleted = cursor.rowcount
        if deleted:
            self.logger.debug(f"Deleted {deleted} items of source {source_id}")
        return deleted
