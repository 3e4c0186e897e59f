"""
Source Repository
=================

Repository pattern implementation for source data management. Provides the
store operations the resolver, icon resolver, and refresh orchestrator rely
on: create, lookup, listing per owner, icon updates, and fetch bookkeeping.
"""

import json
import sqlite3
from datetime import datetime
from typing import List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import Source, to_epoch_ms, utc_now
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode


_SOURCE_COLUMNS = (
    "owner_id", "display_name", "feed_url", "platform",
    "channel_id", "subreddit", "reddit_username", "reddit_source_type",
    "reddit_min_score", "bluesky_handle", "bluesky_did", "bluesky_feed_uri",
    "youtube_shorts_filter", "icon_url", "category", "fetch_interval_seconds",
    "retention_days", "suppress_from_main_feed", "is_enabled",
    "whitelist_keywords", "blacklist_keywords",
    "last_fetched_at", "last_error", "created_at", "updated_at",
)

# Fields a caller may change after creation; feed_url and platform identifiers
# are fixed once the source has been resolved.
_UPDATABLE_FIELDS = {
    "display_name", "icon_url", "category", "fetch_interval_seconds",
    "retention_days", "suppress_from_main_feed", "is_enabled",
    "whitelist_keywords", "blacklist_keywords", "reddit_min_score",
    "youtube_shorts_filter",
}


def _to_db_value(field: str, value):
    if field in ("whitelist_keywords", "blacklist_keywords"):
        return json.dumps(list(value or []))
    if isinstance(value, datetime):
        return to_epoch_ms(value)
    if isinstance(value, bool):
        return int(value)
    if hasattr(value, "value"):
        return value.value
    return value


class SourceRepository:
    """Repository for managing sources in the database."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize source repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("source_repository")

    def create_source(self, source: Source) -> Source:
        """Insert a new source.

        Args:
            source: Source to create (its id is ignored)

        Returns:
            The stored source with its assigned id

        Raises:
            DatabaseError: If the owner already follows this feed URL or the
                insert fails
        """
        now = utc_now()
        source = source.model_copy(update={"created_at": source.created_at or now, "updated_at": now})
        values = [_to_db_value(column, getattr(source, column)) for column in _SOURCE_COLUMNS]
        placeholders = ", ".join("?" for _ in _SOURCE_COLUMNS)

        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    f"INSERT INTO sources ({', '.join(_SOURCE_COLUMNS)}) VALUES ({placeholders})",
                    values,
                )
                source_id = cursor.lastrowid
                conn.commit()

        except sqlite3.IntegrityError as e:
            raise DatabaseError(
                f"Source already exists for owner {source.owner_id}: {source.feed_url}",
                error_code=ErrorCode.DATABASE_CONSTRAINT,
                user_message="You already follow this source",
                recoverable=False,
            ) from e
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to create source: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

        self.logger.info(
            f"Created source {source_id} for owner {source.owner_id}: {source.feed_url}"
        )
        return source.model_copy(update={"id": source_id})

    def get_source(self, source_id: int) -> Optional[Source]:
        """Get source by ID, or None if it does not exist."""
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM sources WHERE id = ?", (source_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to get source {source_id}: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

        return Source.from_db_row(row) if row else None

    def get_source_by_feed_url(self, owner_id: str, feed_url: str) -> Optional[Source]:
        """Get an owner's source by canonical feed URL."""
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM sources WHERE owner_id = ? AND feed_url = ?",
                    (owner_id, feed_url),
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to get source by URL {feed_url}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return Source.from_db_row(row) if row else None

    def list_sources(
        self, owner_id: Optional[str] = None, enabled_only: bool = False
    ) -> List[Source]:
        """List sources of one owner, or of every owner when owner_id is None.

        Args:
            owner_id: Owner to filter by
            enabled_only: If True, skip disabled sources

        Returns:
            Sources ordered by creation
        """
        query = "SELECT * FROM sources"
        conditions = []
        params: list = []

        if owner_id is not None:
            conditions.append("owner_id = ?")
            params.append(owner_id)
        if enabled_only:
            conditions.append("is_enabled = 1")

        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY created_at, id"

        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to list sources: {e}", error_code=ErrorCode.DATABASE_ERROR
            ) from e

        return [Source.from_db_row(row) for row in rows]

    def list_sources_missing_icon(self, owner_id: Optional[str] = None) -> List[Source]:
        """List sources whose icon has not been resolved yet."""
        query = "SELECT * FROM sources WHERE icon_url IS NULL"
        params: tuple = ()
        if owner_id is not None:
            query += " AND owner_id = ?"
            params = (owner_id,)

        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(query + " ORDER BY id", params).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to list sources missing icons: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return [Source.from_db_row(row) for row in rows]

    def update_source(self, source_id: int, **kwargs) -> bool:
        """Update mutable source fields.

        Args:
            source_id: Source ID
            **kwargs: Fields to update

        Returns:
            True if a row was updated, False if no such source

        Raises:
            DatabaseError: If an unknown field is given or the update fails
        """
        if not kwargs:
            return True

        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            raise DatabaseError(
                f"Cannot update source fields: {', '.join(sorted(unknown))}",
                error_code=ErrorCode.DATABASE_CONSTRAINT,
                recoverable=False,
            )

        fields = [f"{field} = ?" for field in kwargs]
        values = [_to_db_value(field, value) for field, value in kwargs.items()]
        fields.append("updated_at = ?")
        values.append(to_epoch_ms(utc_now()))
        values.append(source_id)

        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    f"UPDATE sources SET {', '.join(fields)} WHERE id = ?", values
                )
                conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to update source {source_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        if cursor.rowcount > 0:
            self.logger.info(f"Updated source {source_id}: {', '.join(kwargs)}")
            return True

        self.logger.warning(f"No source found with ID {source_id}")
        return False

    def update_icon(self, source_id: int, icon_url: str) -> bool:
        """Store a resolved icon URL."""
        return self.update_source(source_id, icon_url=icon_url)

    def record_fetch(
        self,
        source_id: int,
        error: Optional[str] = None,
        fetched_at: Optional[datetime] = None,
    ) -> None:
        """Record the outcome of a refresh.

        A success stamps ``last_fetched_at`` and clears ``last_error``; a
        failure only records the error so the source stays due.
        """
        try:
            with self.db.get_connection() as conn:
                if error is None:
                    conn.execute(
                        """
                        UPDATE sources
                        SET last_fetched_at = ?, last_error = NULL
                        WHERE id = ?
                    """,
                        (to_epoch_ms(fetched_at or utc_now()), source_id),
                    )
                else:
                    conn.execute(
                        "UPDATE sources SET last_error = ? WHERE id = ?",
                        (error, source_id),
                    )
                conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to record fetch for source {source_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

    def delete_source(self, source_id: int) -> bool:
        """Delete a source; its items are removed by the cascade."""
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute("DELETE FROM sources WHERE id = ?", (source_id,))
                conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to delete source {source_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        if cursor.rowcount > 0:
            self.logger.info(f"Deleted source {source_id}")
            return True

        self.logger.warning(f"No source found with ID {source_id}")
        return False
