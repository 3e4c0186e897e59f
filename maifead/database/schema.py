"""
Maifead Database Schema
=======================

SQLite schema for the ingestion engine:
- sources: subscribed feeds per owner, with platform identifiers and filters
- items: ingested entries, unique per (source_id, remote_id)

Timestamps are INTEGER epoch milliseconds. Items reference their source with
ON DELETE CASCADE.
"""

import sqlite3
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


# Columns added after the first release, applied to older databases
_SOURCE_MIGRATIONS = [
    ("is_enabled", "INTEGER NOT NULL DEFAULT 1"),
    ("last_error", "TEXT"),
    ("reddit_min_score", "INTEGER"),
    ("youtube_shorts_filter", "TEXT NOT NULL DEFAULT 'all'"),
]


class DatabaseSchema:
    """Database schema manager for the Maifead SQLite database."""

    EXPECTED_TABLES = {"sources", "items"}

    def __init__(self, db_path: str = "data/maifead.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables, run migrations, and build indexes."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA foreign_keys = ON")

            self._create_sources_table(conn)
            self._create_items_table(conn)
            self._run_migrations(conn)
            self._create_indexes(conn)

            conn.commit()
            logger.info("Database schema created successfully")

    def _create_sources_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sources (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                owner_id TEXT NOT NULL,
                display_name TEXT NOT NULL,
                feed_url TEXT NOT NULL,
                platform TEXT NOT NULL CHECK (platform IN ('rss', 'youtube', 'reddit', 'bluesky')),
                channel_id TEXT,
                subreddit TEXT,
                reddit_username TEXT,
                reddit_source_type TEXT CHECK (reddit_source_type IN ('subreddit', 'user')),
                reddit_min_score INTEGER,
                bluesky_handle TEXT,
                bluesky_did TEXT,
                bluesky_feed_uri TEXT,
                youtube_shorts_filter TEXT NOT NULL DEFAULT 'all'
                    CHECK (youtube_shorts_filter IN ('all', 'exclude', 'only')),
                icon_url TEXT,
                category TEXT,
                fetch_interval_seconds INTEGER NOT NULL DEFAULT 3600,
                retention_days INTEGER NOT NULL DEFAULT 30 CHECK (retention_days >= 0),
                suppress_from_main_feed INTEGER NOT NULL DEFAULT 0,
                is_enabled INTEGER NOT NULL DEFAULT 1,
                whitelist_keywords TEXT NOT NULL DEFAULT '[]',  -- JSON array
                blacklist_keywords TEXT NOT NULL DEFAULT '[]',  -- JSON array
                last_fetched_at INTEGER,
                last_error TEXT,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                UNIQUE(owner_id, feed_url)
            )
        """
        )

    def _create_items_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source_id INTEGER NOT NULL,
                remote_id TEXT NOT NULL,
                title TEXT NOT NULL,
                canonical_link TEXT NOT NULL,
                content_html TEXT,
                content_text TEXT,
                excerpt TEXT,
                author TEXT,
                published_at INTEGER,
                image_url TEXT,
                tags TEXT NOT NULL DEFAULT '[]',  -- JSON array
                read INTEGER NOT NULL DEFAULT 0,
                saved INTEGER NOT NULL DEFAULT 0,
                first_seen_at INTEGER NOT NULL,
                FOREIGN KEY (source_id) REFERENCES sources(id) ON DELETE CASCADE,
                UNIQUE(source_id, remote_id)
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        indexes = [
            "CREATE INDEX IF NOT EXISTS idx_sources_owner ON sources(owner_id)",
            "CREATE INDEX IF NOT EXISTS idx_sources_owner_enabled ON sources(owner_id, is_enabled)",
            "CREATE INDEX IF NOT EXISTS idx_sources_icon_missing ON sources(icon_url) WHERE icon_url IS NULL",
            "CREATE INDEX IF NOT EXISTS idx_items_source_published ON items(source_id, published_at)",
            "CREATE INDEX IF NOT EXISTS idx_items_first_seen ON items(first_seen_at)",
            "CREATE INDEX IF NOT EXISTS idx_items_saved ON items(saved)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def _run_migrations(self, conn: sqlite3.Connection) -> None:
        """Add columns missing from databases created by older versions."""
        cursor = conn.execute("PRAGMA table_info(sources)")
        source_columns = {column[1] for column in cursor.fetchall()}

        for column, definition in _SOURCE_MIGRATIONS:
            if column not in source_columns:
                logger.info(f"Adding {column} column to sources table")
                conn.execute(f"ALTER TABLE sources ADD COLUMN {column} {definition}")

    def drop_tables(self) -> None:
        """Drop all tables (for testing/reset purposes)."""
        with sqlite3.connect(self.db_path) as conn:
            for table in ("items", "sources"):
                conn.execute(f"DROP TABLE IF EXISTS {table}")
            conn.commit()
            logger.info("All database tables dropped")

    def get_connection(self) -> sqlite3.Connection:
        """Get database connection with foreign keys enabled."""
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.row_factory = sqlite3.Row
        return conn

    def verify_schema(self) -> bool:
        """Verify database schema is correctly created."""
        try:
            conn = self.get_connection()
            try:
                cursor = conn.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                """
                )
                tables = {row[0] for row in cursor.fetchall()}

                if not self.EXPECTED_TABLES.issubset(tables):
                    logger.error(
                        f"Missing tables. Expected: {self.EXPECTED_TABLES}, Found: {tables}"
                    )
                    return False

                conn.execute("PRAGMA foreign_key_check")
            finally:
                conn.close()

            logger.info("Database schema verification passed")
            return True

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False


def create_tables(db_path: str = "data/maifead.db") -> None:
    """Convenience function to create database tables."""
    DatabaseSchema(db_path).create_tables()
