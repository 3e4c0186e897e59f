"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for Maifead tests.

- Every test gets its own temporary SQLite file (WAL mode needs a real file)
- FakeFetcher serves canned documents so no test touches the network
"""

import pytest
import tempfile
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_TEST_DIR = Path(tempfile.mkdtemp(prefix="maifead_tests_"))
os.environ["MAIFEAD_DATABASE__PATH"] = str(_TEST_DIR / "maifead_test.db")
os.environ["MAIFEAD_LOGGING__FILE_PATH"] = str(_TEST_DIR / "maifead_test.log")
os.environ["MAIFEAD_LOGGING__CONSOLE_LOGGING"] = "false"
os.environ["MAIFEAD_DEBUG"] = "true"


# ============================================================================
# Fake remote fetcher
# ============================================================================


class FakeFetcher:
    """Stand-in for RemoteFetcher serving registered responses.

    Responses are either raw bodies (str/bytes) or exceptions to raise.
    Unregistered URLs raise NetworkError, like an unreachable host.
    """

    def __init__(self):
        self.responses = {}
        self.requests = []
        self.sessions_opened = 0

    def add(self, url, body, content_type="application/xml"):
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.responses[url] = (body, content_type)

    def add_json(self, url, payload):
        import json
        self.add(url, json.dumps(payload), content_type="application/json")

    def fail(self, url, error):
        self.responses[url] = error

    async def fetch(self, url, accept=None):
        from maifead.ingestion.fetcher import FetchedDocument
        from maifead.utils.exceptions import NetworkError

        self.requests.append(url)
        response = self.responses.get(url)
        if response is None:
            raise NetworkError(f"Network error for {url}: unreachable", feed_url=url)
        if isinstance(response, BaseException):
            raise response

        body, content_type = response
        return FetchedDocument(
            url=url,
            status=200,
            content=body,
            headers={"Content-Type": content_type},
            content_type=content_type,
        )

    async def fetch_text(self, url):
        document = await self.fetch(url)
        return document.text

    async def fetch_json(self, url):
        document = await self.fetch(url, accept="application/json")
        return document.json()

    @asynccontextmanager
    async def shared_session(self):
        self.sessions_opened += 1
        yield self


@pytest.fixture
def fake_fetcher():
    """Fetcher with no registered responses."""
    return FakeFetcher()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def temp_db():
    """Temporary database file with the schema created."""
    from maifead.database.schema import DatabaseSchema

    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    DatabaseSchema(db_path).create_tables()

    yield db_path

    # Cleanup, including WAL side files
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(db_path + suffix)
        except FileNotFoundError:
            pass


@pytest.fixture
def db_connection(temp_db):
    """Create a database connection manager for testing."""
    from maifead.database.connection import DatabaseConnection

    connection = DatabaseConnection(temp_db, pool_size=2)
    yield connection

    # Cleanup connections
    connection.close_all_connections()


@pytest.fixture
def source_repo(db_connection):
    from maifead.storage.source_repository import SourceRepository

    return SourceRepository(db_connection)


@pytest.fixture
def item_repo(db_connection):
    from maifead.storage.item_repository import ItemRepository

    return ItemRepository(db_connection)


@pytest.fixture
def parsers():
    """Parser registry with embeds enabled, independent of settings."""
    from maifead.ingestion.content_cleaner import ContentCleaner
    from maifead.ingestion.embeds import EmbedRewriter
    from maifead.ingestion.parsers import build_parsers

    return build_parsers(ContentCleaner(), EmbedRewriter(enabled=True))


# ============================================================================
# Sample data
# ============================================================================


@pytest.fixture
def make_source():
    """Factory for unsaved sources with sensible per-platform defaults."""
    from maifead.database.models import Platform, RedditSourceType, Source

    def _make(platform="rss", owner_id="user-1", **overrides):
        platform = Platform(platform)
        data = {
            "owner_id": owner_id,
            "platform": platform,
            "display_name": "Example Feed",
            "feed_url": "https://example.com/feed.xml",
        }
        if platform == Platform.YOUTUBE:
            data.update(
                display_name="Example Channel",
                feed_url="https://www.youtube.com/feeds/videos.xml?channel_id=UCexample1234567890abcd",
                channel_id="UCexample1234567890abcd",
            )
        elif platform == Platform.REDDIT:
            data.update(
                display_name="r/python",
                feed_url="https://www.reddit.com/r/python/.json?raw_json=1",
                reddit_source_type=RedditSourceType.SUBREDDIT,
                subreddit="python",
            )
        elif platform == Platform.BLUESKY:
            data.update(
                display_name="@alice.bsky.social",
                feed_url=(
                    "https://public.api.bsky.app/xrpc/app.bsky.feed.getAuthorFeed"
                    "?actor=alice.bsky.social&limit=50"
                ),
                bluesky_handle="alice.bsky.social",
            )
        data.update(overrides)
        return Source(**data)

    return _make


@pytest.fixture
def make_entry():
    """Factory for normalized entries."""
    from maifead.database.models import NormalizedEntry

    def _make(remote_id="entry-1", **overrides):
        data = {
            "remote_id": remote_id,
            "title": f"Title of {remote_id}",
            "link": f"https://example.com/{remote_id}",
            "content_text": f"Body of {remote_id}",
            "excerpt": f"Body of {remote_id}",
        }
        data.update(overrides)
        return NormalizedEntry(**data)

    return _make


def build_rss(items, title="Example Feed", link="https://example.com/"):
    """RSS 2.0 document for (guid, title, description) triples."""
    rendered = "".join(
        f"""
        <item>
            <title>{item_title}</title>
            <link>https://example.com/posts/{guid}</link>
            <guid isPermaLink="false">{guid}</guid>
            <description>{description}</description>
            <pubDate>Thu, 05 Sep 2024 12:00:00 GMT</pubDate>
        </item>"""
        for guid, item_title, description in items
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
    <channel>
        <title>{title}</title>
        <link>{link}</link>
        <description>Test feed</description>
        {rendered}
    </channel>
</rss>"""


@pytest.fixture
def rss_builder():
    return build_rss
