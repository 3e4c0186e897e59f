"""
Maifead Data Models
===================

Pydantic data models for sources and items plus the transient structures
that flow between the resolver, fetcher, parsers, and refresh orchestrator.
Persistent models correspond to the database schema; timestamps are stored
as epoch milliseconds and exposed as timezone-aware datetimes.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field
from pydantic import BaseModel, Field, field_validator, model_validator
import json

from ..utils.validators import KeywordValidator


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime truncated to milliseconds."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def to_epoch_ms(value: Optional[datetime]) -> Optional[int]:
    """Convert a datetime to epoch milliseconds (naive values are UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_epoch_ms(value: Optional[int]) -> Optional[datetime]:
    """Convert epoch milliseconds back to an aware UTC datetime."""
    if value is None:
        return None
    return _EPOCH + timedelta(milliseconds=value)


class Platform(str, Enum):
    """Source platforms."""
    RSS = "rss"
    YOUTUBE = "youtube"
    REDDIT = "reddit"
    BLUESKY = "bluesky"


class RedditSourceType(str, Enum):
    """Kind of Reddit listing a source follows."""
    SUBREDDIT = "subreddit"
    USER = "user"


class ShortsFilter(str, Enum):
    """YouTube Shorts handling for a channel source."""
    ALL = "all"
    EXCLUDE = "exclude"
    ONLY = "only"


_PLATFORM_FIELDS = {
    Platform.RSS: set(),
    Platform.YOUTUBE: {"channel_id"},
    Platform.REDDIT: {"subreddit", "reddit_username", "reddit_source_type", "reddit_min_score"},
    Platform.BLUESKY: {"bluesky_handle", "bluesky_did", "bluesky_feed_uri"},
}
_ALL_PLATFORM_FIELDS = set().union(*_PLATFORM_FIELDS.values())


class Source(BaseModel):
    """A subscribed external feed belonging to one owner."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    owner_id: str = Field(..., min_length=1, description="Owning user")
    display_name: str = Field(..., min_length=1, max_length=255, description="Name shown in the reader")
    feed_url: str = Field(..., min_length=1, description="Canonical machine-fetchable endpoint")
    platform: Platform = Field(..., description="Source platform")

    channel_id: Optional[str] = Field(default=None, description="YouTube channel ID (UC...)")
    subreddit: Optional[str] = Field(default=None, description="Subreddit name without r/")
    reddit_username: Optional[str] = Field(default=None, description="Reddit user name without u/")
    reddit_source_type: Optional[RedditSourceType] = Field(default=None)
    reddit_min_score: Optional[int] = Field(default=None, description="Drop posts scoring below this")
    bluesky_handle: Optional[str] = Field(default=None, description="Bluesky handle without @")
    bluesky_did: Optional[str] = Field(default=None, description="Bluesky DID")
    bluesky_feed_uri: Optional[str] = Field(default=None, description="at:// URI of a custom feed")
    youtube_shorts_filter: ShortsFilter = Field(default=ShortsFilter.ALL)

    icon_url: Optional[str] = Field(default=None, description="Resolved icon, may be filled later")
    category: Optional[str] = Field(default=None, max_length=100)
    fetch_interval_seconds: int = Field(default=3600, ge=60, description="Scheduled refresh interval")
    retention_days: int = Field(default=30, ge=0, description="Days to keep items, 0 keeps forever")
    suppress_from_main_feed: bool = Field(default=False)
    is_enabled: bool = Field(default=True, description="Disabled sources are skipped and hidden")
    whitelist_keywords: List[str] = Field(default_factory=list)
    blacklist_keywords: List[str] = Field(default_factory=list)

    last_fetched_at: Optional[datetime] = Field(default=None, description="Last successful refresh")
    last_error: Optional[str] = Field(default=None, description="Last refresh failure, cleared on success")
    created_at: Optional[datetime] = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = Field(default_factory=utc_now)

    @field_validator('whitelist_keywords', 'blacklist_keywords', mode='before')
    @classmethod
    def validate_keywords(cls, v):
        """Normalize keyword sets (trimmed, lowercase, de-duplicated)."""
        if isinstance(v, str):
            v = json.loads(v) if v.startswith("[") else v
        return KeywordValidator.normalize_keywords(v)

    @field_validator('display_name')
    @classmethod
    def validate_display_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Display name cannot be empty")
        return v

    @model_validator(mode='after')
    def validate_platform_fields(self):
        """Only the fields belonging to the source's platform may be set."""
        allowed = _PLATFORM_FIELDS[self.platform]
        foreign = [
            name for name in sorted(_ALL_PLATFORM_FIELDS - allowed)
            if getattr(self, name) is not None
        ]
        if foreign:
            raise ValueError(
                f"{self.platform.value} source cannot set {', '.join(foreign)}"
            )

        if self.platform == Platform.YOUTUBE and not self.channel_id:
            raise ValueError("youtube source requires channel_id")

        if self.platform == Platform.REDDIT:
            if self.reddit_source_type == RedditSourceType.SUBREDDIT:
                if not self.subreddit or self.reddit_username:
                    raise ValueError("subreddit source requires subreddit only")
            elif self.reddit_source_type == RedditSourceType.USER:
                if not self.reddit_username or self.subreddit:
                    raise ValueError("user source requires reddit_username only")
            else:
                raise ValueError("reddit source requires reddit_source_type")

        if self.platform == Platform.BLUESKY and not (
            self.bluesky_handle or self.bluesky_did or self.bluesky_feed_uri
        ):
            raise ValueError("bluesky source requires a handle, DID, or feed URI")

        return self

    def keywords_json(self, which: str) -> str:
        """Get a keyword list as JSON string for database storage."""
        return json.dumps(getattr(self, f"{which}_keywords"))

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """Check whether the refresh interval has elapsed."""
        if not self.is_enabled:
            return False
        if self.last_fetched_at is None:
            return True
        now = now or utc_now()
        elapsed = (now - self.last_fetched_at).total_seconds()
        return elapsed >= self.fetch_interval_seconds

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Source":
        """Create Source from database row with JSON and timestamp parsing."""
        data = dict(row)
        for key in ("last_fetched_at", "created_at", "updated_at"):
            data[key] = from_epoch_ms(data.get(key))
        for key in ("suppress_from_main_feed", "is_enabled"):
            if key in data and data[key] is not None:
                data[key] = bool(data[key])
        return cls(**data)

    def __str__(self) -> str:
        return f"Source({self.platform.value}:{self.display_name})"


class Item(BaseModel):
    """One ingested entry, unique per (source_id, remote_id)."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    source_id: int = Field(..., description="Owning source")
    remote_id: str = Field(..., min_length=1, description="Upstream guid, or the link when absent")
    title: str = Field(..., min_length=1, description="Item title")
    canonical_link: str = Field(..., min_length=1, description="Link to the original content")
    content_html: Optional[str] = Field(default=None, description="Sanitized, embed-rewritten HTML")
    content_text: Optional[str] = Field(default=None, description="Plain text of the content")
    excerpt: Optional[str] = Field(default=None, description="Short plain-text preview")
    author: Optional[str] = Field(default=None)
    published_at: Optional[datetime] = Field(default=None, description="Upstream publication date")
    image_url: Optional[str] = Field(default=None)
    tags: List[str] = Field(default_factory=list)
    read: bool = Field(default=False)
    saved: bool = Field(default=False)
    first_seen_at: datetime = Field(default_factory=utc_now)

    @field_validator('tags', mode='before')
    @classmethod
    def validate_tags(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return json.loads(v)
        return v

    @classmethod
    def from_db_row(cls, row: Dict[str, Any]) -> "Item":
        """Create Item from database row with JSON and timestamp parsing."""
        data = dict(row)
        data["published_at"] = from_epoch_ms(data.get("published_at"))
        data["first_seen_at"] = from_epoch_ms(data.get("first_seen_at"))
        data["read"] = bool(data.get("read"))
        data["saved"] = bool(data.get("saved"))
        return cls(**data)

    @property
    def effective_date(self) -> datetime:
        """Publication date, falling back to when the item was first seen."""
        return self.published_at or self.first_seen_at

    def __str__(self) -> str:
        return f"Item({self.title[:50]})"


class NormalizedEntry(BaseModel):
    """Platform-neutral parser output for one remote entry."""
    remote_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    link: str = Field(..., min_length=1)
    content_html: Optional[str] = None
    content_text: Optional[str] = None
    excerpt: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    image_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    def to_item(self, source_id: int, first_seen_at: Optional[datetime] = None) -> Item:
        """Build a fresh, unread, unsaved Item for the given source."""
        return Item(
            source_id=source_id,
            remote_id=self.remote_id,
            title=self.title,
            canonical_link=self.link,
            content_html=self.content_html,
            content_text=self.content_text,
            excerpt=self.excerpt,
            author=self.author,
            published_at=self.published_at,
            image_url=self.image_url,
            tags=list(self.tags),
            first_seen_at=first_seen_at or utc_now(),
        )


@dataclass
class ParsedFeed:
    """Entries of one fetched document plus its feed-level metadata."""
    entries: List[NormalizedEntry] = field(default_factory=list)
    title: Optional[str] = None
    site_url: Optional[str] = None
    image_url: Optional[str] = None
    dropped_entries: int = 0  # malformed, missing title or link
    filtered_entries: int = 0  # suppressed by the source's ingestion filters


@dataclass
class ResolvedSource:
    """Outcome of resolving user input into a fetchable endpoint."""
    platform: Platform
    feed_url: str
    display_name: str
    identifiers: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IngestionResult:
    """Outcome of refreshing a single source."""
    source_id: int
    new_item_count: int = 0
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class RefreshSummary:
    """Aggregated outcome of a batch refresh."""
    sources_refreshed: int = 0
    total_new_items: int = 0
    per_source_errors: Dict[int, str] = field(default_factory=dict)
    results: List[IngestionResult] = field(default_factory=list)
    timed_out: bool = False

    @property
    def sources_failed(self) -> int:
        return len(self.per_source_errors)

    def add(self, result: IngestionResult) -> None:
        """Fold one source result into the summary."""
        self.results.append(result)
        if result.success:
            self.sources_refreshed += 1
            self.total_new_items += result.new_item_count
        else:
            self.per_source_errors[result.source_id] = result.error


# Type aliases for common data structures
SourceDict = Dict[str, Any]
ItemDict = Dict[str, Any]
