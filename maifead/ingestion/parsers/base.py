"""
Feed Parser Base
================

Shared normalization for every platform parser: upstream HTML is sanitized,
parser-generated markup is attached, media links are rewritten into embeds,
and plain text, excerpt, and thumbnail are derived from the result.
"""

import html
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

from ...database.models import NormalizedEntry, ParsedFeed, Platform, Source
from ...utils.logging import get_logger_for_component
from ...utils.validators import ContentValidator
from ..content_cleaner import ContentCleaner, get_content_cleaner
from ..embeds import EmbedRewriter, get_embed_rewriter
from ..fetcher import FetchedDocument


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp (``Z`` suffix allowed) into aware UTC."""
    if not value or not isinstance(value, str):
        return None
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def from_unix_seconds(value) -> Optional[datetime]:
    """Convert a unix timestamp in seconds into aware UTC."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def safe_url(url: Optional[str]) -> Optional[str]:
    """Return an unescaped absolute http(s) URL, or None."""
    if not url or not isinstance(url, str):
        return None
    url = html.unescape(url.strip())
    if url.startswith("//"):
        url = "https:" + url
    return url if urlparse(url).scheme in ("http", "https") else None


def attr(value: str) -> str:
    """Escape a value for use inside a double-quoted attribute."""
    return html.escape(value, quote=True)


def as_dict(value: Any) -> Dict[str, Any]:
    """The value if it is a JSON object, otherwise an empty one."""
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def as_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


# Raised by an upstream entry whose fields have the wrong JSON types.
MALFORMED_ENTRY_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


class FeedParser(ABC):
    """Turns one fetched document into a ParsedFeed."""

    platform: Platform

    def __init__(
        self,
        cleaner: Optional[ContentCleaner] = None,
        rewriter: Optional[EmbedRewriter] = None,
    ):
        self.cleaner = cleaner or get_content_cleaner()
        self.rewriter = rewriter or get_embed_rewriter()
        self.logger = get_logger_for_component("parser", platform=self.platform.value)

    @abstractmethod
    def parse(self, document: FetchedDocument, source: Optional[Source] = None) -> ParsedFeed:
        """Parse a document.

        Raises:
            ParseError: If the document is not valid in the expected format
        """

    def try_entry(
        self, normalize: Callable[..., Optional[NormalizedEntry]], *args
    ) -> Optional[NormalizedEntry]:
        """Normalize one upstream entry.

        An entry whose fields have unexpected types yields None, so it is
        dropped rather than failing the whole document.
        """
        try:
            return normalize(*args)
        except MALFORMED_ENTRY_ERRORS as e:
            self.logger.debug(f"Dropping malformed entry: {type(e).__name__}: {e}")
            return None

    def build_entry(
        self,
        *,
        remote_id: Optional[str],
        title: Optional[str],
        link: Optional[str],
        upstream_html: Optional[str] = None,
        before_html: str = "",
        after_html: str = "",
        author: Optional[str] = None,
        published_at: Optional[datetime] = None,
        image_url: Optional[str] = None,
        tags: Optional[List[str]] = None,
        base_url: Optional[str] = None,
    ) -> Optional[NormalizedEntry]:
        """Normalize one entry, or return None if it lacks a title or link.

        Args:
            remote_id: Upstream guid; falls back to the link when empty
            title: Entry title
            link: Canonical link to the original content
            upstream_html: Untrusted HTML from the document, sanitized here
            before_html: Generated markup placed before the upstream content
            after_html: Generated markup placed after the upstream content
            author: Author display name
            published_at: Publication date (UTC)
            image_url: Explicit thumbnail; the first <img> is used otherwise
            tags: Category/flair/hashtag labels
            base_url: Base for resolving relative URLs in upstream HTML
        """
        title = ContentValidator.clean_title(title)
        link = (link or "").strip()
        if not title or not link:
            self.logger.debug(
                f"Dropping entry without title or link: {remote_id or link or title!r}"
            )
            return None

        sanitized = self.cleaner.sanitize_html(upstream_html, base_url or link)
        content_html = self.rewriter.rewrite(before_html + sanitized + after_html)
        content_text = self.cleaner.extract_text(content_html)

        if not image_url:
            image_url = self.cleaner.first_image(content_html, base_url or link)

        return NormalizedEntry(
            remote_id=(remote_id or "").strip() or link,
            title=title,
            link=link,
            content_html=content_html or None,
            content_text=content_text or None,
            excerpt=ContentValidator.make_excerpt(content_text) or None,
            author=ContentValidator.sanitize_text(author) or None,
            published_at=published_at,
            image_url=image_url,
            tags=self._clean_tags(tags),
        )

    @staticmethod
    def _clean_tags(tags: Optional[List[str]]) -> List[str]:
        cleaned: List[str] = []
        for tag in tags or []:
            tag = ContentValidator.sanitize_text(tag)
            if tag and tag not in cleaned:
                cleaned.append(tag)
        return cleaned
