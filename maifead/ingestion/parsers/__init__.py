"""
Format parsers for fetched feed documents, one per platform.
"""

from typing import Dict, Optional

from ...database.models import Platform
from ..content_cleaner import ContentCleaner
from ..embeds import EmbedRewriter
from .base import FeedParser
from .bluesky import BlueskyParser
from .reddit import RedditParser
from .rss import RssParser


def build_parsers(
    cleaner: Optional[ContentCleaner] = None,
    rewriter: Optional[EmbedRewriter] = None,
) -> Dict[Platform, FeedParser]:
    """Parser registry keyed by platform; YouTube feeds are Atom."""
    rss = RssParser(cleaner, rewriter)
    return {
        Platform.RSS: rss,
        Platform.YOUTUBE: rss,
        Platform.REDDIT: RedditParser(cleaner, rewriter, rss_parser=rss),
        Platform.BLUESKY: BlueskyParser(cleaner, rewriter),
    }


_parsers: Optional[Dict[Platform, FeedParser]] = None


def get_parser(platform: Platform) -> FeedParser:
    """Shared parser for a platform."""
    global _parsers
    if _parsers is None:
        _parsers = build_parsers()
    return _parsers[Platform(platform)]


__all__ = [
    "FeedParser",
    "RssParser",
    "RedditParser",
    "BlueskyParser",
    "build_parsers",
    "get_parser",
]
