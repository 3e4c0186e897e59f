"""
RSS/Atom Parser
===============

feedparser-based parsing for RSS 2.0, RSS 1.0, and Atom documents,
including YouTube channel feeds. YouTube entries get the video embed placed
before their escaped description, and the source's Shorts filter applies.
"""

import calendar
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser

from ...database.models import NormalizedEntry, ParsedFeed, Platform, ShortsFilter, Source
from ...utils.exceptions import ParseError
from ..fetcher import FetchedDocument
from .base import FeedParser


YOUTUBE_FEED_MARKER = "youtube.com/feeds/videos.xml"


def struct_to_datetime(value) -> Optional[datetime]:
    """Convert a feedparser UTC time tuple to an aware datetime."""
    if not value:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def is_youtube_short(link: Optional[str]) -> bool:
    return bool(link) and "/shorts/" in link


class RssParser(FeedParser):
    """Parser for RSS and Atom documents."""

    platform = Platform.RSS

    DATE_FIELDS = ("published_parsed", "updated_parsed", "created_parsed")

    def parse(self, document: FetchedDocument, source: Optional[Source] = None) -> ParsedFeed:
        data = feedparser.parse(document.content)
        entries = data.get("entries") or []

        if data.get("bozo") and not entries:
            raise ParseError(
                f"Invalid feed document: {data.get('bozo_exception') or 'malformed XML'}",
                feed_url=document.url,
                platform=self.platform.value,
            )
        if not data.get("version") and not entries:
            raise ParseError(
                "Document is not an RSS or Atom feed",
                feed_url=document.url,
                platform=self.platform.value,
            )
        if data.get("bozo"):
            self.logger.info(f"Feed has parse warnings but contains entries: {document.url}")

        feed = data.get("feed", {})
        parsed = ParsedFeed(
            title=feed.get("title") or None,
            site_url=feed.get("link") or None,
            image_url=self._feed_image(feed),
        )

        youtube = self._is_youtube(document, source)
        shorts_filter = source.youtube_shorts_filter if source is not None else ShortsFilter.ALL

        for entry in entries:
            link = self._entry_link(entry)

            if youtube and not self._passes_shorts_filter(link, shorts_filter):
                parsed.filtered_entries += 1
                continue

            if youtube:
                normalized = self.try_entry(self._youtube_entry, entry, link)
            else:
                normalized = self.try_entry(self._rss_entry, entry, link, parsed.site_url)
            if normalized is None:
                parsed.dropped_entries += 1
                continue
            parsed.entries.append(normalized)

        self.logger.debug(
            f"Parsed {len(parsed.entries)} entries from {document.url} "
            f"({parsed.dropped_entries} dropped, {parsed.filtered_entries} filtered)"
        )
        return parsed

    def _rss_entry(self, entry: Any, link: Optional[str], site_url: Optional[str]) -> Optional[NormalizedEntry]:
        return self.build_entry(
            remote_id=entry.get("id") or link,
            title=entry.get("title"),
            link=link,
            upstream_html=self._entry_content(entry),
            author=self._entry_author(entry),
            published_at=self._entry_date(entry),
            image_url=self._entry_image(entry),
            tags=self._entry_tags(entry),
            base_url=link or site_url,
        )

    def _youtube_entry(self, entry: Any, link: Optional[str]) -> Optional[NormalizedEntry]:
        video_id = entry.get("yt_videoid")
        if not link and video_id:
            link = f"https://www.youtube.com/watch?v={video_id}"

        embed = self.rewriter.embed_for_url(link) or ""
        if not embed and video_id:
            embed = self.rewriter.embed_for_url(f"https://www.youtube.com/watch?v={video_id}") or ""

        description = entry.get("media_description") or entry.get("summary") or ""
        return self.build_entry(
            remote_id=entry.get("id") or (f"yt:video:{video_id}" if video_id else link),
            title=entry.get("title"),
            link=link,
            before_html=embed,
            after_html=self.cleaner.text_to_html(description),
            author=self._entry_author(entry),
            published_at=self._entry_date(entry),
            image_url=self._entry_image(entry),
            tags=self._entry_tags(entry),
        )

    @staticmethod
    def _passes_shorts_filter(link: Optional[str], shorts_filter: ShortsFilter) -> bool:
        if shorts_filter == ShortsFilter.EXCLUDE:
            return not is_youtube_short(link)
        if shorts_filter == ShortsFilter.ONLY:
            return is_youtube_short(link)
        return True

    @staticmethod
    def _is_youtube(document: FetchedDocument, source: Optional[Source]) -> bool:
        if source is not None and source.platform == Platform.YOUTUBE:
            return True
        return YOUTUBE_FEED_MARKER in document.url

    @staticmethod
    def _feed_image(feed: Any) -> Optional[str]:
        image = feed.get("image") or {}
        return (
            image.get("href")
            or image.get("url")
            or feed.get("icon")
            or feed.get("logo")
            or None
        )

    @staticmethod
    def _entry_link(entry: Any) -> Optional[str]:
        link = entry.get("link")
        if link:
            return link
        for candidate in entry.get("links") or []:
            if candidate.get("rel", "alternate") == "alternate" and candidate.get("href"):
                return candidate["href"]
        guid = entry.get("id") or ""
        if guid.startswith(("http://", "https://")):
            return guid
        return None

    @staticmethod
    def _entry_content(entry: Any) -> Optional[str]:
        """content:encoded / Atom content first, then summary/description."""
        for content in entry.get("content") or []:
            value = content.get("value")
            if value and value.strip():
                return value
        return entry.get("summary") or entry.get("description") or None

    @staticmethod
    def _entry_author(entry: Any) -> Optional[str]:
        author = entry.get("author")
        if author:
            return author
        detail = entry.get("author_detail") or {}
        return detail.get("name")

    def _entry_date(self, entry: Any) -> Optional[datetime]:
        for field in self.DATE_FIELDS:
            value = struct_to_datetime(entry.get(field))
            if value:
                return value
        return None

    @staticmethod
    def _entry_image(entry: Any) -> Optional[str]:
        """media:content, then media:thumbnail, then an image enclosure."""
        for media in entry.get("media_content") or []:
            url = media.get("url")
            medium = media.get("medium", "")
            media_type = media.get("type", "")
            if url and (medium == "image" or media_type.startswith("image/") or (not medium and not media_type)):
                return url

        for thumbnail in entry.get("media_thumbnail") or []:
            if thumbnail.get("url"):
                return thumbnail["url"]

        for enclosure in entry.get("enclosures") or []:
            href = enclosure.get("href") or enclosure.get("url")
            if href and (enclosure.get("type") or "").startswith("image/"):
                return href

        return None

    @staticmethod
    def _entry_tags(entry: Any) -> List[str]:
        tags = []
        for tag in entry.get("tags") or []:
            term = tag.get("term") or tag.get("label")
            if term:
                tags.append(term)
        return tags
