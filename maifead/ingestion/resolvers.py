"""
Source Identifier Resolver
==========================

Maps user input (a URL, handle, or bare name) to the canonical,
machine-fetchable feed endpoint of a source plus its platform identifiers.

Every resolver is a pure string/URL transform except YouTube's channel-ID
discovery, which fetches the channel or video page when no ``UC...`` id is
present in the input.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple
from urllib.parse import parse_qs, quote, urlparse

from bs4 import BeautifulSoup

from ..database.models import Platform, RedditSourceType, ResolvedSource
from ..utils.exceptions import (
    ChannelNotFound,
    FetchError,
    InvalidBlueskyHandle,
    InvalidRedditSource,
    InvalidSourceUrl,
)
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator


YOUTUBE_FEED_TEMPLATE = "https://www.youtube.com/feeds/videos.xml?channel_id={channel_id}"
REDDIT_SUBREDDIT_FEED = "https://www.reddit.com/r/{name}/.json?raw_json=1"
REDDIT_USER_FEED = "https://www.reddit.com/user/{name}/submitted/.json?raw_json=1"
BLUESKY_APPVIEW = "https://public.api.bsky.app/xrpc"
BLUESKY_AUTHOR_FEED = BLUESKY_APPVIEW + "/app.bsky.feed.getAuthorFeed?actor={actor}&limit=50"
BLUESKY_CUSTOM_FEED = BLUESKY_APPVIEW + "/app.bsky.feed.getFeed?feed={feed_uri}&limit=50"


def _with_scheme(raw: str) -> str:
    return raw if re.match(r"^[a-z][a-z0-9+.-]*://", raw, re.IGNORECASE) else "https://" + raw


class SourceResolver(ABC):
    """Resolves raw input for one platform."""

    platform: Platform

    def __init__(self):
        self.logger = get_logger_for_component("resolver", platform=self.platform.value)

    @abstractmethod
    def parse(self, raw_input: str, **hints) -> ResolvedSource:
        """Pure, synchronous resolution.

        Raises:
            SourceResolutionError: If the input cannot be resolved
        """

    async def resolve(self, raw_input: str, fetcher=None, **hints) -> ResolvedSource:
        """Resolve input; only resolvers that need network I/O override this."""
        return self.parse(raw_input, **hints)


class RssResolver(SourceResolver):
    """Feed URLs are used verbatim."""

    platform = Platform.RSS

    def parse(self, raw_input: str, **hints) -> ResolvedSource:
        url = (raw_input or "").strip()
        if not URLValidator.is_http_url(url):
            raise InvalidSourceUrl(
                f"Not an http(s) feed URL: {raw_input!r}",
                raw_input=raw_input,
                user_message="Invalid RSS feed URL. Please paste a full http(s) link to the feed.",
            )

        return ResolvedSource(
            platform=self.platform,
            feed_url=url,
            display_name=URLValidator.host_of(url) or url,
        )


class YouTubeResolver(SourceResolver):
    """Channel URLs, handles, video URLs, feed URLs, or literal channel IDs."""

    platform = Platform.YOUTUBE

    CHANNEL_ID = re.compile(r"^UC[A-Za-z0-9_-]+$")
    CHANNEL_ID_IN_TEXT = re.compile(r"UC[A-Za-z0-9_-]{10,}")
    HANDLE = re.compile(r"^@[A-Za-z0-9._-]{2,100}$")
    VIDEO_ID = re.compile(r"^[A-Za-z0-9_-]{11}$")
    YOUTUBE_HOSTS = {"youtube.com", "m.youtube.com", "music.youtube.com"}

    # Embedded page JSON carrying the channel of the page
    JSON_ID_PATTERNS = (
        re.compile(r'"externalId"\s*:\s*"(UC[A-Za-z0-9_-]+)"'),
        re.compile(r'"channelId"\s*:\s*"(UC[A-Za-z0-9_-]+)"'),
        re.compile(r'"browseId"\s*:\s*"(UC[A-Za-z0-9_-]+)"'),
    )
    JSON_NAME_PATTERNS = (
        re.compile(r'"ownerChannelName"\s*:\s*("(?:[^"\\]|\\.)*")'),
        re.compile(r'"author"\s*:\s*("(?:[^"\\]|\\.)*")'),
    )

    def parse(self, raw_input: str, **hints) -> ResolvedSource:
        """Resolve input that carries a channel ID directly.

        Raises:
            InvalidSourceUrl: If the input needs a page lookup or is not
                YouTube input at all
        """
        channel_id, lookup_url = self.classify(raw_input)
        if channel_id is None:
            raise InvalidSourceUrl(
                f"No channel ID in {raw_input!r}, page lookup required",
                raw_input=raw_input,
                context={"lookup_url": lookup_url},
            )
        return self.resolved(channel_id)

    async def resolve(self, raw_input: str, fetcher=None, **hints) -> ResolvedSource:
        channel_id, lookup_url = self.classify(raw_input)
        if channel_id is not None:
            return self.resolved(channel_id)

        if fetcher is None:
            raise ChannelNotFound(
                f"Channel lookup for {raw_input!r} needs a fetcher",
                raw_input=raw_input,
            )

        self.logger.debug(f"Looking up channel ID on {lookup_url}")
        try:
            page = await fetcher.fetch_text(lookup_url)
        except FetchError as e:
            raise ChannelNotFound(
                f"Could not load YouTube page {lookup_url}: {e}",
                raw_input=raw_input,
            ) from e

        channel_id, name = self.extract_channel(page)
        if not channel_id:
            raise ChannelNotFound(
                f"No channel ID found on {lookup_url}", raw_input=raw_input
            )

        self.logger.info(f"Resolved {raw_input!r} to channel {channel_id}")
        return self.resolved(channel_id, name)

    def resolved(self, channel_id: str, display_name: Optional[str] = None) -> ResolvedSource:
        return ResolvedSource(
            platform=self.platform,
            feed_url=YOUTUBE_FEED_TEMPLATE.format(channel_id=channel_id),
            display_name=display_name or channel_id,
            identifiers={"channel_id": channel_id},
        )

    def classify(self, raw_input: str) -> Tuple[Optional[str], Optional[str]]:
        """Split input into (channel_id, None) or (None, page URL to look up).

        Raises:
            InvalidSourceUrl: If no identifier-like token is present
        """
        raw = (raw_input or "").strip()
        if not raw:
            raise InvalidSourceUrl("Empty YouTube input", raw_input=raw_input)

        if self.CHANNEL_ID.match(raw):
            return raw, None
        if self.HANDLE.match(raw):
            return None, f"https://www.youtube.com/{raw}"

        parsed = urlparse(_with_scheme(raw))
        host = (parsed.hostname or "").lower()
        if host.startswith("www."):
            host = host[4:]

        if host == "youtu.be":
            video_id = parsed.path.strip("/").split("/")[0]
            if self.VIDEO_ID.match(video_id):
                return None, f"https://www.youtube.com/watch?v={video_id}"
            raise self._invalid(raw_input)

        if host not in self.YOUTUBE_HOSTS:
            raise self._invalid(raw_input)

        query = parse_qs(parsed.query)
        for channel_id in query.get("channel_id", []):
            if self.CHANNEL_ID.match(channel_id):
                return channel_id, None

        segments = [segment for segment in parsed.path.split("/") if segment]
        if not segments:
            raise self._invalid(raw_input)

        head = segments[0]
        if head == "channel" and len(segments) > 1 and self.CHANNEL_ID.match(segments[1]):
            return segments[1], None
        if head.startswith("@") and self.HANDLE.match(head):
            return None, f"https://www.youtube.com/{head}"
        if head in ("c", "user") and len(segments) > 1:
            return None, f"https://www.youtube.com/{head}/{quote(segments[1])}"
        if head == "watch":
            for video_id in query.get("v", []):
                if self.VIDEO_ID.match(video_id):
                    return None, f"https://www.youtube.com/watch?v={video_id}"
        if head in ("shorts", "live", "embed") and len(segments) > 1 and self.VIDEO_ID.match(segments[1]):
            return None, f"https://www.youtube.com/shorts/{segments[1]}" if head == "shorts" else \
                f"https://www.youtube.com/watch?v={segments[1]}"

        raise self._invalid(raw_input)

    def extract_channel(self, page: str) -> Tuple[Optional[str], Optional[str]]:
        """Pull (channel_id, channel name) out of a channel or video page."""
        soup = BeautifulSoup(page, "html.parser")
        channel_id = None

        meta = soup.find("meta", attrs={"itemprop": "channelId"}) or soup.find(
            "meta", attrs={"itemprop": "identifier"}
        )
        if meta and self.CHANNEL_ID.match(meta.get("content", "")):
            channel_id = meta["content"]

        if channel_id is None:
            candidates = []
            canonical = soup.find("link", rel="canonical")
            if canonical:
                candidates.append(canonical.get("href", ""))
            og_url = soup.find("meta", attrs={"property": "og:url"})
            if og_url:
                candidates.append(og_url.get("content", ""))
            for candidate in candidates:
                found = re.search(r"/channel/(UC[A-Za-z0-9_-]+)", candidate)
                if found:
                    channel_id = found.group(1)
                    break

        if channel_id is None:
            for pattern in self.JSON_ID_PATTERNS:
                found = pattern.search(page)
                if found:
                    channel_id = found.group(1)
                    break

        return channel_id, self._channel_name(soup, page)

    def _channel_name(self, soup: BeautifulSoup, page: str) -> Optional[str]:
        author = soup.find(attrs={"itemprop": "author"})
        if author is not None:
            name = author.find(attrs={"itemprop": "name"})
            if name is not None and name.get("content"):
                return name["content"].strip()

        for pattern in self.JSON_NAME_PATTERNS:
            found = pattern.search(page)
            if found:
                try:
                    return json.loads(found.group(1)).strip() or None
                except ValueError:
                    continue

        og_title = soup.find("meta", attrs={"property": "og:title"})
        if og_title and og_title.get("content"):
            return og_title["content"].strip()
        return None

    @staticmethod
    def _invalid(raw_input: str) -> InvalidSourceUrl:
        return InvalidSourceUrl(
            f"No YouTube channel, handle, or video in {raw_input!r}",
            raw_input=raw_input,
        )


class RedditResolver(SourceResolver):
    """Subreddits and user accounts."""

    platform = Platform.REDDIT

    NAME = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_-]{1,20}$")
    REDDIT_HOSTS = {"reddit.com", "old.reddit.com", "new.reddit.com", "m.reddit.com", "np.reddit.com"}
    USER_PREFIXES = ("u", "user")

    def parse(self, raw_input: str, reddit_source_type=None, **hints) -> ResolvedSource:
        """Classify input into a subreddit or a user.

        A bare name is a subreddit unless ``reddit_source_type`` says user.

        Raises:
            InvalidRedditSource: If neither pattern matches
        """
        kind, name = self.classify(raw_input, reddit_source_type)

        if kind == RedditSourceType.SUBREDDIT:
            return ResolvedSource(
                platform=self.platform,
                feed_url=REDDIT_SUBREDDIT_FEED.format(name=name),
                display_name=f"r/{name}",
                identifiers={"reddit_source_type": kind, "subreddit": name},
            )

        return ResolvedSource(
            platform=self.platform,
            feed_url=REDDIT_USER_FEED.format(name=name),
            display_name=f"u/{name}",
            identifiers={"reddit_source_type": kind, "reddit_username": name},
        )

    def classify(self, raw_input: str, hint=None) -> Tuple[RedditSourceType, str]:
        raw = (raw_input or "").strip()
        hint = RedditSourceType(hint) if hint else None

        if "://" in raw or re.match(r"^(?:www\.|old\.|new\.|m\.|np\.)?reddit\.com/", raw, re.IGNORECASE):
            parsed = urlparse(_with_scheme(raw))
            host = (parsed.hostname or "").lower()
            if host.startswith("www."):
                host = host[4:]
            if host not in self.REDDIT_HOSTS:
                raise self._invalid(raw_input)
            path = parsed.path
        else:
            path = raw

        segments = [segment for segment in path.split("/") if segment]

        if len(segments) >= 2 and segments[0].lower() == "r":
            return self._checked(RedditSourceType.SUBREDDIT, segments[1], raw_input)
        if len(segments) >= 2 and segments[0].lower() in self.USER_PREFIXES:
            return self._checked(RedditSourceType.USER, segments[1], raw_input)
        if len(segments) == 1 and "://" not in raw:
            kind = hint or RedditSourceType.SUBREDDIT
            return self._checked(kind, segments[0], raw_input)

        raise self._invalid(raw_input)

    def _checked(self, kind: RedditSourceType, name: str, raw_input: str) -> Tuple[RedditSourceType, str]:
        if not self.NAME.match(name):
            raise self._invalid(raw_input)
        return kind, name

    @staticmethod
    def _invalid(raw_input: str) -> InvalidRedditSource:
        return InvalidRedditSource(
            f"Not a subreddit or Reddit user: {raw_input!r}", raw_input=raw_input
        )


class BlueskyResolver(SourceResolver):
    """Handles, DIDs, profile URLs, and custom feed URLs."""

    platform = Platform.BLUESKY

    HANDLE = re.compile(
        r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z](?:[a-z0-9-]{0,61}[a-z0-9])?$"
    )
    DID = re.compile(r"^did:(?:plc|web):[A-Za-z0-9._:%-]+$")
    RKEY = re.compile(r"^[A-Za-z0-9._~:-]{1,512}$")
    WEB_HOSTS = {"bsky.app", "staging.bsky.app"}
    DEFAULT_SUFFIX = ".bsky.social"

    def parse(self, raw_input: str, **hints) -> ResolvedSource:
        """Resolve to an author feed, or a custom feed for /feed/ URLs.

        Raises:
            InvalidBlueskyHandle: If no handle or DID can be extracted
        """
        raw = (raw_input or "").strip()
        if not raw:
            raise self._invalid(raw_input)

        feed_rkey = None
        if raw.startswith("at://"):
            parts = [part for part in raw[len("at://"):].split("/") if part]
            actor = parts[0] if parts else ""
            if len(parts) == 3 and parts[1] == "app.bsky.feed.generator":
                feed_rkey = parts[2]
        elif "://" in raw or raw.lower().startswith(tuple(f"{host}/" for host in self.WEB_HOSTS)):
            actor, feed_rkey = self._from_web_url(raw, raw_input)
        else:
            actor = raw

        actor = self.normalize_actor(actor, raw_input)
        identifiers: Dict[str, str] = {}
        if actor.startswith("did:"):
            identifiers["bluesky_did"] = actor
        else:
            identifiers["bluesky_handle"] = actor

        if feed_rkey is not None:
            if not self.RKEY.match(feed_rkey):
                raise self._invalid(raw_input)
            feed_uri = f"at://{actor}/app.bsky.feed.generator/{feed_rkey}"
            identifiers["bluesky_feed_uri"] = feed_uri
            return ResolvedSource(
                platform=self.platform,
                feed_url=BLUESKY_CUSTOM_FEED.format(feed_uri=quote(feed_uri, safe="")),
                display_name=f"{feed_rkey} by @{actor}",
                identifiers=identifiers,
            )

        return ResolvedSource(
            platform=self.platform,
            feed_url=BLUESKY_AUTHOR_FEED.format(actor=quote(actor, safe="")),
            display_name=f"@{actor}",
            identifiers=identifiers,
        )

    def normalize_actor(self, actor: str, raw_input: str) -> str:
        """Validate a handle or DID; bare names get the default suffix."""
        actor = (actor or "").strip().lstrip("@")
        if actor.startswith("did:"):
            if self.DID.match(actor):
                return actor
            raise self._invalid(raw_input)

        actor = actor.lower()
        if actor and "." not in actor:
            actor += self.DEFAULT_SUFFIX
        if not self.HANDLE.match(actor):
            raise self._invalid(raw_input)
        return actor

    def _from_web_url(self, raw: str, raw_input: str) -> Tuple[str, Optional[str]]:
        parsed = urlparse(_with_scheme(raw))
        if (parsed.hostname or "").lower() not in self.WEB_HOSTS:
            raise self._invalid(raw_input)

        segments = [segment for segment in parsed.path.split("/") if segment]
        if len(segments) < 2 or segments[0] != "profile":
            raise self._invalid(raw_input)

        if len(segments) >= 4 and segments[2] == "feed":
            return segments[1], segments[3]
        return segments[1], None

    @staticmethod
    def _invalid(raw_input: str) -> InvalidBlueskyHandle:
        return InvalidBlueskyHandle(
            f"No Bluesky handle or DID in {raw_input!r}", raw_input=raw_input
        )


RESOLVERS: Dict[Platform, SourceResolver] = {}


def get_resolver(platform) -> SourceResolver:
    """Resolver registered for a platform."""
    platform = Platform(platform)
    if platform not in RESOLVERS:
        resolver_class = {
            Platform.RSS: RssResolver,
            Platform.YOUTUBE: YouTubeResolver,
            Platform.REDDIT: RedditResolver,
            Platform.BLUESKY: BlueskyResolver,
        }[platform]
        RESOLVERS[platform] = resolver_class()
    return RESOLVERS[platform]


async def resolve_source(
    platform,
    raw_input: str,
    fetcher=None,
    reddit_source_type=None,
) -> ResolvedSource:
    """Resolve user input into a canonical feed endpoint.

    Args:
        platform: Platform (or its string value)
        raw_input: URL, handle, or name as typed by the user
        fetcher: RemoteFetcher for YouTube page lookups
        reddit_source_type: Hint that a bare Reddit name is a user

    Returns:
        ResolvedSource with feed URL, display name hint, and identifiers

    Raises:
        InvalidSourceUrl, ChannelNotFound, InvalidRedditSource,
        InvalidBlueskyHandle
    """
    try:
        platform = Platform(platform)
    except ValueError:
        raise InvalidSourceUrl(
            f"Unknown platform {platform!r}", raw_input=raw_input
        )

    resolver = get_resolver(platform)
    if platform == Platform.REDDIT:
        return await resolver.resolve(raw_input, fetcher, reddit_source_type=reddit_source_type)
    return await resolver.resolve(raw_input, fetcher)
