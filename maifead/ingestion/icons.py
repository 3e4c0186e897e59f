"""
Icon Resolver
=============

Best-effort discovery of a display icon for a source. Each platform has an
ordered list of providers; the first one returning a URL wins. Provider
failures are logged at debug level and never reach the caller, and every
list ends with a provider that cannot fail, so resolution always yields an
icon.
"""

import html
from typing import Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote, urljoin, urlparse

from bs4 import BeautifulSoup

from ..config.settings import get_settings
from ..database.models import Platform, Source
from ..utils.logging import get_logger_for_component
from .fetcher import RemoteFetcher
from .resolvers import BLUESKY_APPVIEW


IconProvider = Callable[[Source, Optional[str]], Awaitable[Optional[str]]]


def _strip_query(url: str) -> str:
    return url.split("?", 1)[0]


class IconResolver:
    """Resolves icons through per-platform provider cascades."""

    def __init__(self, fetcher: Optional[RemoteFetcher] = None, settings=None):
        """Initialize icon resolver.

        Args:
            fetcher: Fetcher used for page and API lookups
            settings: Settings override (default from config)
        """
        self.settings = settings or get_settings()
        self.fetcher = fetcher or RemoteFetcher()
        self.logger = get_logger_for_component("icons")

        self.providers: Dict[Platform, List[IconProvider]] = {
            Platform.YOUTUBE: [self._youtube_channel_image, self._youtube_default],
            Platform.REDDIT: [self._reddit_about_icon, self._reddit_default],
            Platform.BLUESKY: [self._bluesky_avatar, self._bluesky_default],
            Platform.RSS: [self._feed_image, self._site_favicon, self._favicon_service],
        }

    async def resolve_icon(self, source: Source, feed_image: Optional[str] = None) -> Optional[str]:
        """Run the provider cascade for a source.

        Args:
            source: Source to find an icon for
            feed_image: Image advertised by the feed document, if known

        Returns:
            Icon URL; None only when every provider came back empty
        """
        for provider in self.providers[source.platform]:
            try:
                icon = await provider(source, feed_image)
            except Exception as e:
                self.logger.debug(
                    f"Icon provider {provider.__name__} failed for {source.feed_url}: {e}"
                )
                continue
            if icon:
                return icon
        return None

    async def update_missing_icons(self, repository, owner_id: Optional[str] = None) -> int:
        """Resolve and store icons for sources that have none.

        Args:
            repository: SourceRepository to read from and write to
            owner_id: Restrict the sweep to one owner

        Returns:
            Number of sources that received an icon
        """
        updated = 0
        sources = repository.list_sources_missing_icon(owner_id)

        async with self.fetcher.shared_session():
            for source in sources:
                icon = await self.resolve_icon(source)
                if icon and repository.update_icon(source.id, icon):
                    updated += 1

        self.logger.info(f"Updated icons for {updated}/{len(sources)} sources")
        return updated

    # YouTube

    async def _youtube_channel_image(self, source: Source, feed_image: Optional[str]) -> Optional[str]:
        if not source.channel_id:
            return None
        page = await self.fetcher.fetch_text(
            f"https://www.youtube.com/channel/{source.channel_id}"
        )
        soup = BeautifulSoup(page, "html.parser")
        og_image = soup.find("meta", attrs={"property": "og:image"})
        if og_image and og_image.get("content"):
            return og_image["content"]
        image_src = soup.find("link", rel="image_src")
        if image_src and image_src.get("href"):
            return image_src["href"]
        return None

    async def _youtube_default(self, source: Source, feed_image: Optional[str]) -> Optional[str]:
        return self.settings.icons.youtube_default

    # Reddit

    async def _reddit_about_icon(self, source: Source, feed_image: Optional[str]) -> Optional[str]:
        if source.subreddit:
            about_url = f"https://www.reddit.com/r/{source.subreddit}/about.json"
        elif source.reddit_username:
            about_url = f"https://www.reddit.com/user/{source.reddit_username}/about.json"
        else:
            return None

        payload = await self.fetcher.fetch_json(about_url)
        data = payload.get("data") or {}
        for key in ("community_icon", "icon_img"):
            icon = data.get(key)
            if icon:
                return _strip_query(html.unescape(icon))
        return None

    async def _reddit_default(self, source: Source, feed_image: Optional[str]) -> Optional[str]:
        return self.settings.icons.reddit_default

    # Bluesky

    async def _bluesky_avatar(self, source: Source, feed_image: Optional[str]) -> Optional[str]:
        actor = source.bluesky_did or source.bluesky_handle
        if not actor:
            return None
        payload = await self.fetcher.fetch_json(
            f"{BLUESKY_APPVIEW}/app.bsky.actor.getProfile?actor={quote(actor, safe='')}"
        )
        return payload.get("avatar") or None

    async def _bluesky_default(self, source: Source, feed_image: Optional[str]) -> Optional[str]:
        return self.settings.icons.bluesky_default

    # RSS

    async def _feed_image(self, source: Source, feed_image: Optional[str]) -> Optional[str]:
        return feed_image or None

    async def _site_favicon(self, source: Source, feed_image: Optional[str]) -> Optional[str]:
        parsed = urlparse(source.feed_url)
        if not parsed.hostname:
            return None
        origin = f"{parsed.scheme}://{parsed.netloc}/"
        page = await self.fetcher.fetch_text(origin)

        soup = BeautifulSoup(page, "html.parser")
        for link in soup.find_all("link", href=True):
            rel = [value.lower() for value in (link.get("rel") or [])]
            if "icon" in rel or "apple-touch-icon" in rel:
                return urljoin(origin, link["href"])
        return None

    async def _favicon_service(self, source: Source, feed_image: Optional[str]) -> Optional[str]:
        host = urlparse(source.feed_url).hostname
        if not host:
            return None
        return self.settings.icons.favicon_service_url.format(host=host)
