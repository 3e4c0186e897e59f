"""
Reddit Parser
=============

Parses Reddit listing JSON (``/r/<name>/.json``, ``/user/<name>/submitted/.json``).
Only link posts (``t3``) are kept. Post media is rendered ahead of the
self-text:

- galleries become a ``reddit-gallery`` grid of images
- hosted videos become a ``<video>`` element pointing at the fallback MP4
- image posts become an ``<img>``
- link posts become a link paragraph, which embed rewriting may replace

Posts scoring below the source's ``reddit_min_score`` are suppressed. An XML
payload (Reddit's RSS endpoints) is handed to the RSS parser.
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from ...database.models import NormalizedEntry, ParsedFeed, Platform, Source
from ...utils.exceptions import ParseError
from ..fetcher import FetchedDocument
from .base import FeedParser, as_dict, as_list, as_text, attr, from_unix_seconds, safe_url
from .rss import RssParser


REDDIT_BASE = "https://www.reddit.com"
IMAGE_EXTENSIONS = re.compile(r"\.(?:jpe?g|png|gif|webp)(?:\?.*)?$", re.IGNORECASE)


class RedditParser(FeedParser):
    """Parser for Reddit listing documents."""

    platform = Platform.REDDIT

    def __init__(self, cleaner=None, rewriter=None, rss_parser: Optional[RssParser] = None):
        super().__init__(cleaner, rewriter)
        self.rss_parser = rss_parser or RssParser(self.cleaner, self.rewriter)

    def parse(self, document: FetchedDocument, source: Optional[Source] = None) -> ParsedFeed:
        if not document.looks_like_json:
            return self.rss_parser.parse(document, source)

        payload = document.json()
        children = self._listing_children(payload)
        if children is None:
            raise ParseError(
                "Document is not a Reddit listing",
                feed_url=document.url,
                platform=self.platform.value,
            )

        min_score = source.reddit_min_score if source is not None else None
        parsed = ParsedFeed()
        parsed.title, parsed.site_url = self._feed_identity(source, children)

        for child in children:
            if not isinstance(child, dict) or child.get("kind") != "t3":
                continue
            post = child.get("data")
            if not isinstance(post, dict):
                parsed.dropped_entries += 1
                continue

            score = post.get("score")
            if not isinstance(score, (int, float)):
                score = 0
            if min_score is not None and score < min_score:
                parsed.filtered_entries += 1
                continue

            entry = self.try_entry(self._post_entry, post)
            if entry is None:
                parsed.dropped_entries += 1
                continue
            parsed.entries.append(entry)

        self.logger.debug(
            f"Parsed {len(parsed.entries)} posts from {document.url} "
            f"({parsed.dropped_entries} dropped, {parsed.filtered_entries} below score)"
        )
        return parsed

    @staticmethod
    def _listing_children(payload: Any) -> Optional[List[Any]]:
        if not isinstance(payload, dict):
            return None
        data = payload.get("data")
        if not isinstance(data, dict):
            return None
        children = data.get("children")
        return children if isinstance(children, list) else None

    @staticmethod
    def _feed_identity(source: Optional[Source], children: List[Any]) -> Tuple[Optional[str], Optional[str]]:
        if source is not None and source.subreddit:
            return f"r/{source.subreddit}", f"{REDDIT_BASE}/r/{source.subreddit}"
        if source is not None and source.reddit_username:
            return f"u/{source.reddit_username}", f"{REDDIT_BASE}/user/{source.reddit_username}"
        for child in children:
            prefixed = as_text(as_dict(as_dict(child).get("data")).get("subreddit_name_prefixed"))
            if prefixed:
                return prefixed, f"{REDDIT_BASE}/{prefixed}"
        return None, None

    def _post_entry(self, post: Dict[str, Any]) -> Optional[NormalizedEntry]:
        permalink = as_text(post.get("permalink"))
        link = f"{REDDIT_BASE}{permalink}" if permalink else None

        media_html, image_url = self._media_html(post, link)

        tags = []
        if post.get("link_flair_text"):
            tags.append(post["link_flair_text"])
        if post.get("subreddit_name_prefixed"):
            tags.append(post["subreddit_name_prefixed"])
        elif post.get("subreddit"):
            tags.append(f"r/{post['subreddit']}")

        return self.build_entry(
            remote_id=as_text(post.get("name")) or (f"t3_{post['id']}" if post.get("id") else None),
            title=post.get("title"),
            link=link,
            before_html=media_html,
            upstream_html=post.get("selftext_html"),
            author=post.get("author"),
            published_at=from_unix_seconds(post.get("created_utc")),
            image_url=image_url,
            tags=tags,
            base_url=REDDIT_BASE,
        )

    def _media_html(self, post: Dict[str, Any], link: Optional[str]) -> Tuple[str, Optional[str]]:
        """Generated markup for the post's media and the thumbnail it implies."""
        gallery = self._gallery_images(post)
        if gallery:
            images = "".join(
                f'<img src="{attr(url)}" alt="{attr(caption)}" loading="lazy">'
                for url, caption in gallery
            )
            markup = f'<div class="reddit-gallery" data-count="{len(gallery)}">{images}</div>'
            return markup, gallery[0][0]

        preview = self._preview_image(post)

        video_url = self._video_url(post)
        if video_url:
            poster = f' poster="{attr(preview)}"' if preview else ""
            markup = (
                f'<video class="reddit-video" controls preload="metadata" playsinline{poster}>'
                f'<source src="{attr(video_url)}" type="video/mp4"></video>'
            )
            return markup, preview

        target = safe_url(post.get("url_overridden_by_dest") or post.get("url"))
        if target and (post.get("post_hint") == "image" or IMAGE_EXTENSIONS.search(target)):
            title = as_text(post.get("title"))
            return f'<p><img src="{attr(target)}" alt="{attr(title)}"></p>', target

        if target and not post.get("is_self") and target != link and "reddit.com" not in target:
            label = as_text(post.get("domain")) or target
            return f'<p><a href="{attr(target)}">{attr(label)}</a></p>', preview

        return "", preview

    @staticmethod
    def _gallery_images(post: Dict[str, Any]) -> List[Tuple[str, str]]:
        if not post.get("is_gallery"):
            return []
        metadata = as_dict(post.get("media_metadata"))
        items = as_list(as_dict(post.get("gallery_data")).get("items"))

        images = []
        for item in items:
            item = as_dict(item)
            meta = as_dict(metadata.get(as_text(item.get("media_id"))))
            if meta.get("status", "valid") != "valid":
                continue
            best = as_dict(meta.get("s"))
            url = safe_url(best.get("u") or best.get("gif"))
            if url:
                images.append((url, as_text(item.get("caption"))))
        return images

    @staticmethod
    def _video_url(post: Dict[str, Any]) -> Optional[str]:
        if not post.get("is_video"):
            return None
        for key in ("media", "secure_media"):
            video = as_dict(as_dict(post.get(key)).get("reddit_video"))
            url = safe_url(video.get("fallback_url"))
            if url:
                return url
        return None

    @staticmethod
    def _preview_image(post: Dict[str, Any]) -> Optional[str]:
        images = as_list(as_dict(post.get("preview")).get("images"))
        if images:
            url = safe_url(as_dict(as_dict(images[0]).get("source")).get("url"))
            if url:
                return url
        return safe_url(post.get("thumbnail"))
