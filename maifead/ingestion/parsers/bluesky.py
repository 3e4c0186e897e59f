"""
Bluesky Parser
==============

Parses AppView feed responses (``app.bsky.feed.getAuthorFeed`` and
``app.bsky.feed.getFeed``). Each feed view post becomes one entry keyed by
its ``at://`` URI. Post text is rendered from its rich-text facets; image
grids, external link cards, quoted posts, and video posters follow it.
Reposts carry a ``repost`` tag.
"""

import html
from typing import Any, Dict, List, Optional, Tuple

from ...database.models import NormalizedEntry, ParsedFeed, Platform, Source
from ...utils.exceptions import ParseError
from ...utils.validators import ContentValidator
from ..fetcher import FetchedDocument
from .base import FeedParser, as_dict, as_list, as_text, attr, parse_iso_datetime, safe_url


BSKY_WEB = "https://bsky.app"
TITLE_LENGTH = 100

FACET_LINK = "app.bsky.richtext.facet#link"
FACET_TAG = "app.bsky.richtext.facet#tag"
FACET_MENTION = "app.bsky.richtext.facet#mention"

EMBED_IMAGES = "app.bsky.embed.images#view"
EMBED_EXTERNAL = "app.bsky.embed.external#view"
EMBED_RECORD = "app.bsky.embed.record#view"
EMBED_RECORD_WITH_MEDIA = "app.bsky.embed.recordWithMedia#view"
EMBED_VIDEO = "app.bsky.embed.video#view"
VIEW_RECORD = "app.bsky.embed.record#viewRecord"
REASON_REPOST = "app.bsky.feed.defs#reasonRepost"


def post_web_url(handle_or_did: str, uri: str) -> str:
    """Web URL of a post given its author and at:// URI."""
    rkey = uri.rstrip("/").rsplit("/", 1)[-1]
    return f"{BSKY_WEB}/profile/{handle_or_did}/post/{rkey}"


class BlueskyParser(FeedParser):
    """Parser for Bluesky AppView feed JSON."""

    platform = Platform.BLUESKY

    def parse(self, document: FetchedDocument, source: Optional[Source] = None) -> ParsedFeed:
        payload = document.json()
        feed = payload.get("feed") if isinstance(payload, dict) else None
        if not isinstance(feed, list):
            raise ParseError(
                "Document is not a Bluesky feed response",
                feed_url=document.url,
                platform=self.platform.value,
            )

        parsed = ParsedFeed()
        if source is not None and source.bluesky_handle:
            parsed.site_url = f"{BSKY_WEB}/profile/{source.bluesky_handle}"

        for feed_view in feed:
            entry = self.try_entry(self._feed_view_entry, feed_view) if isinstance(feed_view, dict) else None
            if entry is None:
                parsed.dropped_entries += 1
                continue
            parsed.entries.append(entry)

        self.logger.debug(
            f"Parsed {len(parsed.entries)} posts from {document.url} "
            f"({parsed.dropped_entries} dropped)"
        )
        return parsed

    def _feed_view_entry(self, feed_view: Dict[str, Any]) -> Optional[NormalizedEntry]:
        post = feed_view.get("post")
        if not isinstance(post, dict):
            return None
        uri = as_text(post.get("uri"))
        author = as_dict(post.get("author"))
        handle = as_text(author.get("handle")) or as_text(author.get("did"))
        if not uri or not handle:
            return None

        record = as_dict(post.get("record"))
        text = as_text(record.get("text"))
        facets = as_list(record.get("facets"))

        tags = self._facet_tags(facets)
        reason = as_dict(feed_view.get("reason"))
        if reason.get("$type") == REASON_REPOST:
            tags.append("repost")

        embed_html, image_url = self._embed_html(post.get("embed"))

        return self.build_entry(
            remote_id=uri,
            title=self._title(text, handle),
            link=post_web_url(handle, uri),
            upstream_html=self.render_text(text, facets),
            after_html=embed_html,
            author=author.get("displayName") or f"@{handle}",
            published_at=parse_iso_datetime(record.get("createdAt")) or parse_iso_datetime(post.get("indexedAt")),
            image_url=image_url,
            tags=tags,
        )

    @staticmethod
    def _title(text: str, handle: str) -> str:
        for line in text.splitlines():
            line = line.strip()
            if line:
                return ContentValidator.truncate(line, TITLE_LENGTH)
        return f"Post by @{handle}"

    @staticmethod
    def _facet_tags(facets: List[Dict[str, Any]]) -> List[str]:
        tags = []
        for facet in facets:
            for feature in as_list(as_dict(facet).get("features")):
                if as_dict(feature).get("$type") == FACET_TAG and as_text(feature.get("tag")):
                    tags.append(feature["tag"])
        return tags

    def render_text(self, text: str, facets: Optional[List[Dict[str, Any]]] = None) -> str:
        """Render post text as HTML, honoring link/tag/mention facets.

        Facet ranges are byte offsets into the UTF-8 encoded text.
        """
        if not text:
            return ""
        if not facets:
            return self.cleaner.text_to_html(text)

        data = text.encode("utf-8")
        spans = []
        for facet in facets:
            facet = as_dict(facet)
            index = as_dict(facet.get("index"))
            start, end = index.get("byteStart"), index.get("byteEnd")
            if not isinstance(start, int) or not isinstance(end, int) or not 0 <= start < end <= len(data):
                continue
            href = self._facet_href(as_list(facet.get("features")))
            if href:
                spans.append((start, end, href))
        spans.sort()

        parts = []
        cursor = 0
        for start, end, href in spans:
            if start < cursor:
                continue
            parts.append(html.escape(data[cursor:start].decode("utf-8", errors="replace")))
            label = html.escape(data[start:end].decode("utf-8", errors="replace"))
            parts.append(f'<a href="{attr(href)}">{label}</a>')
            cursor = end
        parts.append(html.escape(data[cursor:].decode("utf-8", errors="replace")))

        body = "".join(parts)
        paragraphs = [p for p in body.split("\n\n") if p.strip()]
        return "".join("<p>" + p.strip().replace("\n", "<br>") + "</p>" for p in paragraphs)

    @staticmethod
    def _facet_href(features: List[Dict[str, Any]]) -> Optional[str]:
        for feature in features:
            if not isinstance(feature, dict):
                continue
            kind = feature.get("$type")
            if kind == FACET_LINK and feature.get("uri"):
                return feature["uri"]
            if kind == FACET_TAG and feature.get("tag"):
                return f"{BSKY_WEB}/hashtag/{feature['tag']}"
            if kind == FACET_MENTION and feature.get("did"):
                return f"{BSKY_WEB}/profile/{feature['did']}"
        return None

    def _embed_html(self, embed: Optional[Dict[str, Any]]) -> Tuple[str, Optional[str]]:
        """Markup for a post embed and the first image it carries."""
        if not isinstance(embed, dict):
            return "", None

        kind = embed.get("$type")
        if kind == EMBED_IMAGES:
            return self._images_html(as_list(embed.get("images")))
        if kind == EMBED_EXTERNAL:
            return self._external_html(as_dict(embed.get("external")))
        if kind == EMBED_VIDEO:
            return self._video_html(embed)
        if kind == EMBED_RECORD:
            return self._quote_html(as_dict(embed.get("record"))), None
        if kind == EMBED_RECORD_WITH_MEDIA:
            media_html, image_url = self._embed_html(embed.get("media"))
            quoted = as_dict(as_dict(embed.get("record")).get("record"))
            return media_html + self._quote_html(quoted), image_url
        return "", None

    @staticmethod
    def _images_html(images: List[Dict[str, Any]]) -> Tuple[str, Optional[str]]:
        rendered = []
        first = None
        for image in images:
            image = as_dict(image)
            url = safe_url(image.get("fullsize") or image.get("thumb"))
            if not url:
                continue
            first = first or url
            rendered.append(f'<img src="{attr(url)}" alt="{attr(as_text(image.get("alt")))}" loading="lazy">')
        if not rendered:
            return "", None
        return f'<div class="bsky-images" data-count="{len(rendered)}">{"".join(rendered)}</div>', first

    @staticmethod
    def _external_html(external: Dict[str, Any]) -> Tuple[str, Optional[str]]:
        uri = safe_url(external.get("uri"))
        if not uri:
            return "", None
        thumb = safe_url(external.get("thumb"))
        title = as_text(external.get("title")) or uri
        description = as_text(external.get("description"))
        parts = ['<div class="bsky-external">']
        if thumb:
            parts.append(f'<img src="{attr(thumb)}" alt="">')
        parts.append(f'<p><a href="{attr(uri)}">{html.escape(title)}</a></p>')
        if description:
            parts.append(f"<p>{html.escape(description)}</p>")
        parts.append("</div>")
        return "".join(parts), thumb

    @staticmethod
    def _video_html(embed: Dict[str, Any]) -> Tuple[str, Optional[str]]:
        thumbnail = safe_url(embed.get("thumbnail"))
        playlist = safe_url(embed.get("playlist"))
        if not thumbnail and not playlist:
            return "", None
        poster = f' poster="{attr(thumbnail)}"' if thumbnail else ""
        source = f'<source src="{attr(playlist)}" type="application/x-mpegURL">' if playlist else ""
        return f'<video class="bsky-video" controls preload="none"{poster}>{source}</video>', thumbnail

    @staticmethod
    def _quote_html(record: Dict[str, Any]) -> str:
        if record.get("$type") != VIEW_RECORD:
            return ""
        author = as_dict(record.get("author"))
        handle = as_text(author.get("handle")) or as_text(author.get("did"))
        text = as_text(as_dict(record.get("value")).get("text"))
        uri = as_text(record.get("uri"))
        cite = f' cite="{attr(post_web_url(handle, uri))}"' if handle and uri else ""
        return (
            f'<blockquote class="bsky-quote"{cite}>'
            f"<p>{html.escape(text).replace(chr(10), '<br>')}</p>"
            f"<p>@{html.escape(handle)}</p>"
            f"</blockquote>"
        )
