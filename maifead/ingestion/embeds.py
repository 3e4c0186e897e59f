"""
Embed Rewriting
===============

Recognizes links to known video and social platforms and replaces them with
an inline embed container::

    <div class="maifead-embed" data-embed-provider="youtube"
         data-embed-orientation="landscape" data-embed-id="dQw4w9WgXcQ">
      <iframe src="..."></iframe>
    </div>

Orientation tells the reader how to size the frame: vertical video (Shorts,
TikTok, Reels) and social posts are portrait, everything else landscape.
Each media id is embedded at most once per item.
"""

import html
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Set, Tuple
from urllib.parse import quote

from bs4 import BeautifulSoup, NavigableString, Tag

from ..utils.logging import get_logger_for_component


EMBED_CLASS = "maifead-embed"

URL_IN_TEXT = re.compile(r"https?://[^\s<>\"']+[^\s<>\"'.,;:!?)\]]")


class Orientation(str, Enum):
    """Frame orientation of an embed."""
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"


@dataclass(frozen=True)
class EmbedMatch:
    """A recognized media link."""
    provider: str
    media_id: str
    orientation: Orientation
    embed_url: str

    @property
    def key(self) -> Tuple[str, str]:
        return (self.provider, self.media_id)


@dataclass(frozen=True)
class EmbedProvider:
    """URL patterns of one platform and how to build its embed URL."""
    name: str
    orientation: Orientation
    patterns: Tuple["re.Pattern", ...]
    build_url: Callable[["re.Match"], str]
    id_group: str = "id"

    def match(self, url: str) -> Optional[EmbedMatch]:
        for pattern in self.patterns:
            found = pattern.search(url)
            if found:
                return EmbedMatch(
                    provider=self.name,
                    media_id=found.group(self.id_group),
                    orientation=self.orientation,
                    embed_url=self.build_url(found),
                )
        return None


_YT_ID = r"(?P<id>[A-Za-z0-9_-]{11})"


def _youtube_url(found: "re.Match") -> str:
    return f"https://www.youtube-nocookie.com/embed/{found.group('id')}"


def build_providers(twitch_parent: str = "localhost") -> List[EmbedProvider]:
    """Provider table in match order; Shorts precede regular YouTube links."""
    return [
        EmbedProvider(
            name="youtube",
            orientation=Orientation.PORTRAIT,
            patterns=(
                re.compile(r"^https?://(?:www\.|m\.)?youtube\.com/shorts/" + _YT_ID, re.I),
            ),
            build_url=_youtube_url,
        ),
        EmbedProvider(
            name="youtube",
            orientation=Orientation.LANDSCAPE,
            patterns=(
                re.compile(r"^https?://(?:www\.|m\.|music\.)?youtube\.com/watch\?(?:[^#\s]*&)?v=" + _YT_ID, re.I),
                re.compile(r"^https?://(?:www\.)?youtu\.be/" + _YT_ID, re.I),
                re.compile(r"^https?://(?:www\.)?youtube(?:-nocookie)?\.com/(?:embed|live|v)/" + _YT_ID, re.I),
            ),
            build_url=_youtube_url,
        ),
        EmbedProvider(
            name="tiktok",
            orientation=Orientation.PORTRAIT,
            patterns=(
                re.compile(r"^https?://(?:www\.|m\.)?tiktok\.com/@[\w.-]+/video/(?P<id>\d+)", re.I),
            ),
            build_url=lambda found: f"https://www.tiktok.com/embed/v2/{found.group('id')}",
        ),
        EmbedProvider(
            name="instagram",
            orientation=Orientation.PORTRAIT,
            patterns=(
                re.compile(r"^https?://(?:www\.)?instagram\.com/(?P<kind>reels?|p|tv)/(?P<id>[A-Za-z0-9_-]+)", re.I),
            ),
            build_url=lambda found: (
                "https://www.instagram.com/{}/{}/embed".format(
                    "p" if found.group("kind").lower() == "p" else "reel",
                    found.group("id"),
                )
            ),
        ),
        EmbedProvider(
            name="twitter",
            orientation=Orientation.PORTRAIT,
            patterns=(
                re.compile(r"^https?://(?:www\.|mobile\.)?(?:twitter|x)\.com/\w+/status(?:es)?/(?P<id>\d+)", re.I),
            ),
            build_url=lambda found: f"https://platform.twitter.com/embed/Tweet.html?id={found.group('id')}",
        ),
        EmbedProvider(
            name="streamable",
            orientation=Orientation.LANDSCAPE,
            patterns=(
                re.compile(r"^https?://(?:www\.)?streamable\.com/(?:e/|o/)?(?P<id>[A-Za-z0-9]+)/?(?:[?#]|$)", re.I),
            ),
            build_url=lambda found: f"https://streamable.com/e/{found.group('id')}",
        ),
        EmbedProvider(
            name="twitch",
            orientation=Orientation.LANDSCAPE,
            patterns=(
                re.compile(r"^https?://clips\.twitch\.tv/(?P<id>[\w-]+)", re.I),
                re.compile(r"^https?://(?:www\.|m\.)?twitch\.tv/\w+/clip/(?P<id>[\w-]+)", re.I),
            ),
            build_url=lambda found: (
                f"https://clips.twitch.tv/embed?clip={found.group('id')}"
                f"&parent={quote(twitch_parent)}"
            ),
        ),
    ]


class EmbedRewriter:
    """Turns media links inside item HTML into embed containers."""

    SKIP_TEXT_PARENTS = {"a", "script", "style", "iframe", "code", "pre", "video"}

    def __init__(self, enabled: bool = True, twitch_parent: str = "localhost"):
        self.enabled = enabled
        self.providers = build_providers(twitch_parent)
        self.logger = get_logger_for_component("embeds")
        self.parser = "html.parser"

    def find_embed(self, url: Optional[str]) -> Optional[EmbedMatch]:
        """Match a URL against the provider table."""
        if not url:
            return None
        url = html.unescape(url.strip())
        for provider in self.providers:
            found = provider.match(url)
            if found:
                return found
        return None

    def render(self, match: EmbedMatch) -> str:
        """Embed container markup for a match."""
        title = f"{match.provider.capitalize()} embed"
        return (
            f'<div class="{EMBED_CLASS}" '
            f'data-embed-provider="{html.escape(match.provider)}" '
            f'data-embed-orientation="{match.orientation.value}" '
            f'data-embed-id="{html.escape(match.media_id)}">'
            f'<iframe src="{html.escape(match.embed_url)}" title="{title}" '
            f'loading="lazy" frameborder="0" '
            f'allow="accelerometer; autoplay; clipboard-write; encrypted-media; picture-in-picture" '
            f'allowfullscreen></iframe></div>'
        )

    def embed_for_url(self, url: Optional[str]) -> Optional[str]:
        """Embed markup for a single URL, or None if it is not embeddable."""
        if not self.enabled:
            return None
        match = self.find_embed(url)
        return self.render(match) if match else None

    def rewrite(self, html_content: Optional[str]) -> str:
        """Replace embeddable anchors and bare URLs with embed containers.

        Embeds already present in the content count towards the
        once-per-media-id rule.
        """
        if not html_content:
            return html_content or ""
        if not self.enabled:
            return html_content

        soup = BeautifulSoup(html_content, self.parser)
        seen: Set[Tuple[str, str]] = set()

        for existing in soup.find_all("div", class_=EMBED_CLASS):
            seen.add((existing.get("data-embed-provider"), existing.get("data-embed-id")))

        replaced = 0
        for anchor in soup.find_all("a", href=True):
            if self._inside_embed(anchor):
                continue
            match = self.find_embed(anchor["href"])
            if not match or match.key in seen:
                continue
            seen.add(match.key)
            anchor.replace_with(self._fragment(match))
            replaced += 1

        for text_node in list(soup.find_all(string=URL_IN_TEXT)):
            if not isinstance(text_node, NavigableString) or self._skip_text(text_node):
                continue
            new_nodes = self._split_text(text_node, seen)
            if new_nodes is not None:
                text_node.replace_with(*new_nodes)
                replaced += sum(1 for node in new_nodes if isinstance(node, Tag))

        if replaced:
            self.logger.debug(f"Rewrote {replaced} media links into embeds")
        return str(soup)

    def _fragment(self, match: EmbedMatch) -> Tag:
        return BeautifulSoup(self.render(match), self.parser).div

    def _split_text(self, text_node: NavigableString, seen: Set[Tuple[str, str]]) -> Optional[list]:
        text = str(text_node)
        nodes: list = []
        cursor = 0
        changed = False

        for found in URL_IN_TEXT.finditer(text):
            match = self.find_embed(found.group(0))
            if not match or match.key in seen:
                continue
            seen.add(match.key)
            if found.start() > cursor:
                nodes.append(NavigableString(text[cursor:found.start()]))
            nodes.append(self._fragment(match))
            cursor = found.end()
            changed = True

        if not changed:
            return None
        if cursor < len(text):
            nodes.append(NavigableString(text[cursor:]))
        return nodes

    def _skip_text(self, text_node: NavigableString) -> bool:
        for parent in text_node.parents:
            if parent.name in self.SKIP_TEXT_PARENTS:
                return True
            if parent.name == "div" and EMBED_CLASS in (parent.get("class") or []):
                return True
        return False

    @staticmethod
    def _inside_embed(tag: Tag) -> bool:
        for parent in tag.parents:
            if parent.name == "div" and EMBED_CLASS in (parent.get("class") or []):
                return True
        return False


_default_rewriter: Optional[EmbedRewriter] = None


def get_embed_rewriter() -> EmbedRewriter:
    """Shared rewriter configured from settings."""
    global _default_rewriter
    if _default_rewriter is None:
        from ..config.settings import get_settings
        embeds = get_settings().embeds
        _default_rewriter = EmbedRewriter(enabled=embeds.enabled, twitch_parent=embeds.twitch_parent)
    return _default_rewriter
