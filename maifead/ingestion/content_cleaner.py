"""
Content Cleaner
===============

HTML sanitizing and text extraction for upstream entry content.

This module provides:
- Removal of dangerous elements and attributes from upstream HTML
- Plain-text extraction for searchable text and excerpts
- First-image discovery for entry thumbnails
- Escaping of plain-text posts into linkified HTML
"""

import re
import html
from typing import Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Comment
from bs4.element import CData, ProcessingInstruction, Doctype, Declaration

from ..utils.logging import get_logger_for_component
from ..utils.validators import ContentValidator


class ContentCleaner:
    """
    HTML sanitizer with text extraction.

    Upstream HTML keeps a whitelist of structural and media elements;
    dangerous elements are dropped with their content, unknown elements are
    unwrapped, and attributes are reduced to a per-element whitelist.
    """

    # HTML elements to completely remove (including content)
    DANGEROUS_ELEMENTS = {
        "script",
        "style",
        "iframe",
        "embed",
        "object",
        "applet",
        "form",
        "input",
        "button",
        "select",
        "textarea",
        "meta",
        "link",
        "base",
        "noscript",
        "canvas",
        "svg",
        "frame",
        "frameset",
    }

    # HTML elements that are safe to keep
    SAFE_ELEMENTS = {
        "p", "br", "hr", "div", "span",
        "h1", "h2", "h3", "h4", "h5", "h6",
        "strong", "b", "em", "i", "code", "pre", "sup", "sub", "del", "ins",
        "blockquote", "q", "cite",
        "ul", "ol", "li", "dl", "dt", "dd",
        "table", "tr", "td", "th", "thead", "tbody", "tfoot", "caption",
        "a", "img", "figure", "figcaption", "picture", "source",
        "video", "audio",
    }

    # Attributes to keep for specific elements
    SAFE_ATTRIBUTES = {
        "a": ["href", "title"],
        "img": ["src", "alt", "title", "width", "height"],
        "source": ["src", "srcset", "type"],
        "video": ["src", "poster", "controls", "width", "height"],
        "audio": ["src", "controls"],
        "blockquote": ["cite"],
        "q": ["cite"],
        "td": ["colspan", "rowspan"],
        "th": ["colspan", "rowspan"],
    }

    URL_ATTRIBUTES = {"href", "src", "poster", "cite"}

    WHITESPACE_PATTERN = re.compile(r"\s+", re.MULTILINE)
    URL_PATTERN = re.compile(r"https?://[^\s<>\"']+[^\s<>\"'.,;:!?)\]]")

    JAVASCRIPT_URL_PATTERN = re.compile(r"^\s*javascript:", re.IGNORECASE)
    DATA_URL_PATTERN = re.compile(r"^\s*data:", re.IGNORECASE)
    VBSCRIPT_URL_PATTERN = re.compile(r"^\s*vbscript:", re.IGNORECASE)

    def __init__(self):
        self.logger = get_logger_for_component("content_cleaner")
        self.parser = "html.parser"  # Built-in parser, no external deps

    def sanitize_html(self, html_content: Optional[str], base_url: Optional[str] = None) -> str:
        """Clean upstream HTML and return safe HTML.

        Args:
            html_content: Raw HTML content
            base_url: Base URL for resolving relative links

        Returns:
            Sanitized HTML (empty string for empty input)
        """
        if not html_content or not html_content.strip():
            return ""

        soup = BeautifulSoup(html_content, self.parser)

        self._remove_dangerous_elements(soup)
        self._remove_non_content_elements(soup)
        self._unwrap_unknown_elements(soup)
        self._clean_attributes(soup, base_url)

        cleaned = str(soup).strip()
        self.logger.debug(f"Sanitized HTML: {len(html_content)} -> {len(cleaned)} chars")
        return cleaned

    def extract_text(self, html_content: Optional[str]) -> str:
        """Extract whitespace-normalized text from HTML."""
        if not html_content or not html_content.strip():
            return ""

        try:
            soup = BeautifulSoup(html_content, self.parser)
            for element in soup(list(self.DANGEROUS_ELEMENTS)):
                element.decompose()
            text = soup.get_text(separator=" ", strip=True)
        except Exception as e:
            self.logger.warning(f"Failed to extract text, using fallback: {e}")
            text = self._extract_text_fallback(html_content)

        return ContentValidator.sanitize_text(text)

    def first_image(self, html_content: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
        """Return the src of the first usable <img>, resolved against base_url."""
        if not html_content or "<img" not in html_content.lower():
            return None

        soup = BeautifulSoup(html_content, self.parser)
        for img_tag in soup.find_all("img", src=True):
            src = img_tag.get("src", "").strip()
            if not src or self.DATA_URL_PATTERN.match(src):
                continue
            if base_url and not urlparse(src).netloc:
                src = urljoin(base_url, src)
            if src.startswith("//"):
                src = "https:" + src
            if urlparse(src).scheme in ("http", "https"):
                return src

        return None

    def text_to_html(self, text: Optional[str], linkify: bool = True) -> str:
        """Escape plain text into paragraphs, turning URLs into anchors."""
        if not text or not text.strip():
            return ""

        paragraphs = []
        for block in re.split(r"\n\s*\n", text.strip()):
            escaped = html.escape(block.strip())
            if linkify:
                escaped = self.URL_PATTERN.sub(self._anchor_for, escaped)
            paragraphs.append("<p>" + escaped.replace("\n", "<br>") + "</p>")

        return "".join(paragraphs)

    @staticmethod
    def _anchor_for(match: "re.Match") -> str:
        url = match.group(0)
        return f'<a href="{url}">{url}</a>'

    def _remove_dangerous_elements(self, soup: BeautifulSoup) -> None:
        for element in soup.find_all(list(self.DANGEROUS_ELEMENTS)):
            element.decompose()

    def _remove_non_content_elements(self, soup: BeautifulSoup) -> None:
        """Remove comments, CDATA, doctype, and processing instructions."""
        for element in soup.find_all(
            string=lambda text: isinstance(
                text, (Comment, CData, ProcessingInstruction, Doctype, Declaration)
            )
        ):
            element.extract()

    def _unwrap_unknown_elements(self, soup: BeautifulSoup) -> None:
        for element in soup.find_all(True):
            if element.name.lower() not in self.SAFE_ELEMENTS:
                element.unwrap()

    def _clean_attributes(self, soup: BeautifulSoup, base_url: Optional[str] = None) -> None:
        """Reduce attributes to the whitelist and neutralize unsafe URLs."""
        to_remove = []

        for element in soup.find_all(True):
            safe_attrs = self.SAFE_ATTRIBUTES.get(element.name.lower(), [])
            for attr_name in list(element.attrs):
                if attr_name.lower() not in safe_attrs:
                    del element[attr_name]

            for attr_name in self.URL_ATTRIBUTES.intersection(element.attrs):
                value = element.get(attr_name, "")
                if isinstance(value, list):
                    value = " ".join(value)
                value = value.strip()

                if self._is_unsafe_url(value):
                    if element.name == "img":
                        to_remove.append(element)
                        break
                    del element[attr_name]
                elif value.startswith("//"):
                    element[attr_name] = "https:" + value
                elif base_url and value and not urlparse(value).netloc:
                    element[attr_name] = urljoin(base_url, value)

            if element.name == "a" and element.get("href"):
                element["rel"] = "noopener noreferrer"
                element["target"] = "_blank"

        for element in to_remove:
            element.decompose()

    def _is_unsafe_url(self, value: str) -> bool:
        return bool(
            self.JAVASCRIPT_URL_PATTERN.match(value)
            or self.DATA_URL_PATTERN.match(value)
            or self.VBSCRIPT_URL_PATTERN.match(value)
        )

    def _extract_text_fallback(self, html_content: str) -> str:
        """Fallback text extraction using regex when BeautifulSoup fails."""
        content = re.sub(
            r"<(script|style)[^>]*>.*?</\1>",
            "",
            html_content,
            flags=re.IGNORECASE | re.DOTALL,
        )
        content = re.sub(r"<[^>]+>", " ", content)
        content = html.unescape(content)
        return self.WHITESPACE_PATTERN.sub(" ", content).strip()


_default_cleaner: Optional[ContentCleaner] = None


def get_content_cleaner() -> ContentCleaner:
    """Shared cleaner instance."""
    global _default_cleaner
    if _default_cleaner is None:
        _default_cleaner = ContentCleaner()
    return _default_cleaner
