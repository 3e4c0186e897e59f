"""
Maifead Input Validators
========================

Validation utilities for user-supplied URLs, keyword lists, and text
fragments extracted from remote documents.
"""

import re
from urllib.parse import urlparse
from typing import Any, Iterable, List, Optional

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation utilities."""

    ALLOWED_SCHEMES = {'http', 'https'}

    @classmethod
    def validate_http_url(cls, url: str, field_name: str = "url") -> str:
        """Validate an absolute http(s) URL.

        The URL is returned trimmed but otherwise verbatim, since feed URLs
        are stored exactly as the user supplied them.

        Raises:
            ValidationError: If URL is missing, not http(s), or has no host
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name=field_name
            )

        url = url.strip()
        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {e}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name=field_name
            )

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                "URL scheme must be http or https",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name=field_name
            )

        if not parsed.hostname:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name=field_name
            )

        return url

    @classmethod
    def is_http_url(cls, url: Optional[str]) -> bool:
        """Check whether a string is an absolute http(s) URL."""
        try:
            cls.validate_http_url(url or "")
            return True
        except ValidationError:
            return False

    @classmethod
    def host_of(cls, url: str) -> Optional[str]:
        """Return the lowercase hostname without a leading ``www.``."""
        try:
            host = urlparse(url).hostname
        except ValueError:
            return None
        if not host:
            return None
        host = host.lower()
        return host[4:] if host.startswith("www.") else host


class KeywordValidator:
    """Keyword list normalization for source filters."""

    MAX_KEYWORD_LENGTH = 100

    @classmethod
    def normalize_keywords(cls, keywords: Optional[Iterable[str]]) -> List[str]:
        """Trim, lowercase, and de-duplicate keywords, preserving order.

        Empty entries and non-strings are skipped. Punctuation is kept so
        that terms like ``c++`` still match.
        """
        if keywords is None:
            return []

        if isinstance(keywords, str):
            keywords = keywords.split(",")

        normalized: List[str] = []
        for keyword in keywords:
            if not isinstance(keyword, str):
                continue

            keyword = re.sub(r'\s+', ' ', keyword).strip().lower()
            if not keyword:
                continue

            if len(keyword) > cls.MAX_KEYWORD_LENGTH:
                keyword = keyword[:cls.MAX_KEYWORD_LENGTH]

            if keyword not in normalized:
                normalized.append(keyword)

        return normalized


class ContentValidator:
    """Text sanitization for values extracted from remote documents."""

    MAX_TITLE_LENGTH = 1000
    EXCERPT_LENGTH = 200

    @classmethod
    def sanitize_text(cls, text: Any) -> str:
        """Remove control characters and collapse whitespace.

        Numbers are rendered as text; any other non-string value is empty.
        """
        if isinstance(text, bool) or not isinstance(text, (str, int, float)):
            return ""
        text = str(text)
        if not text:
            return ""
        text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)
        text = re.sub(r'\s+', ' ', text)
        return text.strip()

    @classmethod
    def clean_title(cls, title: Optional[str]) -> str:
        """Sanitize a title and cap its length."""
        title = cls.sanitize_text(title)
        if len(title) > cls.MAX_TITLE_LENGTH:
            title = title[:cls.MAX_TITLE_LENGTH].rstrip() + "..."
        return title

    @classmethod
    def make_excerpt(cls, text: Optional[str], length: int = EXCERPT_LENGTH) -> str:
        """First ``length`` characters of the text, with an ellipsis if cut."""
        text = cls.sanitize_text(text)
        if len(text) <= length:
            return text
        return text[:length].rstrip() + "..."

    @classmethod
    def truncate(cls, text: str, length: int) -> str:
        """Cut text at ``length`` characters on a word boundary when possible."""
        if len(text) <= length:
            return text
        cut = text[:length]
        space = cut.rfind(" ")
        if space > length // 2:
            cut = cut[:space]
        return cut.rstrip() + "..."
