"""
Remote Fetcher
==============

HTTP retrieval of feed documents and web pages with a bounded timeout,
an identifying User-Agent, and failure classification:

- NetworkError: connection, DNS, TLS, or timeout failure
- HttpError: the server answered with a non-2xx status
- EmptyBodyError: the server answered successfully with nothing

There are no retries; a failed fetch is left for the next refresh.
"""

import asyncio
import json
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
import certifi

from ..config.settings import get_settings
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import (
    EmptyBodyError,
    ErrorCode,
    HttpError,
    NetworkError,
    ParseError,
)


DEFAULT_ACCEPT = (
    "application/rss+xml, application/atom+xml, application/xml, "
    "application/json, text/xml, text/html;q=0.9, */*;q=0.8"
)


@dataclass
class FetchedDocument:
    """Raw bytes of a successful fetch plus response metadata."""

    url: str
    status: int
    content: bytes
    headers: Dict[str, str] = field(default_factory=dict)
    content_type: str = ""

    @property
    def charset(self) -> str:
        raw = self.headers.get("Content-Type") or self.headers.get("content-type") or ""
        for part in raw.split(";")[1:]:
            key, _, value = part.strip().partition("=")
            if key.lower() == "charset" and value:
                return value.strip('"\'')
        return "utf-8"

    @property
    def text(self) -> str:
        """Body decoded with the declared charset, replacing bad bytes."""
        try:
            return self.content.decode(self.charset, errors="replace")
        except LookupError:
            return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Body parsed as JSON.

        Raises:
            ParseError: If the body is not valid JSON
        """
        try:
            return json.loads(self.text)
        except ValueError as e:
            raise ParseError(
                f"Invalid JSON document: {e}", feed_url=self.url
            ) from e

    @property
    def looks_like_json(self) -> bool:
        if "json" in self.content_type:
            return True
        return self.content.lstrip()[:1] in (b"{", b"[")


class RemoteFetcher:
    """Async fetcher sharing one aiohttp session per batch."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        max_connections: Optional[int] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize fetcher.

        Args:
            timeout: Per-request timeout in seconds (default from config)
            user_agent: User-Agent header (default from config)
            max_connections: Connection pool size (default from config)
            session: Externally managed session to use instead of creating one
        """
        settings = get_settings()
        self.timeout = timeout or settings.fetch.timeout_seconds
        self.user_agent = user_agent or settings.fetch.user_agent
        self.max_connections = max_connections or settings.fetch.max_concurrent * 2
        self.logger = get_logger_for_component("fetcher")

        self.ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._session = session
        self._owns_session = session is None
        self._session_users = 0

    def _create_session(self) -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit=self.max_connections,
            limit_per_host=5,
            enable_cleanup_closed=True,
        )
        headers = {
            "User-Agent": self.user_agent,
            "Accept": DEFAULT_ACCEPT,
            "Accept-Encoding": "gzip, deflate",
        }
        return aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers=headers,
        )

    @asynccontextmanager
    async def shared_session(self) -> AsyncIterator["RemoteFetcher"]:
        """Reuse one session for every fetch made inside the block.

        Blocks may overlap; the session is closed when the last user of it
        leaves. An injected session is never closed here.

        Usage:
            async with fetcher.shared_session():
                await fetcher.fetch(url_a)
                await fetcher.fetch(url_b)
        """
        if self._session is None:
            self._session = self._create_session()
        self._session_users += 1
        try:
            yield self
        finally:
            await self._release_shared_session()

    async def _release_shared_session(self) -> None:
        self._session_users -= 1
        if self._session_users > 0 or not self._owns_session or self._session is None:
            return
        session, self._session = self._session, None
        await session.close()

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            self._session_users += 1
            try:
                yield self._session
            finally:
                await self._release_shared_session()
            return

        session = self._create_session()
        try:
            yield session
        finally:
            await session.close()

    async def fetch(self, url: str, accept: Optional[str] = None) -> FetchedDocument:
        """Fetch a URL.

        Args:
            url: Absolute http(s) URL
            accept: Optional Accept header override

        Returns:
            FetchedDocument with the response body

        Raises:
            NetworkError: On connection failure or timeout
            HttpError: On a non-2xx response
            EmptyBodyError: On an empty response body
        """
        headers = {"Accept": accept} if accept else None
        self.logger.debug(f"Fetching {url}")

        try:
            async with self._session_scope() as session:
                async with session.get(url, headers=headers) as response:
                    status = response.status
                    if not 200 <= status < 300:
                        reason = getattr(response, "reason", None) or ""
                        raise HttpError(
                            f"HTTP {status} {reason}".strip() + f" for {url}",
                            status=status,
                            feed_url=url,
                            recoverable=status >= 500 or status == 429,
                        )
                    body = await response.read()
                    response_headers = dict(response.headers)

        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Request timeout after {self.timeout}s for {url}",
                feed_url=url,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            ) from e
        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error for {url}: {e}", feed_url=url
            ) from e

        if not body or not body.strip():
            raise EmptyBodyError(f"Empty response body from {url}", feed_url=url)

        content_type = (
            response_headers.get("Content-Type")
            or response_headers.get("content-type")
            or ""
        ).split(";")[0].strip().lower()

        return FetchedDocument(
            url=url,
            status=status,
            content=body,
            headers=response_headers,
            content_type=content_type,
        )

    async def fetch_json(self, url: str) -> Any:
        """Fetch a URL and decode its body as JSON."""
        document = await self.fetch(url, accept="application/json")
        return document.json()

    async def fetch_text(self, url: str) -> str:
        """Fetch a URL and decode its body as text."""
        document = await self.fetch(url)
        return document.text
