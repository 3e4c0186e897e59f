"""
Source Service
==============

Shared service for the source lifecycle used by the CLI and the scheduler.

Features:
- Resolving, verifying, and storing new sources
- Icon discovery at creation and for sources still missing one
- Validated updates of mutable source settings
- Manual refresh and deletion
"""

from typing import Any, Dict, Iterable, List, Optional

import pydantic

from ..config.settings import get_settings
from ..database.connection import DatabaseConnection
from ..database.models import ParsedFeed, Platform, ResolvedSource, ShortsFilter, Source
from ..ingestion.icons import IconResolver
from ..ingestion.resolvers import resolve_source
from ..processing.orchestrator import RefreshOrchestrator
from ..storage.source_repository import SourceRepository
from ..utils.exceptions import (
    DatabaseError,
    ErrorCode,
    InvalidBlueskyHandle,
    InvalidRedditSource,
    InvalidSourceUrl,
    MaifeadError,
    ValidationError,
)
from ..utils.logging import get_logger_for_component


_VERIFY_ERRORS = {
    Platform.RSS: (InvalidSourceUrl, "Invalid RSS feed URL"),
    Platform.YOUTUBE: (InvalidSourceUrl, "Invalid YouTube channel"),
    Platform.REDDIT: (InvalidRedditSource, "Subreddit or user could not be loaded"),
    Platform.BLUESKY: (InvalidBlueskyHandle, "Bluesky account or feed could not be loaded"),
}


class SourceService:
    """Source creation, update, refresh, and deletion."""

    def __init__(
        self,
        db_connection: DatabaseConnection,
        orchestrator: Optional[RefreshOrchestrator] = None,
        icon_resolver: Optional[IconResolver] = None,
    ):
        """Initialize source service.

        Args:
            db_connection: Database connection manager
            orchestrator: Refresh orchestrator (created on the same database if omitted)
            icon_resolver: Icon resolver (shares the orchestrator's fetcher if omitted)
        """
        self.db = db_connection
        self.settings = get_settings()
        self.orchestrator = orchestrator or RefreshOrchestrator(db_connection)
        self.icon_resolver = icon_resolver or IconResolver(self.orchestrator.fetcher)
        self.sources = SourceRepository(db_connection)
        self.logger = get_logger_for_component("source_service")

    async def add_source(
        self,
        owner_id: str,
        platform,
        raw_input: str,
        display_name: Optional[str] = None,
        reddit_source_type: Optional[str] = None,
        verify: bool = True,
        initial_fetch: bool = True,
        **options: Any,
    ) -> Source:
        """Resolve and store a new source.

        Args:
            owner_id: Owning user
            platform: Platform of the input
            raw_input: URL, handle, or name as typed by the user
            display_name: Explicit name; otherwise taken from the feed
            reddit_source_type: Treat a bare Reddit name as a user
            verify: Fetch and parse the feed once before storing
            initial_fetch: Schedule the first refresh in the background
            **options: Other Source settings (category, keywords, retention_days,
                fetch_interval_seconds, suppress_from_main_feed, reddit_min_score,
                youtube_shorts_filter)

        Returns:
            The stored Source

        Raises:
            SourceResolutionError: Input could not be resolved or verified
            ValidationError: Settings are invalid
            DatabaseError: Owner already follows the feed, or the insert failed
        """
        platform = Platform(platform)
        resolved = await resolve_source(
            platform,
            raw_input,
            fetcher=self.orchestrator.fetcher,
            reddit_source_type=reddit_source_type,
        )

        existing = self.sources.get_source_by_feed_url(owner_id, resolved.feed_url)
        if existing is not None:
            raise DatabaseError(
                f"Source already exists for owner {owner_id}: {resolved.feed_url}",
                error_code=ErrorCode.DATABASE_CONSTRAINT,
                context={"source_id": existing.id},
                user_message="You already follow this source",
                recoverable=False,
            )

        source = self._build_source(owner_id, resolved, display_name or resolved.display_name, options)

        parsed = await self._verify(source, raw_input) if verify else None
        feed_title = (parsed.title or "").strip() if parsed is not None else ""
        if feed_title and not display_name:
            source = source.model_copy(update={"display_name": feed_title[:255]})

        icon_url = await self.icon_resolver.resolve_icon(
            source, feed_image=parsed.image_url if parsed else None
        )
        if icon_url:
            source = source.model_copy(update={"icon_url": icon_url})

        stored = self.sources.create_source(source)
        self.logger.info(
            f"Added {platform.value} source {stored.id} '{stored.display_name}' for {owner_id}"
        )

        if initial_fetch:
            self.orchestrator.submit_initial_fetch(stored)
        return stored

    def _build_source(
        self,
        owner_id: str,
        resolved: ResolvedSource,
        display_name: str,
        options: Dict[str, Any],
    ) -> Source:
        data = {
            "owner_id": owner_id,
            "display_name": display_name,
            "feed_url": resolved.feed_url,
            "platform": resolved.platform,
            "fetch_interval_seconds": self.settings.fetch.default_fetch_interval_seconds,
            "retention_days": self.settings.retention.default_days,
        }
        data.update(resolved.identifiers)
        data.update({key: value for key, value in options.items() if value is not None})

        try:
            return Source(**data)
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Invalid source settings: {e}",
                field_name="source",
                user_message="Invalid source settings",
            ) from e

    async def _verify(self, source: Source, raw_input: str) -> ParsedFeed:
        """Fetch and parse the feed once; failure means the input is unusable."""
        try:
            document = await self.orchestrator.fetcher.fetch(source.feed_url)
            return self.orchestrator.parsers[source.platform].parse(document, source)
        except MaifeadError as e:
            error_class, user_message = _VERIFY_ERRORS[source.platform]
            raise error_class(
                f"Feed verification failed for {source.feed_url}: {e}",
                raw_input=raw_input,
                user_message=user_message,
            ) from e

    def get_source(self, source_id: int) -> Source:
        """Get a source or raise if it does not exist."""
        source = self.sources.get_source(source_id)
        if source is None:
            raise ValidationError(
                f"Source {source_id} not found",
                field_name="source_id",
                error_code=ErrorCode.SOURCE_NOT_FOUND,
                user_message="Source not found",
            )
        return source

    def list_sources(self, owner_id: Optional[str] = None) -> List[Source]:
        return self.sources.list_sources(owner_id)

    def update_source(self, source_id: int, **changes: Any) -> Source:
        """Validate and apply changes to mutable source settings.

        Raises:
            ValidationError: Unknown source or invalid values
        """
        current = self.get_source(source_id)
        if not changes:
            raise ValidationError("No updates provided", field_name="changes")

        try:
            updated = Source(**{**current.model_dump(), **changes})
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Invalid source settings: {e}",
                field_name="source",
                user_message="Invalid source settings",
            ) from e

        self.sources.update_source(
            source_id, **{key: getattr(updated, key) for key in changes}
        )
        return self.get_source(source_id)

    def set_keywords(
        self,
        source_id: int,
        whitelist: Optional[Iterable[str]] = None,
        blacklist: Optional[Iterable[str]] = None,
    ) -> Source:
        """Replace a source's keyword lists; None leaves a list unchanged."""
        changes: Dict[str, Any] = {}
        if whitelist is not None:
            changes["whitelist_keywords"] = list(whitelist)
        if blacklist is not None:
            changes["blacklist_keywords"] = list(blacklist)
        return self.update_source(source_id, **changes)

    def set_shorts_filter(self, source_id: int, shorts_filter) -> Source:
        return self.update_source(source_id, youtube_shorts_filter=ShortsFilter(shorts_filter))

    def delete_source(self, source_id: int) -> bool:
        """Delete a source and, through the cascade, all of its items."""
        return self.sources.delete_source(source_id)

    async def refresh_source(self, source_id: int) -> int:
        """Refresh one source now.

        Raises:
            FetchError, ParseError: The refresh failed
        """
        return await self.orchestrator.fetch_and_store_items(self.get_source(source_id))

    async def update_icons(self, owner_id: Optional[str] = None) -> int:
        """Resolve icons for sources that do not have one yet."""
        return await self.icon_resolver.update_missing_icons(self.sources, owner_id)

