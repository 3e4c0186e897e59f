"""
Batch Refresh Orchestrator
==========================

Drives Fetch -> Parse -> Upsert for one source or a batch of sources.

- One source is never refreshed twice at the same time (per-source lock).
- A batch runs at most ``fetch.max_concurrent`` sources at once.
- A batch is bounded by ``fetch.batch_timeout_seconds``; sources still
  running at the deadline are cancelled and reported as failed.
- A failing source never aborts the batch; its error is recorded on the
  source and in the RefreshSummary.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Iterable, List, Optional, Set

from ..config.settings import get_settings
from ..database.connection import DatabaseConnection, get_db_manager
from ..database.models import IngestionResult, RefreshSummary, Source, utc_now
from ..ingestion.fetcher import RemoteFetcher
from ..ingestion.parsers import FeedParser, build_parsers
from ..storage.item_repository import ItemRepository
from ..storage.source_repository import SourceRepository
from ..utils.exceptions import DatabaseError, ErrorCode, MaifeadError, handle_exception
from ..utils.logging import PerformanceLogger, get_logger_for_component
from .dedup import ItemUpserter


class RefreshOrchestrator:
    """Concurrent, failure-isolated source refreshing."""

    def __init__(
        self,
        db_connection: Optional[DatabaseConnection] = None,
        fetcher: Optional[RemoteFetcher] = None,
        parsers: Optional[Dict] = None,
        max_concurrent: Optional[int] = None,
        batch_timeout: Optional[float] = None,
    ):
        """Initialize orchestrator.

        Args:
            db_connection: Database connection manager (default global manager)
            fetcher: Remote fetcher (default from config)
            parsers: Parser registry keyed by platform (default registry)
            max_concurrent: Concurrent sources per batch (default from config)
            batch_timeout: Seconds allowed per batch (default from config)
        """
        self.settings = get_settings()
        self.db = db_connection or get_db_manager()
        self.fetcher = fetcher or RemoteFetcher()
        self.parsers: Dict = parsers or build_parsers()
        self.max_concurrent = max_concurrent or self.settings.fetch.max_concurrent
        self.batch_timeout = batch_timeout or self.settings.fetch.batch_timeout_seconds

        self.sources = SourceRepository(self.db)
        self.items = ItemRepository(self.db)
        self.upserter = ItemUpserter(self.items)
        self.logger = get_logger_for_component("orchestrator")

        self._locks: Dict[int, asyncio.Lock] = {}
        self._lock_users: Dict[int, int] = {}
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
        return self._semaphore

    @asynccontextmanager
    async def _source_lock(self, source_id: int) -> AsyncIterator[None]:
        """Hold the per-source lock; it is forgotten once nobody holds or awaits it."""
        lock = self._locks.get(source_id)
        if lock is None:
            lock = self._locks[source_id] = asyncio.Lock()
        self._lock_users[source_id] = self._lock_users.get(source_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[source_id] -= 1
            if not self._lock_users[source_id]:
                del self._lock_users[source_id]
                del self._locks[source_id]

    def _record_error(self, source_id: int, message: str) -> None:
        try:
            self.sources.record_fetch(source_id, error=message)
        except DatabaseError as e:
            self.logger.error(f"Could not record error for source {source_id}: {e}")

    def _parser_for(self, source: Source) -> FeedParser:
        return self.parsers[source.platform]

    async def fetch_and_store_items(self, source: Source) -> int:
        """Refresh one source.

        On success ``last_fetched_at`` is stamped and ``last_error`` cleared;
        on failure the error is recorded on the source and re-raised.

        Returns:
            Number of new items stored

        Raises:
            NetworkError, HttpError, EmptyBodyError: Transport failures
            ParseError: The document could not be parsed
            DatabaseError: Items could not be stored
            MaifeadError: Any other failure, wrapped with its original message
        """
        logger = get_logger_for_component(
            "orchestrator", source_id=source.id, platform=source.platform.value
        )

        async with self._source_lock(source.id):
            try:
                with PerformanceLogger(logger, f"refresh of source {source.id}"):
                    document = await self.fetcher.fetch(source.feed_url)
                    parsed = self._parser_for(source).parse(document, source)
                    new_items = self.upserter.upsert(source, parsed.entries)
            except MaifeadError as e:
                self._record_error(source.id, str(e))
                raise
            except Exception as e:
                wrapped = handle_exception(
                    e, logger, "refresh source", {"source_id": source.id}
                )
                self._record_error(source.id, str(wrapped))
                raise wrapped from e

            self.sources.record_fetch(source.id, fetched_at=utc_now())

        logger.info(
            f"Source {source.id} refreshed: {new_items} new of {len(parsed.entries)} entries"
            + (f", {parsed.filtered_entries} filtered" if parsed.filtered_entries else "")
        )
        return new_items

    async def _refresh_one(self, source: Source) -> IngestionResult:
        """Refresh under the batch pool, converting every failure to a result."""
        started = utc_now()
        async with self.semaphore:
            try:
                new_items = await self.fetch_and_store_items(source)
                error = None
            except MaifeadError as e:
                self.logger.warning(f"Refresh of source {source.id} failed: {e}")
                new_items, error = 0, str(e)

        return IngestionResult(
            source_id=source.id,
            new_item_count=new_items,
            error=error,
            duration_seconds=(utc_now() - started).total_seconds(),
        )

    async def refresh_all(self, sources: Iterable[Source], timeout: Optional[float] = None) -> RefreshSummary:
        """Refresh a batch of sources concurrently.

        Never raises for per-source failures; they are aggregated in the
        returned summary.

        Args:
            sources: Sources to refresh
            timeout: Seconds allowed for the whole batch (default from config)

        Returns:
            RefreshSummary with per-source outcomes
        """
        sources = list(sources)
        summary = RefreshSummary()
        if not sources:
            return summary

        timeout = timeout or self.batch_timeout
        self.logger.info(f"Starting refresh of {len(sources)} sources")

        async with self.fetcher.shared_session():
            tasks = {
                asyncio.ensure_future(self._refresh_one(source)): source
                for source in sources
            }
            done, pending = await asyncio.wait(tasks, timeout=timeout)

            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        for task, source in tasks.items():
            if task in pending:
                summary.timed_out = True
                message = f"[{ErrorCode.REFRESH_TIMEOUT.value}] Batch refresh timed out after {timeout}s"
                self._record_error(source.id, message)
                summary.add(IngestionResult(source_id=source.id, error=message))
            else:
                summary.add(task.result())

        self.logger.info(
            f"Refresh complete: {summary.sources_refreshed}/{len(sources)} sources, "
            f"{summary.total_new_items} new items, {summary.sources_failed} failed"
        )
        return summary

    async def refresh_user(self, owner_id: str, timeout: Optional[float] = None) -> RefreshSummary:
        """Refresh every enabled source of one owner."""
        sources = self.sources.list_sources(owner_id, enabled_only=True)
        return await self.refresh_all(sources, timeout)

    def due_sources(self, now: Optional[datetime] = None) -> List[Source]:
        """Enabled sources whose refresh interval has elapsed."""
        now = now or utc_now()
        return [
            source for source in self.sources.list_sources(enabled_only=True)
            if source.is_due(now)
        ]

    async def refresh_due_sources(self, now: Optional[datetime] = None) -> RefreshSummary:
        """Refresh every source that is due."""
        due = self.due_sources(now)
        if not due:
            self.logger.debug("No sources due for refresh")
        return await self.refresh_all(due)

    def submit_initial_fetch(self, source: Source) -> asyncio.Task:
        """Schedule a first refresh of a new source without awaiting it.

        The task shares the batch pool; its outcome is only logged.
        """
        task = asyncio.ensure_future(self._refresh_one(source))
        self._pending.add(task)
        task.add_done_callback(self._initial_fetch_done)
        return task

    def _initial_fetch_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            self.logger.warning("Initial fetch cancelled")
            return

        result = task.result()
        if result.success:
            self.logger.info(
                f"Initial fetch of source {result.source_id} stored "
                f"{result.new_item_count} items"
            )
        else:
            self.logger.error(
                f"Initial fetch of source {result.source_id} failed: {result.error}",
                extra={"source_id": result.source_id},
            )

    async def drain(self) -> None:
        """Wait for every submitted initial fetch to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
