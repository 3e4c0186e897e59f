"""
Feed Reader
===========

Read-time assembly of an owner's feed. Stored items are never filtered at
ingestion, so keyword rules apply here, each item against its own source.

- main feed: enabled sources not marked ``suppress_from_main_feed``
- single source: that source only, suppressed or not; disabled yields nothing
"""

from typing import List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import Item, Source
from ..processing.filters import apply_filters, filter_feed
from ..storage.item_repository import ItemRepository
from ..storage.source_repository import SourceRepository
from ..utils.logging import get_logger_for_component


PAGE_SIZE = 200


class FeedReader:
    """Builds filtered, paginated item lists for an owner."""

    def __init__(self, db_connection: DatabaseConnection):
        self.sources = SourceRepository(db_connection)
        self.items = ItemRepository(db_connection)
        self.logger = get_logger_for_component("feed_reader")

    def main_feed_sources(self, owner_id: str) -> List[Source]:
        return [
            source for source in self.sources.list_sources(owner_id, enabled_only=True)
            if not source.suppress_from_main_feed
        ]

    def read_feed(
        self,
        owner_id: str,
        source_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
        unread_only: bool = False,
        saved_only: bool = False,
    ) -> List[Item]:
        """Filtered items newest first.

        Args:
            owner_id: Owner whose feed is read
            source_id: Read a single source instead of the main feed
            limit: Maximum number of items returned
            offset: Number of filtered items to skip
            unread_only: Only unread items
            saved_only: Only saved items

        Returns:
            Items passing their source's keyword rules
        """
        if source_id is not None:
            source = self.sources.get_source(source_id)
            if source is None or source.owner_id != owner_id or not source.is_enabled:
                return []
            sources = [source]
        else:
            sources = self.main_feed_sources(owner_id)

        if not sources:
            return []

        source_ids = [source.id for source in sources]
        wanted = offset + limit
        passed: List[Item] = []
        scanned = 0

        while len(passed) < wanted:
            page = self.items.list_items(
                source_ids,
                limit=PAGE_SIZE,
                offset=scanned,
                unread_only=unread_only,
                saved_only=saved_only,
            )
            if not page:
                break
            scanned += len(page)
            if len(sources) == 1:
                passed.extend(apply_filters(page, sources[0]))
            else:
                passed.extend(filter_feed(page, sources))

        self.logger.debug(
            f"Read {len(passed[offset:wanted])} items for {owner_id} "
            f"after scanning {scanned}"
        )
        return passed[offset:wanted]
