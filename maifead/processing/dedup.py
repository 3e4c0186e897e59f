"""
Item Deduplication and Upsert
=============================

Turns normalized entries into stored items. Identity is the pair
(source_id, remote_id); an entry whose identity is already stored is
skipped, so existing rows, including their read/saved state, are never
modified by ingestion.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from ..database.models import Item, NormalizedEntry, Source, utc_now
from ..storage.item_repository import ItemRepository
from ..utils.logging import get_logger_for_component


@dataclass
class UpsertStats:
    """Statistics from one upsert pass."""
    total_entries: int
    new_items: int

    @property
    def existing_items(self) -> int:
        return self.total_entries - self.new_items

    @property
    def duplicate_rate(self) -> float:
        """Percentage of entries that were already stored."""
        if self.total_entries == 0:
            return 0.0
        return (self.existing_items / self.total_entries) * 100


class ItemUpserter:
    """Insert-if-absent persistence of parsed entries."""

    def __init__(self, item_repository: ItemRepository):
        self.items = item_repository
        self.logger = get_logger_for_component("dedup")
        self.last_stats: Optional[UpsertStats] = None

    def build_items(
        self,
        source: Source,
        entries: Iterable[NormalizedEntry],
        first_seen_at: Optional[datetime] = None,
    ) -> List[Item]:
        """Fresh unread, unsaved items sharing one first-seen timestamp."""
        first_seen_at = first_seen_at or utc_now()
        return [entry.to_item(source.id, first_seen_at) for entry in entries]

    def upsert(self, source: Source, entries: Iterable[NormalizedEntry]) -> int:
        """Store entries that are not yet known for the source.

        Entries repeated within one document collapse onto the first one.

        Args:
            source: Persisted source the entries belong to
            entries: Normalized parser output

        Returns:
            Number of newly inserted items
        """
        items = self.build_items(source, entries)
        if not items:
            self.last_stats = UpsertStats(total_entries=0, new_items=0)
            return 0

        new_items = self.items.insert_items_if_absent(items)
        self.last_stats = UpsertStats(total_entries=len(items), new_items=new_items)

        self.logger.debug(
            f"Upserted {len(items)} entries for source {source.id}: "
            f"{new_items} new, {self.last_stats.existing_items} already stored"
        )
        return new_items
