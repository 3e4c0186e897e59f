"""
Retention Sweeper
=================

Deletes items that fell out of their source's retention window. An item is
aged by its publication date, or by when it was first seen if the upstream
entry had no date. Saved items are never deleted, and a retention of zero
days keeps everything.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional

from ..database.models import Source, utc_now
from ..storage.item_repository import ItemRepository
from ..storage.source_repository import SourceRepository
from ..utils.exceptions import DatabaseError
from ..utils.logging import get_logger_for_component


@dataclass
class SweepSummary:
    """Outcome of a retention sweep over many sources."""
    sources_swept: int = 0
    items_deleted: int = 0
    per_source_errors: Dict[int, str] = field(default_factory=dict)


class RetentionSweeper:
    """Applies per-source retention windows."""

    def __init__(
        self,
        item_repository: ItemRepository,
        source_repository: Optional[SourceRepository] = None,
    ):
        self.items = item_repository
        self.sources = source_repository
        self.logger = get_logger_for_component("retention")

    @staticmethod
    def cutoff_for(source: Source, now: Optional[datetime] = None) -> Optional[datetime]:
        """Oldest date kept for a source, or None when it keeps forever."""
        if source.retention_days <= 0:
            return None
        return (now or utc_now()) - timedelta(days=source.retention_days)

    def sweep(self, source: Source, now: Optional[datetime] = None) -> int:
        """Delete a source's expired, unsaved items.

        Returns:
            Number of items deleted

        Raises:
            DatabaseError: If the delete fails
        """
        cutoff = self.cutoff_for(source, now)
        if cutoff is None:
            return 0

        deleted = self.items.delete_items_older_than(source.id, cutoff, exclude_saved=True)
        if deleted:
            self.logger.info(
                f"Retention removed {deleted} items older than "
                f"{source.retention_days} days from source {source.id}"
            )
        return deleted

    def sweep_all(self, owner_id: Optional[str] = None, now: Optional[datetime] = None) -> SweepSummary:
        """Sweep every source (of one owner, if given).

        A database failure on one source is recorded and the sweep moves on.
        """
        if self.sources is None:
            raise ValueError("sweep_all requires a source repository")

        summary = SweepSummary()
        now = now or utc_now()

        for source in self.sources.list_sources(owner_id):
            try:
                summary.items_deleted += self.sweep(source, now)
                summary.sources_swept += 1
            except DatabaseError as e:
                self.logger.error(f"Retention sweep failed for source {source.id}: {e}")
                summary.per_source_errors[source.id] = str(e)

        self.logger.info(
            f"Retention sweep complete: {summary.items_deleted} items removed "
            f"from {summary.sources_swept} sources"
        )
        return summary
