"""
Maifead Processing Module
=========================

Ingestion pipeline stages that run after parsing: deduplicating upsert,
read-time keyword filtering, retention, and batch refresh orchestration.
"""

from .dedup import ItemUpserter
from .filters import apply_filters, filter_feed, item_passes
from .orchestrator import RefreshOrchestrator
from .retention import RetentionSweeper

__all__ = [
    'ItemUpserter',
    'apply_filters',
    'filter_feed',
    'item_passes',
    'RefreshOrchestrator',
    'RetentionSweeper',
]
