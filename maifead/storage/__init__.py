"""
Maifead Storage Layer
=====================

Repository pattern implementations for data access abstraction.

This module provides:
- Source repository for source CRUD and refresh bookkeeping
- Item repository with insert-if-absent deduplication
"""

from .item_repository import ItemRepository
from .source_repository import SourceRepository

__all__ = [
    "ItemRepository",
    "SourceRepository",
]
