"""
Maifead Services
================

Shared service layer for business logic used across different interfaces
(CLI, scheduler).
"""

from .feed_reader import FeedReader
from .source_service import SourceService

__all__ = [
    'FeedReader',
    'SourceService',
]
