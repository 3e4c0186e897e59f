"""
Maifead - Multi-Platform Feed Aggregator
========================================

Ingestion engine that aggregates RSS/Atom feeds, YouTube channels, Reddit
subreddits and users, and Bluesky accounts into one normalized feed per user.

Main Components:
- Resolution: user input to canonical, machine-fetchable feed endpoints
- Ingestion: fetching, per-platform parsing, sanitizing, embed rewriting
- Processing: deduplicating upsert, keyword filters, retention, batch refresh
- Database: SQLite with connection pooling and schema management
- Configuration: environment variables with Pydantic validation
"""

__version__ = "1.0.0"
__author__ = "Maifead Development Team"
__description__ = "Multi-platform feed ingestion and normalization engine"

# Core imports for easy access
from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .database.models import (
    IngestionResult,
    Item,
    NormalizedEntry,
    Platform,
    RefreshSummary,
    ResolvedSource,
    Source,
)
from .ingestion.resolvers import resolve_source
from .processing.filters import apply_filters
from .processing.orchestrator import RefreshOrchestrator
from .processing.retention import RetentionSweeper
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import (
    ChannelNotFound,
    EmptyBodyError,
    HttpError,
    InvalidBlueskyHandle,
    InvalidRedditSource,
    InvalidSourceUrl,
    MaifeadError,
    NetworkError,
    ParseError,
)

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "resolve_source",
    "apply_filters",
    "RefreshOrchestrator",
    "RetentionSweeper",
    "Platform",
    "Source",
    "Item",
    "NormalizedEntry",
    "ResolvedSource",
    "IngestionResult",
    "RefreshSummary",
    "MaifeadError",
    "InvalidSourceUrl",
    "ChannelNotFound",
    "InvalidRedditSource",
    "InvalidBlueskyHandle",
    "NetworkError",
    "HttpError",
    "EmptyBodyError",
    "ParseError",
]
