"""
Maifead Custom Exceptions
=========================

Exception hierarchy for the ingestion engine with error codes, context
information, and user-facing messages.

Errors fall into four families:
- Source resolution errors: bad user input, surfaced verbatim, never retried
- Fetch errors: transient transport failures, left to the next refresh
- Parse errors: a whole document could not be read in its expected format
- Infrastructure errors: database and configuration problems
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Database errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_SCHEMA = "D002"
    DATABASE_CONSTRAINT = "D003"
    DATABASE_TRANSACTION = "D004"
    DATABASE_ERROR = "D006"

    # Source resolution errors (S001-S099)
    SOURCE_INVALID_URL = "S001"
    SOURCE_CHANNEL_NOT_FOUND = "S002"
    SOURCE_INVALID_REDDIT = "S003"
    SOURCE_INVALID_BLUESKY = "S004"
    SOURCE_NOT_FOUND = "S005"

    # Fetch errors (F001-F099)
    FEED_NETWORK_ERROR = "F001"
    FEED_FETCH_TIMEOUT = "F002"
    FEED_HTTP_ERROR = "F003"
    FEED_EMPTY_BODY = "F004"

    # Parse errors (P001-P099)
    FEED_PARSE_ERROR = "P001"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"
    VALIDATION_OUT_OF_RANGE = "V003"

    # Refresh orchestration errors (R001-R099)
    REFRESH_TIMEOUT = "R001"
    REFRESH_FAILED = "R002"


class MaifeadError(Exception):
    """Base exception for all Maifead errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize Maifead error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether a later attempt may succeed
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


class ConfigurationError(MaifeadError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.pop("user_message", f"Configuration error: {message}"),
            **kwargs,
        )


class DatabaseError(MaifeadError):
    """Database-related errors."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.DATABASE_CONNECTION),
            context=context,
            user_message=kwargs.pop("user_message", "Database operation failed"),
            recoverable=kwargs.pop("recoverable", True),
            **kwargs,
        )


class ValidationError(MaifeadError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.pop(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.pop("recoverable", False),
            **kwargs,
        )


# Source resolution errors


class SourceResolutionError(MaifeadError):
    """User input could not be turned into a fetchable source."""

    default_code = ErrorCode.SOURCE_INVALID_URL
    default_user_message = "Could not resolve source"

    def __init__(self, message: str, raw_input: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if raw_input is not None:
            context["raw_input"] = raw_input

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", self.default_code),
            context=context,
            user_message=kwargs.pop("user_message", self.default_user_message),
            recoverable=False,
            **kwargs,
        )


class InvalidSourceUrl(SourceResolutionError):
    """Input carries no usable URL or identifier."""

    default_code = ErrorCode.SOURCE_INVALID_URL
    default_user_message = (
        "Invalid URL. Please paste a feed URL, channel URL, or video URL."
    )


class ChannelNotFound(SourceResolutionError):
    """A YouTube page was fetched but no channel ID could be extracted."""

    default_code = ErrorCode.SOURCE_CHANNEL_NOT_FOUND
    default_user_message = "Could not find YouTube channel ID from this URL"


class InvalidRedditSource(SourceResolutionError):
    """Input matches neither a subreddit nor a Reddit user."""

    default_code = ErrorCode.SOURCE_INVALID_REDDIT
    default_user_message = (
        "Invalid Reddit source. Use a subreddit (r/name) or a user (u/name)."
    )


class InvalidBlueskyHandle(SourceResolutionError):
    """Input cannot be reduced to a Bluesky handle or DID."""

    default_code = ErrorCode.SOURCE_INVALID_BLUESKY
    default_user_message = "Invalid Bluesky handle or profile URL"


# Fetch errors


class FetchError(MaifeadError):
    """Remote retrieval of a feed document failed."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if feed_url:
            context["feed_url"] = feed_url
        self.feed_url = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.FEED_NETWORK_ERROR),
            context=context,
            user_message=kwargs.pop("user_message", f"Feed fetch failed: {message}"),
            recoverable=kwargs.pop("recoverable", True),
            **kwargs,
        )


class NetworkError(FetchError):
    """Connection, DNS, or timeout failure."""


class HttpError(FetchError):
    """Server answered with a non-2xx status."""

    def __init__(self, message: str, status: int, feed_url: Optional[str] = None, **kwargs):
        self.status = status
        context = kwargs.pop("context", {})
        context["status"] = status
        super().__init__(
            message,
            feed_url=feed_url,
            error_code=kwargs.pop("error_code", ErrorCode.FEED_HTTP_ERROR),
            context=context,
            **kwargs,
        )


class EmptyBodyError(FetchError):
    """Server answered successfully with an empty document."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            feed_url=feed_url,
            error_code=kwargs.pop("error_code", ErrorCode.FEED_EMPTY_BODY),
            **kwargs,
        )


class ParseError(MaifeadError):
    """A fetched document is not valid in its expected format."""

    def __init__(
        self,
        message: str,
        feed_url: Optional[str] = None,
        platform: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if feed_url:
            context["feed_url"] = feed_url
        if platform:
            context["platform"] = platform

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.FEED_PARSE_ERROR),
            context=context,
            user_message=kwargs.pop("user_message", f"Feed could not be parsed: {message}"),
            recoverable=kwargs.pop("recoverable", True),
            **kwargs,
        )


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> MaifeadError:
    """Convert generic exceptions to Maifead exceptions with proper logging.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        Maifead exception with proper categorization
    """
    context = context or {}
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__

    if isinstance(exception, MaifeadError):
        logger.error(f"Operation '{operation}' failed", extra=exception.to_dict())
        return exception

    if isinstance(exception, (ConnectionError, TimeoutError)):
        error = NetworkError(
            f"Network error during {operation}: {exception}",
            context=context,
            user_message="Network connection failed",
        )
    elif isinstance(exception, FileNotFoundError):
        error = ConfigurationError(
            f"Required file not found during {operation}: {exception}",
            error_code=ErrorCode.CONFIG_MISSING,
            context=context,
            user_message="Configuration file missing",
        )
    else:
        error = MaifeadError(
            message=f"Unexpected error during {operation}: {exception}",
            context=context,
            user_message="An unexpected error occurred",
            recoverable=True,
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error

