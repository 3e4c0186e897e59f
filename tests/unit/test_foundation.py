"""
Foundation Tests
================

Tests for configuration, exceptions, validators, and logging.
"""

import json
import logging

import pytest

from maifead.config.settings import MaifeadSettings, FetchSettings, IconSettings, get_settings
from maifead.utils.exceptions import (
    ChannelNotFound,
    ConfigurationError,
    DatabaseError,
    EmptyBodyError,
    ErrorCode,
    HttpError,
    InvalidBlueskyHandle,
    InvalidRedditSource,
    InvalidSourceUrl,
    MaifeadError,
    NetworkError,
    ParseError,
    SourceResolutionError,
    handle_exception,
)
from maifead.utils.logging import (
    PerformanceLogger,
    StructuredFormatter,
    get_logger_for_component,
    setup_logger,
)
from maifead.utils.validators import ContentValidator, KeywordValidator, URLValidator


class TestSettings:
    """Test configuration loading and validation."""

    def test_defaults(self):
        """Test settings defaults without environment overrides."""
        settings = MaifeadSettings(_env_file=None)

        assert settings.fetch.timeout_seconds == 10.0
        assert settings.fetch.max_concurrent == 5
        assert settings.retention.default_days == 30
        assert settings.embeds.enabled is True
        assert "{host}" in settings.icons.favicon_service_url

    def test_environment_overrides(self, monkeypatch):
        """Test nested settings read from MAIFEAD_ variables."""
        monkeypatch.setenv("MAIFEAD_FETCH__MAX_CONCURRENT", "9")
        monkeypatch.setenv("MAIFEAD_RETENTION__DEFAULT_DAYS", "7")

        settings = MaifeadSettings(_env_file=None)

        assert settings.fetch.max_concurrent == 9
        assert settings.retention.default_days == 7

    def test_test_environment_paths(self):
        """Test the test suite runs against temporary paths."""
        settings = get_settings()

        assert "maifead_tests_" in settings.database.path
        assert settings.debug is True
        assert settings.get_effective_log_level() == "DEBUG"

    def test_blank_user_agent_rejected(self):
        """Test user agent validation."""
        with pytest.raises(ValueError):
            FetchSettings(user_agent="   ")

    def test_favicon_template_requires_host(self):
        """Test favicon template validation."""
        with pytest.raises(ValueError):
            IconSettings(favicon_service_url="https://icons.example.com/favicon.ico")

    def test_timeout_must_fit_in_batch(self, tmp_path):
        """Test cross-field validation of fetch timeouts."""
        settings = MaifeadSettings(
            _env_file=None,
            fetch=FetchSettings(timeout_seconds=60, batch_timeout_seconds=30),
            database={"path": str(tmp_path / "db" / "maifead.db")},
            logging={"file_path": str(tmp_path / "logs" / "maifead.log")},
        )

        with pytest.raises(ConfigurationError) as exc_info:
            settings.validate_configuration()

        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID
        assert (tmp_path / "db").is_dir()


class TestExceptions:
    """Test the exception hierarchy."""

    def test_error_string_carries_code(self):
        """Test str() includes the error code."""
        error = ParseError("bad document", feed_url="https://example.com/feed")

        assert str(error) == "[P001] bad document"
        assert error.context["feed_url"] == "https://example.com/feed"

    def test_resolution_errors(self):
        """Test resolution errors are permanent and user-facing."""
        cases = [
            (InvalidSourceUrl, ErrorCode.SOURCE_INVALID_URL),
            (ChannelNotFound, ErrorCode.SOURCE_CHANNEL_NOT_FOUND),
            (InvalidRedditSource, ErrorCode.SOURCE_INVALID_REDDIT),
            (InvalidBlueskyHandle, ErrorCode.SOURCE_INVALID_BLUESKY),
        ]
        for error_class, code in cases:
            error = error_class("technical detail", raw_input="xyz")
            assert isinstance(error, SourceResolutionError)
            assert error.error_code == code
            assert error.recoverable is False
            assert error.context["raw_input"] == "xyz"
            assert error.user_message != "technical detail"

    def test_fetch_errors(self):
        """Test fetch error classification."""
        http_error = HttpError("HTTP 404", status=404, feed_url="https://example.com", recoverable=False)
        server_error = HttpError("HTTP 503", status=503)
        empty = EmptyBodyError("empty")
        network = NetworkError("down")

        assert http_error.status == 404
        assert http_error.error_code == ErrorCode.FEED_HTTP_ERROR
        assert http_error.recoverable is False
        assert server_error.recoverable is True
        assert empty.error_code == ErrorCode.FEED_EMPTY_BODY
        assert network.error_code == ErrorCode.FEED_NETWORK_ERROR
        assert network.recoverable is True

    def test_to_dict(self):
        """Test serialization for structured logs."""
        error = DatabaseError("locked", query="SELECT 1", error_code=ErrorCode.DATABASE_ERROR)
        data = error.to_dict()

        assert data["error_type"] == "DatabaseError"
        assert data["error_code"] == "D006"
        assert data["context"]["query"] == "SELECT 1"

    def test_handle_exception_wraps_generic_errors(self):
        """Test generic exceptions become Maifead errors."""
        logger = logging.getLogger("maifead.test")

        network = handle_exception(ConnectionError("reset"), logger, "fetch")
        generic = handle_exception(KeyError("x"), logger, "parse")
        own = ParseError("bad")

        assert isinstance(network, NetworkError)
        assert isinstance(generic, MaifeadError)
        assert generic.context["original_exception_type"] == "KeyError"
        assert handle_exception(own, logger, "parse") is own

    def test_user_message(self):
        assert InvalidRedditSource("x").user_message.startswith("Invalid Reddit source")
        wrapped = handle_exception(RuntimeError("boom"), logging.getLogger("maifead.test"), "refresh")
        assert "unexpected" in wrapped.user_message


class TestValidators:
    """Test input validators."""

    def test_http_url_validation(self):
        """Test http(s) URL checks."""
        assert URLValidator.validate_http_url("  https://example.com/feed  ") == "https://example.com/feed"
        assert URLValidator.is_http_url("http://example.com")
        assert not URLValidator.is_http_url("ftp://example.com/feed")
        assert not URLValidator.is_http_url("not a url")
        assert not URLValidator.is_http_url(None)

    def test_host_of(self):
        assert URLValidator.host_of("https://WWW.Example.com/feed") == "example.com"
        assert URLValidator.host_of("nonsense") is None

    def test_keyword_normalization(self):
        """Test keywords are trimmed, lowercased, and de-duplicated."""
        keywords = KeywordValidator.normalize_keywords(["  Rust ", "rust", "C++", "", 42, "machine   learning"])

        assert keywords == ["rust", "c++", "machine learning"]
        assert KeywordValidator.normalize_keywords("python, Go") == ["python", "go"]
        assert KeywordValidator.normalize_keywords(None) == []

    def test_text_helpers(self):
        """Test text sanitizing, excerpts, and truncation."""
        assert ContentValidator.sanitize_text("a\x00b\n\n c") == "ab c"
        assert ContentValidator.make_excerpt("x" * 300).endswith("...")
        assert len(ContentValidator.make_excerpt("x" * 300)) == 203
        assert ContentValidator.truncate("hello wonderful world", 18) == "hello wonderful..."
        assert ContentValidator.truncate("short", 12) == "short"

    def test_sanitize_text_coerces_non_strings(self):
        """Test upstream values of the wrong JSON type never raise."""
        assert ContentValidator.sanitize_text(12345) == "12345"
        assert ContentValidator.sanitize_text(2.5) == "2.5"
        assert ContentValidator.sanitize_text(None) == ""
        assert ContentValidator.sanitize_text(True) == ""
        assert ContentValidator.sanitize_text(["a"]) == ""
        assert ContentValidator.sanitize_text({"text": "a"}) == ""
        assert ContentValidator.clean_title(12345) == "12345"


class TestLogging:
    """Test logging setup."""

    def test_structured_formatter_includes_context(self):
        """Test JSON records carry adapter context."""
        record = logging.LogRecord("maifead.test", logging.INFO, __file__, 1, "hello", None, None)
        record.source_id = 7

        data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "hello"
        assert data["extra"]["source_id"] == 7

    def test_component_logger_context(self):
        """Test component loggers live under the maifead namespace."""
        adapter = get_logger_for_component("orchestrator", source_id=3, platform="rss")

        assert adapter.logger.name == "maifead.orchestrator"
        assert adapter.extra == {"component": "orchestrator", "source_id": 3, "platform": "rss"}

    def test_setup_logger_writes_json_file(self, tmp_path):
        """Test file handler output is JSON."""
        log_file = tmp_path / "test.log"
        logger = setup_logger("maifead_file_test", level="INFO", log_file=str(log_file), console=False)

        logger.info("written")
        for handler in logger.handlers:
            handler.flush()

        line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
        assert json.loads(line)["message"] == "written"

    def test_performance_logger_records_duration(self):
        """Test PerformanceLogger measures the block."""
        logger = logging.getLogger("maifead.perf_test")

        with PerformanceLogger(logger, "operation") as perf:
            pass

        assert perf.duration is not None
        assert perf.duration >= 0
