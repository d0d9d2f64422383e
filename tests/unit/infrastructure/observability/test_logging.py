"""Tests for structured logging."""

import json
import logging
import sys

from soundshelf.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CustomJsonFormatter,
    ScanIdFilter,
    configure_logging,
    get_scan_id,
    set_scan_id,
)


class TestScanId:
    """Test scan correlation ID functionality."""

    def test_set_and_get_scan_id(self):
        """Test setting and getting scan ID."""
        result = set_scan_id("scan-123")
        assert result == "scan-123"
        assert get_scan_id() == "scan-123"

    def test_set_scan_id_generates_one_when_none(self):
        """Test that setting None generates a short hex ID."""
        result = set_scan_id(None)
        assert len(result) == 12
        assert get_scan_id() == result

    def test_filter_attaches_scan_id(self):
        set_scan_id("abc")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        assert ScanIdFilter().filter(record) is True
        assert record.scan_id == "abc"


class TestFormatters:
    """Test the JSON and compact formatters."""

    def test_json_formatter_fields(self):
        set_scan_id("json-scan")
        formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
        record = logging.LogRecord(
            "soundshelf.test", logging.WARNING, __file__, 42, "hello %s", ("world",), None
        )
        ScanIdFilter().filter(record)

        data = json.loads(formatter.format(record))
        assert data["message"] == "hello world"
        assert data["level"] == "WARNING"
        assert data["logger"] == "soundshelf.test"
        assert data["line"] == 42
        assert data["scan_id"] == "json-scan"

    def test_compact_formatter_shows_chain_root_cause_first(self):
        try:
            try:
                raise OSError("disk gone")
            except OSError as e:
                raise RuntimeError("scan failed") from e
        except RuntimeError:
            exc_info = sys.exc_info()

        text = CompactExceptionFormatter().formatException(exc_info)
        lines = [line for line in text.splitlines() if line.startswith("╰─►")]
        assert lines == ["╰─► OSError: disk gone", "╰─► RuntimeError: scan failed"]


class TestLoggingConfiguration:
    """Test logging configuration."""

    def test_configure_logging_debug_level(self):
        """Test configuring logging with DEBUG level."""
        configure_logging(log_level="DEBUG", json_format=False, app_name="test-app")
        logger = logging.getLogger("test")
        assert logger.getEffectiveLevel() <= logging.DEBUG

    def test_configure_logging_installs_one_handler(self):
        configure_logging(log_level="INFO", json_format=True)
        configure_logging(log_level="INFO", json_format=True)
        root_logger = logging.getLogger()
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, CustomJsonFormatter)

    def test_noisy_loggers_are_quieted(self):
        configure_logging(log_level="DEBUG", json_format=False)
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert logging.getLogger("aiosqlite").level == logging.WARNING
