"""Unit tests for idiamant2mqtt._logging — JSON formatter and config.

Test Techniques Used:
    - Specification-based Testing: JsonFormatter output schema
    - State Inspection: Root logger handler/level after configure
    - Fixture Isolation: Save/restore root logger state
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from idiamant2mqtt._logging import JsonFormatter, configure_logging
from idiamant2mqtt._settings import LoggingSettings


@pytest.fixture
def _restore_root_logger() -> Iterator[None]:
    """Save and restore root logger handlers and levels.

    Ensures tests that call ``configure_logging()`` don't leak
    state across subsequent tests.
    """
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    http_levels = {
        name: logging.getLogger(name).level for name in ("httpx", "httpcore")
    }
    yield
    for h in root.handlers:
        if h not in original_handlers:
            h.close()
    root.handlers = original_handlers
    root.setLevel(original_level)
    for name, level in http_levels.items():
        logging.getLogger(name).setLevel(level)


def _make_record(
    message: str = "hello",
    level: int = logging.INFO,
) -> logging.LogRecord:
    return logging.LogRecord(
        name="idiamant2mqtt.test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )


class TestJsonFormatter:
    """Tests for JsonFormatter output schema.

    Technique: Specification-based Testing.
    """

    def test_has_required_fields(self) -> None:
        """Output is JSON carrying the five mandatory keys."""
        fmt = JsonFormatter(service="idiamant2mqtt")
        result = json.loads(fmt.format(_make_record()))
        assert {"timestamp", "level", "logger", "message", "service"} <= set(
            result,
        )
        assert result["service"] == "idiamant2mqtt"
        assert result["logger"] == "idiamant2mqtt.test"

    def test_timestamp_is_utc_iso8601(self) -> None:
        """Timestamp is UTC ISO 8601 format."""
        fmt = JsonFormatter(service="svc")
        result = json.loads(fmt.format(_make_record()))
        assert datetime.fromisoformat(result["timestamp"]).tzinfo == UTC

    def test_version_only_when_set(self) -> None:
        """Version appears when non-empty and is omitted otherwise."""
        with_version = JsonFormatter(service="svc", version="1.2.3")
        without = JsonFormatter(service="svc")
        assert json.loads(with_version.format(_make_record()))["version"] == "1.2.3"
        assert "version" not in json.loads(without.format(_make_record()))

    def test_exception_is_single_line(self) -> None:
        """Tracebacks are embedded without breaking NDJSON framing."""
        fmt = JsonFormatter(service="svc")
        record = _make_record()
        try:
            raise ValueError("boom")
        except ValueError as exc:
            record.exc_info = (ValueError, exc, exc.__traceback__)
        output = fmt.format(record)
        assert "\n" not in output
        assert "ValueError" in json.loads(output)["exception"]

    def test_stack_info_included_when_present(self) -> None:
        """stack_info included when set on record."""
        fmt = JsonFormatter(service="svc")
        record = _make_record()
        record.stack_info = "Stack trace here"
        result = json.loads(fmt.format(record))
        assert "Stack trace" in result["stack_info"]


@pytest.mark.usefixtures("_restore_root_logger")
class TestConfigureLogging:
    """Tests for configure_logging() root logger setup.

    Technique: State Inspection.
    """

    def test_json_mode_sets_json_formatter(self) -> None:
        """JSON format installs JsonFormatter on the stream handler."""
        configure_logging(LoggingSettings(format="json"), service="test")
        root = logging.getLogger()
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_text_mode_sets_standard_formatter(self) -> None:
        """Text format installs a plain Formatter."""
        configure_logging(LoggingSettings(format="text"), service="test")
        formatter = logging.getLogger().handlers[0].formatter
        assert isinstance(formatter, logging.Formatter)
        assert not isinstance(formatter, JsonFormatter)

    def test_sets_root_logger_level(self) -> None:
        """Root logger level matches settings.level."""
        configure_logging(LoggingSettings(level="WARNING"), service="test")
        assert logging.getLogger().level == logging.WARNING

    def test_clears_existing_handlers(self) -> None:
        """Existing handlers are removed before adding."""
        root = logging.getLogger()
        dummy = logging.StreamHandler()
        root.addHandler(dummy)

        configure_logging(LoggingSettings(), service="test")

        assert dummy not in root.handlers
        assert len(root.handlers) == 1

    def test_file_handler_added_when_file_set(self, tmp_path: Path) -> None:
        """RotatingFileHandler honours size and backup count."""
        settings = LoggingSettings(
            file=str(tmp_path / "bridge.log"),
            max_file_size_mb=2,
            backup_count=5,
        )
        configure_logging(settings, service="test")

        rotating = [
            h
            for h in logging.getLogger().handlers
            if isinstance(h, RotatingFileHandler)
        ]
        assert len(rotating) == 1
        assert rotating[0].maxBytes == 2 * 1024 * 1024
        assert rotating[0].backupCount == 5

    def test_http_loggers_capped_at_warning(self) -> None:
        """httpx request lines are hidden at INFO."""
        configure_logging(LoggingSettings(level="INFO"), service="test")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_http_loggers_follow_debug(self) -> None:
        """At DEBUG the HTTP client loggers are let through."""
        configure_logging(LoggingSettings(level="DEBUG"), service="test")
        assert logging.getLogger("httpx").level == logging.DEBUG
