"""Structured JSON log formatter and logging configuration.

The bridge runs unattended (container, systemd unit, Home Assistant
add-on), so logs default to one JSON object per line (NDJSON) with the
``service`` name and ``version`` attached for log aggregators.

httpx logs every request at INFO.  With a poll every minute per
location that drowns out everything else, so the HTTP client loggers
are capped at WARNING unless the root level is DEBUG.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import Any

from idiamant2mqtt._settings import LoggingSettings

_MEGABYTE = 1024 * 1024

_TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_NOISY_LOGGERS = ("httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects (NDJSON).

    Each record produces a JSON object with these fields:

    - ``timestamp`` — ISO 8601, always UTC
    - ``level`` — Python log level name
    - ``logger`` — dotted logger name
    - ``message`` — the formatted log message
    - ``service`` — application name for log correlation
    - ``version`` — application version (omitted when empty)
    - ``exception`` — formatted traceback (only when an exception
      is logged)
    - ``stack_info`` — stack trace (only when ``stack_info=True``)

    Args:
        service: Application name included in every log line.
        version: Application version string.  Omitted from
            output when empty.
    """

    def __init__(
        self,
        *,
        service: str = "",
        version: str = "",
    ) -> None:
        super().__init__()
        self._service = service
        self._version = version

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single-line JSON string.

        Tracebacks are escaped by ``json.dumps``, so each call produces
        exactly one line.
        """
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service,
        }

        if self._version:
            entry["version"] = self._version

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(entry, default=str)


def configure_logging(
    settings: LoggingSettings,
    *,
    service: str,
    version: str = "",
) -> None:
    """Configure the root logger from settings.

    Clears any existing handlers on the root logger, then installs a
    ``stderr`` stream handler and, when ``settings.file`` is set, a
    :class:`~logging.handlers.RotatingFileHandler` rotating at
    ``settings.max_file_size_mb``.

    Args:
        settings: Logging configuration (level, format, file).
        service: Application name passed to :class:`JsonFormatter`.
        version: Application version passed to :class:`JsonFormatter`.
    """
    root = logging.getLogger()

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    if settings.format == "json":
        formatter: logging.Formatter = JsonFormatter(service=service, version=version)
    else:
        formatter = logging.Formatter(_TEXT_FORMAT)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if settings.file is not None:
        file_handler = RotatingFileHandler(
            settings.file,
            maxBytes=settings.max_file_size_mb * _MEGABYTE,
            backupCount=settings.backup_count,
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.setLevel(settings.level)

    http_level = logging.DEBUG if settings.level == "DEBUG" else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(http_level)
