"""Root logger setup driven by :class:`~chat_translator.config.LoggingSettings`.

Library modules only ever call ``logging.getLogger(__name__)``; this module
is used by entry points (the CLI, or a bot process embedding the package)
to attach one handler to the root logger.

Formats:
    simple    ``INFO chat_translator.client: message``
    detailed  ``2026-01-01 12:00:00,000 INFO [chat_translator.client] message``
    json      one JSON object per line with time, level, logger and message
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, TextIO

from chat_translator.config import LoggingSettings

_FORMATS = {
    "simple": "%(levelname)s %(name)s: %(message)s",
    "detailed": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
}

# Loggers that log every request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    """Render each record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(settings: LoggingSettings, *, stream: TextIO | None = None) -> None:
    """Configure the root logger from ``settings``.

    Replaces any handlers already on the root logger, so calling it twice
    does not duplicate output.  Unknown level names fall back to INFO.
    """
    level = logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream or sys.stderr)
    if settings.format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_FORMATS.get(settings.format, _FORMATS["detailed"])))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
