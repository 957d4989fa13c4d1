from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from shared_cache.application.current_test import current_test_var

PACKAGE_LOGGER = "shared_cache"


class CurrentTestFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.test_id = current_test_var.get()
        return True


class StderrHandler(logging.StreamHandler):
    """Writes to whatever ``sys.stderr`` is when the record is emitted."""

    @property
    def stream(self):  # type: ignore[override]
        return sys.stderr

    @stream.setter
    def stream(self, value) -> None:
        pass


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "test_id": getattr(record, "test_id", "-"),
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(
    log_level: str,
    log_format: str = "text",
    stream: Optional[object] = None,
) -> logging.Handler:
    """Send the package's records to ``stream`` (stderr by default).

    Only the ``shared_cache`` logger is touched; the root logger belongs to
    the test runner.
    """
    level = getattr(logging, log_level.upper(), logging.DEBUG)

    handler = StderrHandler() if stream is None else logging.StreamHandler(stream)
    handler.addFilter(CurrentTestFilter())

    if log_format.lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(test_id)s - %(message)s"
            )
        )

    logger = logging.getLogger(PACKAGE_LOGGER)
    for existing in list(logger.handlers):
        if getattr(existing, "_shared_cache_handler", False):
            logger.removeHandler(existing)
    handler._shared_cache_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(level)
    return handler
