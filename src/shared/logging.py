"""Process-wide logging setup with an optional JSON formatter."""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


class JSONFormatter(logging.Formatter):
    """Custom JSON log formatter."""

    def __init__(self, service_name: str = "orbit") -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service_name": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }
        slug = getattr(record, "slug", None)
        if slug:
            log_entry["slug"] = slug
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry)


def setup_logging(
    service_name: str = "orbit",
    level: str = "WARNING",
    json_output: bool = False,
) -> logging.Logger:
    """Configure the root logger for a CLI invocation.

    Args:
        service_name: Name recorded in JSON log entries.
        level: Log level string (e.g. "INFO", "DEBUG").
        json_output: Emit one JSON object per line instead of plain text.

    Returns:
        The configured root logger.
    """
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter(service_name=service_name))
    else:
        handler.setFormatter(
            logging.Formatter("%(levelname)s %(name)s: %(message)s")
        )
    logger.addHandler(handler)

    return logger
