"""
Logging Configuration
JSON or plain-text output on the root logger, selected by LOG_FORMAT.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from marketsync.config import LoggingSettings


class JSONFormatter(logging.Formatter):
    """Formatter that emits one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """
    Install a single stream handler on the root logger.

    Args:
        settings: Logging settings (level and json/text format)

    Returns:
        Configured root logger
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    if settings.log_format.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    # aiohttp access/client chatter is noise at INFO
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    return root
