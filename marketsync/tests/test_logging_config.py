import json
import logging

from marketsync.config import LoggingSettings
from marketsync.logging_config import JSONFormatter, configure_logging


def test_json_formatter_emits_one_object() -> None:
    record = logging.LogRecord("marketsync.scheduler", logging.WARNING, __file__, 1, "Skipping %s", ("AAPL",), None)

    data = json.loads(JSONFormatter().format(record))

    assert data["level"] == "WARNING"
    assert data["logger"] == "marketsync.scheduler"
    assert data["message"] == "Skipping AAPL"
    assert data["timestamp"].endswith("+00:00")


def test_configure_logging_replaces_root_handlers() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging(LoggingSettings(LOG_LEVEL="debug", LOG_FORMAT="text"))
        configure_logging(LoggingSettings(LOG_LEVEL="warning", LOG_FORMAT="json"))

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.WARNING
        assert logging.getLogger("aiohttp").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
