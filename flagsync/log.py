"""Logging setup for flagsync hosts."""

import json
import logging
from datetime import datetime, timezone

LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = "info", json_output: bool = False) -> logging.Handler:
    """Attach a stream handler to the ``flagsync`` logger.

    Calling it again replaces the handler installed by the previous call,
    so reconfiguring never duplicates output.

    Args:
        level: Level name (error, warning, info, debug).
        json_output: Emit JSON lines instead of plain text.

    Returns:
        The installed handler.
    """
    package_logger = logging.getLogger("flagsync")
    for old in [h for h in package_logger.handlers if getattr(h, "_flagsync", False)]:
        package_logger.removeHandler(old)

    handler = logging.StreamHandler()
    handler._flagsync = True
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    package_logger.setLevel(LEVELS.get(level.lower(), logging.INFO))
    package_logger.addHandler(handler)
    return handler
