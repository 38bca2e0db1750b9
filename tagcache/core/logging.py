"""Logging configuration for the cache library."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from tagcache.core.config import Settings, settings as default_settings

LOGGER_NAMESPACE = "tagcache"


class JSONLineFormatter(logging.Formatter):
    """Render each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(config: Optional[Settings] = None) -> None:
    """Configure the library's root logger.

    Only the ``tagcache`` logger hierarchy is touched so host applications
    keep control of their own handlers.

    Args:
        config: Settings to read ``log_level`` and ``log_format`` from.
            Defaults to the module-level settings.
    """
    config = config or default_settings
    handler = logging.StreamHandler(sys.stdout)
    if config.log_format.lower() == "json":
        handler.setFormatter(JSONLineFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root = logging.getLogger(LOGGER_NAMESPACE)
    root.handlers = [handler]
    root.setLevel(config.log_level.upper())


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name.

    Args:
        name: Usually __name__ of the calling module.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)
