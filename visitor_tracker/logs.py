"""
One JSON object per log line, so container log collectors can filter pings
by page code or session without parsing free text.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

ROOT = "visitor_tracker"

# request-scoped fields passed through `extra=`
CONTEXT_FIELDS = ("page_code", "session_id", "route")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts_utc": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(
            {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}
        )
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, default=str)


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger  # avoid double handlers in tests

    logger.setLevel(level.upper())
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def set_level(level: str) -> None:
    """
    Apply `level` to every logger of the package created so far.
    """
    for name in list(logging.root.manager.loggerDict):
        if name == ROOT or name.startswith(ROOT + "."):
            logging.getLogger(name).setLevel(level.upper())
