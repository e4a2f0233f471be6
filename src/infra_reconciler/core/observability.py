"""
Logging setup.

The engine never configures logging on its own. It accepts a logging.Logger
and passes it down to tasks through the run context. Callers that want a
ready made setup use setup_logging once at startup.

Formats
json
One object per line with timestamp, level, logger and message, plus the
task_key, target and state extras when a record carries them.

text
Human readable single line format.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

EXTRA_KEYS = ("task_key", "target", "state")


class JSONFormatter(logging.Formatter):
    """Format log records as json lines."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_KEYS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = str(val)
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


def setup_logging(level: str = "INFO", fmt: str = "text") -> logging.Handler:
    """
    Configure the root logger.

    Returns the installed handler so callers and tests can remove it again.
    """
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
