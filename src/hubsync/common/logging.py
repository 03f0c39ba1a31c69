"""Structured JSON logging for hubsync.

Sync and webhook code passes ``extra={"hub_id": ..., "team_id": ...}`` so a
failed team or a dropped event can be found by key rather than by grepping
the message text.
"""

import logging
import json
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ("hub_id", "team_id", "scope", "event_type", "entity_id")


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Install the JSON handler on the ``hubsync`` logger tree."""
    root = logging.getLogger("hubsync")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    # create_app may run more than once per process (tests)
    if not any(isinstance(h.formatter, JSONFormatter) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
    root.propagate = False
