"""Structured JSON logging: one JSON object per line on stdout."""
import json
import logging
import sys
from datetime import datetime, timezone

EXTRA_FIELDS = ("request_id", "job_id", "upload_id", "stage", "latency_ms")


class StructuredJsonFormatter(logging.Formatter):
    """Format log records as JSON with timestamp, severity, logger name, message and known extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # extras passed via logger.info(..., extra={...})
        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str = "INFO") -> None:
    """Install the JSON formatter on the root logger. Safe to call more than once.
    Why available: Called from the app lifespan so uvicorn workers and background jobs share one log format."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    for h in root.handlers:
        if isinstance(h.formatter, StructuredJsonFormatter):
            return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    root.addHandler(handler)
