"""
Logging setup for the PR worker and migration runner.

Engine modules attach structured context with
`extra={"extra_fields": {"user_id": ..., "activity_key": ..., ...}}`.
Production renders one JSON object per line with those fields at top level;
development appends them to the text line as key=value pairs.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from core.config import settings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Reserved keys; a context field with one of these names is nested under "context"
_RECORD_KEYS = ("timestamp", "level", "logger", "message", "module", "function", "line", "exception")


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Structured context attached to a record, or {}."""
    fields = getattr(record, "extra_fields", None)
    return dict(fields) if isinstance(fields, dict) else {}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, context fields merged at top level."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        fields = record_fields(record)
        clashing = {k: fields.pop(k) for k in _RECORD_KEYS if k in fields}
        log_data.update(fields)
        if clashing:
            log_data["context"] = clashing

        return json.dumps(log_data, default=str)


class ContextTextFormatter(logging.Formatter):
    """Plain text line followed by sorted key=value context fields."""

    def __init__(self):
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = record_fields(record)
        if not fields:
            return line
        context = " ".join(f"{k}={fields[k]}" for k in sorted(fields))
        # Keep any traceback after the context
        head, sep, tail = line.partition("\n")
        return f"{head} [{context}]{sep}{tail}"


def setup_logging() -> logging.Logger:
    """
    Configure the root logger once per process.

    Called from the Celery `setup_logging` signal and from run_migrations.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = ContextTextFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)

    return root_logger
