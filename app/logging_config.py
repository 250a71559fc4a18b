"""
Structured JSON logging configuration.

Every log line is one JSON object on stdout with the channel it came from
(http, db, auth, students) and the id of the request that produced it.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

# Request id for the request currently being handled.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

CHANNELS = ["http", "db", "auth", "students"]


class StructuredJsonFormatter(logging.Formatter):
    """
    Formatter that renders a record as a single JSON object.

    Keys: timestamp (UTC, ISO 8601), level, message, channel,
    context (request_id plus business ids) and extra (metadata such as
    duration_ms or client ip).
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", record.name.split(".")[-1]),
            "context": {
                "request_id": request_id_var.get(""),
                **(getattr(record, "context", {}) or {}),
            },
            "extra": getattr(record, "extra_data", {}) or {},
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Install the JSON formatter on the root logger and set channel levels."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        logging.getLogger(f"app.{channel}").setLevel(log_level)

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    """Return the logger for a channel (http, db, auth, students)."""
    return logging.getLogger(f"app.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None):
    """
    Emit a structured entry with business context and extra metadata.

    Args:
        logger: The channel logger to use
        level: Log level name (INFO, WARNING, ERROR, DEBUG)
        message: Human-readable message
        context: Business ids (student_id, username, ...)
        extra_data: Metadata (duration_ms, ip, ...)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.log(
        log_level,
        message,
        extra={
            "context": context or {},
            "extra_data": extra_data or {},
            "channel": logger.name.split(".")[-1],
        },
    )


def generate_request_id() -> str:
    """Generate a new UUID for request tracking."""
    return str(uuid.uuid4())
