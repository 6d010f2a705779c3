"""
luminous-client - Structured Logging

JSON log formatting for applications that want machine readable logs of the
client's requests. The library itself only emits records; nothing is printed
until the application configures logging, e.g. via ``setup_logging``.

Usage:
    from luminous_client.logging import setup_logging

    setup_logging(level="DEBUG")

Output:
    {"timestamp": "2024-01-15T10:30:00+00:00", "level": "DEBUG",
     "logger": "luminous_client.http", "message": "POST /complete",
     "model": "luminous-base", "path": "/complete"}
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

ROOT_LOGGER = "luminous_client"

_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename",
    "funcName", "levelname", "levelno", "lineno",
    "module", "msecs", "pathname", "process",
    "processName", "relativeCreated", "stack_info",
    "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
}


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter.

    Extra fields passed with ``extra={...}`` are added to the output;
    fields whose name looks like a credential are redacted.
    """

    SENSITIVE_FIELDS = {
        "password", "secret", "token", "api_key", "apikey",
        "authorization", "auth", "credential",
    }

    def __init__(
        self,
        include_timestamp: bool = True,
        include_location: bool = False,
        redact_sensitive: bool = True,
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_location = include_location
        self.redact_sensitive = redact_sensitive

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {}

        if self.include_timestamp:
            log_data["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_data["level"] = record.levelname
        log_data["logger"] = record.name
        log_data["message"] = record.getMessage()

        if self.include_location:
            log_data["location"] = f"{record.filename}:{record.lineno}"

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            if self.redact_sensitive and self._is_sensitive(key):
                value = "[REDACTED]"
            log_data[key] = value

        return json.dumps(log_data, default=str, ensure_ascii=False)

    def _is_sensitive(self, field_name: str) -> bool:
        field_lower = field_name.lower()
        return any(sensitive in field_lower for sensitive in self.SENSITIVE_FIELDS)


def get_logger(name: str) -> logging.Logger:
    """Get a logger below the package logger."""
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def setup_logging(
    level: Optional[Union[str, int]] = None,
    json_format: bool = True,
    stream=None,
) -> logging.Logger:
    """
    Attach a handler to the package logger.

    Args:
        level: Log level, defaults to ``LUMINOUS_LOG_LEVEL`` or INFO
        json_format: Use ``JSONFormatter``; plain text otherwise
        stream: Output stream, defaults to stderr

    Returns:
        The package logger
    """
    level = level or os.getenv("LUMINOUS_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        if not isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
    logger.addHandler(handler)
    return logger


logging.getLogger(ROOT_LOGGER).addHandler(logging.NullHandler())
