"""
Kiro Gateway - Structured JSON Logging

Features:
- One JSON object per line on stdout
- Request context (request_id, model, endpoint) injected from a contextvar
- Keyword arguments on log calls become top-level fields
- Token-like fields are redacted before they reach the log stream

Usage:
    from kiro_gateway.observability.logging import setup_logging, get_logger

    setup_logging(level="INFO")

    logger = get_logger(__name__)
    logger.info("Token refreshed", region="us-east-1")

Output:
    {"timestamp": "2026-01-15T10:30:00+00:00", "level": "INFO",
     "logger": "kiro_gateway.auth.manager", "message": "Token refreshed",
     "region": "us-east-1", "request_id": "req_xyz"}
"""

import json
import logging
import os
import sys
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partialmethod
from typing import Any, Dict, Optional, Union

_current_context: ContextVar[Optional["LogContext"]] = ContextVar("kiro_log_context", default=None)


@dataclass
class LogContext:
    """Correlation fields added to every record logged while it is current."""
    request_id: str = ""
    model: str = ""
    endpoint: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def get_current(cls) -> Optional["LogContext"]:
        return _current_context.get()

    @classmethod
    def set_current(cls, ctx: "LogContext"):
        _current_context.set(ctx)

    @classmethod
    def clear(cls):
        _current_context.set(None)

    def to_dict(self) -> Dict[str, Any]:
        fields = {"request_id": self.request_id, "model": self.model, "endpoint": self.endpoint}
        result = {k: v for k, v in fields.items() if v}
        result.update(self.extra)
        return result


# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "taskName"}


class JSONFormatter(logging.Formatter):
    """Formats records as single-line JSON objects."""

    SENSITIVE_FIELDS = (
        "password", "secret", "token", "api_key", "apikey",
        "authorization", "credential", "private_key",
    )

    def __init__(self, include_location: bool = False, redact_sensitive: bool = True):
        super().__init__()
        self.include_location = include_location
        self.redact_sensitive = redact_sensitive

    def is_sensitive(self, name: str) -> bool:
        name = name.lower()
        return any(marker in name for marker in self.SENSITIVE_FIELDS)

    def format(self, record: logging.LogRecord) -> str:
        data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.include_location:
            data["location"] = f"{record.filename}:{record.lineno}"
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        ctx = LogContext.get_current()
        if ctx:
            data.update(ctx.to_dict())

        for key, value in vars(record).items():
            if key in _RECORD_ATTRS:
                continue
            data[key] = "[REDACTED]" if self.redact_sensitive and self.is_sensitive(key) else value

        return json.dumps(data, default=str, ensure_ascii=False)


class StructuredLogger:
    """
    Thin wrapper over ``logging.Logger``.

    ``logger.info("Retrying", attempt=2)`` attaches ``attempt`` to the
    record; ``exc_info``, ``stack_info`` and ``stacklevel`` keep their
    usual meaning.
    """

    _PASSTHROUGH = ("exc_info", "stack_info", "stacklevel")

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def log(self, level: int, msg: str, *args, **fields):
        kwargs = {k: fields.pop(k) for k in self._PASSTHROUGH if k in fields}
        self._logger.log(level, msg, *args, extra=fields, **kwargs)

    debug = partialmethod(log, logging.DEBUG)
    info = partialmethod(log, logging.INFO)
    warning = partialmethod(log, logging.WARNING)
    error = partialmethod(log, logging.ERROR)
    exception = partialmethod(log, logging.ERROR, exc_info=True)


_configured = False


def setup_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = True,
    include_location: bool = False,
    redact_sensitive: bool = True,
) -> None:
    """
    Replace the root handlers with one stdout handler.

    Args:
        level: Log level name or number
        json_output: JSON lines (True) or plain text (False)
        include_location: Add filename:lineno to JSON records
        redact_sensitive: Mask token-like fields in JSON records
    """
    global _configured

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter(include_location, redact_sensitive))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs every request at INFO, including refresh calls
    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> StructuredLogger:
    """Structured logger; configures from LOG_LEVEL / LOG_FORMAT on first use."""
    if not _configured:
        setup_logging(
            level=os.getenv("LOG_LEVEL", "INFO"),
            json_output=os.getenv("LOG_FORMAT", "json").lower() == "json",
        )
    return StructuredLogger(logging.getLogger(name))


class TimedOperation:
    """
    Times a block and logs "<operation> completed" or "<operation> failed"
    with ``duration_ms``.

    Usage:
        with TimedOperation("kiro_health_check", logger) as timer:
            ...
        timer.duration_ms
    """

    def __init__(self, operation: str, logger: StructuredLogger, level: int = logging.DEBUG, **fields):
        self.operation = operation
        self.logger = logger
        self.level = level
        self.fields = fields
        self.duration_ms: Optional[float] = None
        self._start = 0.0

    def __enter__(self) -> "TimedOperation":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self._start) * 1000
        fields = dict(self.fields, operation=self.operation, duration_ms=round(self.duration_ms, 2))
        if exc_type is None:
            self.logger.log(self.level, f"{self.operation} completed", **fields)
        else:
            self.logger.error(f"{self.operation} failed", error=str(exc_val), **fields)
