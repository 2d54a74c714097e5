"""
Structured Logging for storage operations

Provides:
- One JSON object per line, with record extras and context fields merged in
- Redaction of signing material (URL signatures, keys, HMAC secrets)
- Store-scoped loggers that stamp every line with bucket/prefix fields

Signed URLs are bearer credentials until they expire, so anything that
looks like one is masked before it reaches a handler.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Mapping, Optional, TextIO

from objectmesh.core.errors import ObjectMeshError


class LogLevel(IntEnum):
    """Log level enumeration."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def parse(cls, name: str) -> LogLevel:
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"Unknown log level: {name}") from None


# Fields added by StructuredLogger.context(), e.g. a request id
_log_context: ContextVar[dict[str, Any]] = ContextVar("objectmesh_log_context", default={})

# Everything logging.LogRecord sets itself; other attributes are extras
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

REDACTED = "[REDACTED]"
_SECRET_FIELDS = frozenset({
    "private_key",
    "secret_access_key",
    "signature",
    "credential",
    "authorization",
})
_SIGNATURE_PARAM = re.compile(r"(Signature=)[^&\s\"']+")


# =============================================================================
# REDACTION
# =============================================================================

def redact(value: Any, field_name: Optional[str] = None) -> Any:
    """Mask signing material in a log value, recursing into containers."""
    if field_name is not None and field_name.lower() in _SECRET_FIELDS:
        return REDACTED
    if isinstance(value, str):
        return _SIGNATURE_PARAM.sub(rf"\g<1>{REDACTED}", value)
    if isinstance(value, Mapping):
        return {k: redact(v, str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(v) for v in value]
    return value


class RedactingFilter(logging.Filter):
    """Scrubs message arguments and extras of every record it sees."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(redact(arg) for arg in record.args)
        elif isinstance(record.args, Mapping):
            record.args = redact(record.args)
        for name in _extra_names(record):
            value = getattr(record, name)
            if isinstance(value, ObjectMeshError):
                value = value.to_dict()
            setattr(record, name, redact(value, name))
        return True


def _extra_names(record: logging.LogRecord) -> list[str]:
    return [name for name in vars(record) if name not in _RECORD_ATTRS]


# =============================================================================
# JSON OUTPUT
# =============================================================================

@dataclass
class LogEntry:
    """One JSON log line."""
    timestamp: str
    level: str
    message: str
    logger_name: str
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> LogEntry:
        fields = redact(dict(_log_context.get()))
        for name in _extra_names(record):
            value = getattr(record, name)
            fields[name] = value.to_dict() if isinstance(value, ObjectMeshError) else value
        return cls(
            timestamp=datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            level=record.levelname,
            message=record.getMessage(),
            logger_name=record.name,
            fields=fields,
        )

    def to_json(self) -> str:
        data = {
            "@timestamp": self.timestamp,
            "level": self.level,
            "message": self.message,
            "logger": self.logger_name,
            **self.fields,
        }
        return json.dumps(data, default=str)


class JsonFormatter(logging.Formatter):
    """Formats records as LogEntry JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        entry = LogEntry.from_record(record)
        if record.exc_info:
            entry.fields["exception"] = self.formatException(record.exc_info)
        return entry.to_json()


# =============================================================================
# STRUCTURED LOGGER
# =============================================================================

class StructuredLogger:
    """
    Logger taking fields as keyword arguments.

    Usage:
        log = StructuredLogger("objectmesh.storage").with_extra(bucket="media")

        with log.context(request_id="r-42"):
            log.info("Uploaded object", key="avatars/1.jpg")
    """

    __slots__ = ("_logger", "_fields")

    def __init__(self, name: str, fields: Optional[Mapping[str, Any]] = None) -> None:
        self._logger = logging.getLogger(name)
        self._fields: dict[str, Any] = dict(fields or {})

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit(LogLevel.ERROR, message, fields)

    def failure(self, message: str, error: ObjectMeshError, **fields: Any) -> None:
        """Log an objectmesh error with its code, id and context."""
        self._emit(LogLevel.ERROR, message, {**fields, "error": error})

    def with_extra(self, **fields: Any) -> StructuredLogger:
        """Child logger carrying additional default fields."""
        return StructuredLogger(self._logger.name, {**self._fields, **fields})

    @staticmethod
    def context(**fields: Any) -> _LogContext:
        """Context manager adding fields to every line logged inside it."""
        return _LogContext(fields)

    def _emit(self, level: LogLevel, message: str, fields: Mapping[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        # stacklevel 3 attributes the record to the caller of info()/error()
        self._logger.log(level, message, extra={**self._fields, **fields}, stacklevel=3)


class _LogContext:
    __slots__ = ("_fields", "_token")

    def __init__(self, fields: dict[str, Any]) -> None:
        self._fields = fields
        self._token = None

    def __enter__(self) -> _LogContext:
        self._token = _log_context.set({**_log_context.get(), **self._fields})
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)


# =============================================================================
# SETUP
# =============================================================================

# Client libraries that log request details at INFO/DEBUG
_CLIENT_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer", "google.auth")


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Minimum log level
        json_output: JSON lines instead of a human-readable format
        stream: Output stream (default: stderr)
    """
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.addFilter(RedactingFilter())
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
        ))
    root.addHandler(handler)

    for name in _CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
