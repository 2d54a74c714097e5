"""
Observability module: structured logging with credential redaction.
"""

from objectmesh.observability.logging import (
    JsonFormatter,
    LogLevel,
    RedactingFilter,
    StructuredLogger,
    redact,
    setup_logging,
)

__all__ = [
    "JsonFormatter",
    "LogLevel",
    "RedactingFilter",
    "StructuredLogger",
    "redact",
    "setup_logging",
]
