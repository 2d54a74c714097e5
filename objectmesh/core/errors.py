"""
Error Hierarchy for the objectmesh storage adapter

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause chain for root cause analysis
- Timestamp for correlation with request logs

Propagation policy:
- "Not found" is absorbed only by exists() and delete(), which report
  absence as a normal boolean result. Everywhere else it is raised as
  ObjectNotFound.
- Every other backend failure surfaces as TransportError. Nothing in this
  package retries; retry policy belongs to the transport client.

Usage:
    try:
        stream = store.open("avatar.jpg")
    except ObjectNotFound:
        ...
    except TransportError as e:
        logger.error("open failed", extra=e.to_dict())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence
from uuid import uuid4

from objectmesh.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Object storage errors
    - 2xxx: Streaming errors
    - 3xxx: Signing errors
    - 9xxx: Internal/configuration errors
    """

    # Object storage errors (1xxx)
    STORAGE_OBJECT_NOT_FOUND = 1001
    STORAGE_TRANSPORT_FAILED = 1002
    STORAGE_PARTIAL_BATCH = 1003

    # Streaming errors (2xxx)
    STREAM_NOT_SEEKABLE = 2001
    STREAM_CLOSED = 2002

    # Signing errors (3xxx)
    SIGNING_INVALID_CREDENTIAL = 3001
    SIGNING_CREDENTIAL_UNAVAILABLE = 3002

    # Internal errors (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_CONFIGURATION_ERROR = 9002


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class ObjectMeshError(Exception):
    """
    Base class for all objectmesh errors.

    Provides common infrastructure for error handling:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Timestamp for correlation
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[Exception] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize error to dictionary for structured logging.

        Note: Excludes the cause stack trace.
        """
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# OBJECT STORAGE ERRORS
# =============================================================================
@dataclass
class ObjectNotFound(ObjectMeshError):
    """The addressed object does not exist in the bucket."""

    @classmethod
    def for_key(
        cls,
        bucket: str,
        key: str,
        cause: Optional[Exception] = None,
    ) -> ObjectNotFound:
        return cls(
            code=ErrorCode.STORAGE_OBJECT_NOT_FOUND,
            message=f"Object gs://{bucket}/{key} not found",
            cause=cause,
            context={"bucket": bucket, "key": key},
        )

    @property
    def key(self) -> Optional[str]:
        return self.context.get("key")


@dataclass
class TransportError(ObjectMeshError):
    """
    Any backend failure other than absence: network, permission, quota.

    Raised so that "could not determine" never collapses into "does not exist".
    """

    @classmethod
    def from_exception(
        cls,
        operation: str,
        cause: Exception,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        status: Optional[int] = None,
    ) -> TransportError:
        return cls(
            code=ErrorCode.STORAGE_TRANSPORT_FAILED,
            message=f"Transport failure during {operation}: {cause}",
            cause=cause,
            context={
                "operation": operation,
                "bucket": bucket,
                "key": key,
                "status": status,
            },
        )

    @classmethod
    def failed(
        cls,
        operation: str,
        reason: str,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        status: Optional[int] = None,
    ) -> TransportError:
        return cls(
            code=ErrorCode.STORAGE_TRANSPORT_FAILED,
            message=f"Transport failure during {operation}: {reason}",
            context={
                "operation": operation,
                "bucket": bucket,
                "key": key,
                "status": status,
            },
        )

    @property
    def status(self) -> Optional[int]:
        return self.context.get("status")


@dataclass
class PartialBatchFailure(ObjectMeshError):
    """
    A clear/multi-delete aborted after some objects were already deleted.

    Deleted objects stay deleted; there is no rollback.
    """

    @classmethod
    def aborted(
        cls,
        deleted_count: int,
        failed_keys: Sequence[str] = (),
        cause: Optional[Exception] = None,
    ) -> PartialBatchFailure:
        reason = f": {cause}" if cause is not None else ""
        return cls(
            code=ErrorCode.STORAGE_PARTIAL_BATCH,
            message=(
                f"Batch deletion aborted after deleting {deleted_count} objects "
                f"({len(failed_keys)} failed){reason}"
            ),
            cause=cause,
            context={
                "deleted_count": deleted_count,
                "failed_keys": list(failed_keys),
            },
        )

    @property
    def deleted_count(self) -> int:
        return self.context.get("deleted_count", 0)

    @property
    def failed_keys(self) -> list[str]:
        return self.context.get("failed_keys", [])


# =============================================================================
# STREAMING ERRORS
# =============================================================================
@dataclass
class NotSeekable(ObjectMeshError):
    """Rewind attempted on a stream opened with rewindable=False."""

    @classmethod
    def for_key(cls, key: str) -> NotSeekable:
        return cls(
            code=ErrorCode.STREAM_NOT_SEEKABLE,
            message=f"Stream for {key} was opened without rewind support",
            context={"key": key},
        )


@dataclass
class StreamClosed(ObjectMeshError):
    """Read attempted on a stream after close()."""

    @classmethod
    def for_key(cls, key: str) -> StreamClosed:
        return cls(
            code=ErrorCode.STREAM_CLOSED,
            message=f"Stream for {key} is closed",
            context={"key": key},
        )


# =============================================================================
# SIGNING ERRORS
# =============================================================================
@dataclass
class InvalidCredential(ObjectMeshError):
    """Signing key material is missing or cannot be parsed as an RSA key."""

    @classmethod
    def unparseable(
        cls,
        issuer: Optional[str],
        cause: Optional[Exception] = None,
    ) -> InvalidCredential:
        return cls(
            code=ErrorCode.SIGNING_INVALID_CREDENTIAL,
            message=f"Signing key for {issuer or 'unknown issuer'} is not a valid RSA private key",
            cause=cause,
            context={"issuer": issuer},
        )

    @classmethod
    def unavailable(
        cls,
        reason: str,
        cause: Optional[Exception] = None,
    ) -> InvalidCredential:
        return cls(
            code=ErrorCode.SIGNING_CREDENTIAL_UNAVAILABLE,
            message=f"No signing credential available: {reason}",
            cause=cause,
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass
class ConfigurationError(ObjectMeshError):
    """Invalid or incomplete configuration."""

    @classmethod
    def invalid(cls, reason: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            message=f"Configuration error: {reason}",
        )


__all__ = [
    "ErrorCode",
    "ObjectMeshError",
    "ObjectNotFound",
    "TransportError",
    "PartialBatchFailure",
    "NotSeekable",
    "StreamClosed",
    "InvalidCredential",
    "ConfigurationError",
]
