"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for objectmesh:
- Result container for configuration loading and validation
- Error hierarchy shared by every storage component
- Configuration management with validation
"""

from objectmesh.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
    ByteRange,
)
from objectmesh.core.errors import (
    ErrorCode,
    ObjectMeshError,
    ObjectNotFound,
    TransportError,
    PartialBatchFailure,
    NotSeekable,
    StreamClosed,
    InvalidCredential,
    ConfigurationError,
)
from objectmesh.core.config import (
    ObjectMeshConfig,
    StoreConfig,
    TransportConfig,
    ObservabilityConfig,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "ByteRange",
    "ErrorCode",
    "ObjectMeshError",
    "ObjectNotFound",
    "TransportError",
    "PartialBatchFailure",
    "NotSeekable",
    "StreamClosed",
    "InvalidCredential",
    "ConfigurationError",
    "ObjectMeshConfig",
    "StoreConfig",
    "TransportConfig",
    "ObservabilityConfig",
]
