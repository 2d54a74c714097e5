"""
objectmesh: Cloud Object Storage Adapter

Stores, streams, signs and bulk-deletes objects in a Cloud Storage bucket:
- Key Resolver: logical ids mapped under an immutable namespace prefix
- Request Signer: offline, deterministic V2 signed URLs
- Streaming Transfer: pull streams over push downloads, with backpressure
- Batch Pager: prefix-scoped listing and deletion in batches of at most 100
- Object Store: the facade composing all of the above

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from objectmesh.core.types import Result, Ok, Err, ByteRange
from objectmesh.core.errors import (
    ObjectMeshError,
    ObjectNotFound,
    TransportError,
    PartialBatchFailure,
    NotSeekable,
    StreamClosed,
    InvalidCredential,
    ConfigurationError,
)
from objectmesh.core.config import ObjectMeshConfig, StoreConfig, TransportConfig
from objectmesh.storage import (
    CloudObjectStore,
    StoredObject,
    Credential,
    ChunkedStream,
    PresignedRequest,
    InMemoryTransport,
    GCSInteropTransport,
)

__all__ = [
    # Version
    "__version__",
    # Result monad
    "Result",
    "Ok",
    "Err",
    "ByteRange",
    # Errors
    "ObjectMeshError",
    "ObjectNotFound",
    "TransportError",
    "PartialBatchFailure",
    "NotSeekable",
    "StreamClosed",
    "InvalidCredential",
    "ConfigurationError",
    # Config
    "ObjectMeshConfig",
    "StoreConfig",
    "TransportConfig",
    # Storage
    "CloudObjectStore",
    "StoredObject",
    "Credential",
    "ChunkedStream",
    "PresignedRequest",
    "InMemoryTransport",
    "GCSInteropTransport",
]
