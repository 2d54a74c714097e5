"""
Storage Module: Cloud Object Storage Adapter
============================================

Provides:
- Key resolution under an optional namespace prefix
- Offline V2 signed URLs and upload authorizations
- Streaming downloads with backpressure and server-side copy on upload
- Prefix-scoped listing and bounded batch deletion
- Transport protocol with a boto3 GCS backend and an in-memory backend

Example:
    >>> from objectmesh.core import StoreConfig
    >>> from objectmesh.storage import CloudObjectStore, InMemoryTransport
    >>> store = CloudObjectStore(StoreConfig(bucket="media"), transport=InMemoryTransport())
    >>> store.upload(b"...", "avatar.jpg", content_type="image/jpeg")
"""

from objectmesh.storage.keys import KeyResolver, resolve
from objectmesh.storage.transport import (
    BackendRef,
    ChunkSink,
    DeleteFailure,
    ListPage,
    ObjectRef,
    Transport,
)
from objectmesh.storage.signer import (
    Credential,
    PresignedRequest,
    RequestSigner,
    SignedURL,
    SigningRequest,
)
from objectmesh.storage.streaming import ChunkedStream, ObjectLocation, TransferAdapter
from objectmesh.storage.pager import BatchPager, BatchReport
from objectmesh.storage.memory import InMemoryTransport
from objectmesh.storage.gcs_transport import GCSInteropTransport
from objectmesh.storage.object_store import CloudObjectStore, StoredObject, StoreMetrics

__all__ = [
    # Keys
    "KeyResolver",
    "resolve",
    # Transport
    "BackendRef",
    "ChunkSink",
    "DeleteFailure",
    "ListPage",
    "ObjectRef",
    "Transport",
    "InMemoryTransport",
    "GCSInteropTransport",
    # Signing
    "Credential",
    "PresignedRequest",
    "RequestSigner",
    "SignedURL",
    "SigningRequest",
    # Streaming
    "ChunkedStream",
    "ObjectLocation",
    "TransferAdapter",
    # Batches
    "BatchPager",
    "BatchReport",
    # Facade
    "CloudObjectStore",
    "StoredObject",
    "StoreMetrics",
]
