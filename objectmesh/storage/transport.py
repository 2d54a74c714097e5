"""
Transport Contract: the narrow interface the storage core consumes.

The remote object store is treated as a capability. Implementations:
- GCSInteropTransport: boto3 against the GCS XML interoperability API
- InMemoryTransport: dict-backed fake for tests and development

Contract:
- head_object() returns None for a missing object; it never raises for 404
- delete_object() returns False for a missing object
- get_object_range() pushes chunks into sink.write() as they arrive and
  raises ObjectNotFound if the object is missing
- every other backend failure raises TransportError
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Any,
    BinaryIO,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

from objectmesh.core.types import ByteRange


# =============================================================================
# VALUE TYPES
# =============================================================================

@dataclass(frozen=True, slots=True)
class BackendRef:
    """
    Identity of a storage service.

    Two stores with equal service identities can copy between each
    other server-side, whatever bucket each one targets.
    """
    service: str


@dataclass(frozen=True, slots=True)
class ObjectRef:
    """Reference to a stored object as reported by the backend."""
    bucket: str
    key: str
    size_bytes: Optional[int] = None
    content_type: Optional[str] = None
    etag: Optional[str] = None
    updated_at: Optional[datetime] = None
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ListPage:
    """
    One page of a listing.

    next_token is None when no further pages exist.
    """
    entries: Sequence[ObjectRef]
    next_token: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DeleteFailure:
    """Per-key outcome of a batch delete that did not remove the object."""
    key: str
    code: str
    message: str = ""
    not_found: bool = False


Body = Union[bytes, BinaryIO]


# =============================================================================
# PROTOCOLS
# =============================================================================

@runtime_checkable
class ChunkSink(Protocol):
    """Write target the transport pushes downloaded chunks into."""

    def write(self, chunk: bytes) -> Any: ...


@runtime_checkable
class Transport(Protocol):
    """
    Object storage transport.

    All calls are blocking. Retries, timeouts and authentication are the
    implementation's concern.
    """

    @property
    def identity(self) -> BackendRef: ...

    def put_object(
        self,
        bucket: str,
        key: str,
        body: Body,
        content_type: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ObjectRef: ...

    def get_object_range(
        self,
        bucket: str,
        key: str,
        byte_range: Optional[ByteRange],
        sink: ChunkSink,
    ) -> None: ...

    def head_object(self, bucket: str, key: str) -> Optional[ObjectRef]: ...

    def delete_object(self, bucket: str, key: str) -> bool: ...

    def delete_objects(self, bucket: str, keys: Sequence[str]) -> list[DeleteFailure]: ...

    def list_objects(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        page_token: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> ListPage: ...

    def copy_object(
        self,
        src_bucket: str,
        src_key: str,
        dst_bucket: str,
        dst_key: str,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ObjectRef: ...


__all__ = [
    "BackendRef",
    "ObjectRef",
    "ListPage",
    "DeleteFailure",
    "Body",
    "ChunkSink",
    "Transport",
]
