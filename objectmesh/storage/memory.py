"""
In-Memory Transport: dict-backed object store for tests and development.

Behaves like the remote service where the storage core can observe it:
- listings are key-ordered and paginated with key-based continuation
  tokens, so deleting listed objects between pages never skips entries
- downloads are pushed into the sink in chunk_size pieces
- batch deletes report missing keys as not-found failures

Every call is recorded in `calls` for inspection.
"""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from objectmesh.core import constants as C
from objectmesh.core.errors import ObjectNotFound, TransportError
from objectmesh.core.types import ByteRange
from objectmesh.storage.transport import (
    BackendRef,
    Body,
    ChunkSink,
    DeleteFailure,
    ListPage,
    ObjectRef,
)


@dataclass
class _Blob:
    data: bytes
    content_type: Optional[str]
    options: Dict[str, Any] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def ref(self, bucket: str, key: str) -> ObjectRef:
        return ObjectRef(
            bucket=bucket,
            key=key,
            size_bytes=len(self.data),
            content_type=self.content_type,
            etag=hashlib.md5(self.data).hexdigest(),
            updated_at=self.updated_at,
            metadata=dict(self.options.get("metadata") or {}),
        )


class InMemoryTransport:
    """
    In-memory implementation of the Transport protocol.

    Example:
        transport = InMemoryTransport()
        transport.put_object("media", "avatars/1.jpg", b"...", "image/jpeg")
        page = transport.list_objects("media", prefix="avatars/")
    """

    __slots__ = ("_buckets", "_lock", "_chunk_size", "_denied", "calls")

    def __init__(self, chunk_size: int = C.DEFAULT_CHUNK_SIZE) -> None:
        self._buckets: Dict[str, Dict[str, _Blob]] = {}
        self._lock = threading.Lock()
        self._chunk_size = chunk_size
        self._denied: set[Tuple[str, str]] = set()
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    @property
    def identity(self) -> BackendRef:
        return BackendRef(service=f"memory:{id(self):x}")

    # -------------------------------------------------------------------------
    # TEST HOOKS
    # -------------------------------------------------------------------------

    def deny_delete(self, bucket: str, key: str) -> None:
        """Make deletes of this key fail with AccessDenied."""
        self._denied.add((bucket, key))

    def keys(self, bucket: str) -> List[str]:
        with self._lock:
            return sorted(self._buckets.get(bucket, {}))

    def stored_options(self, bucket: str, key: str) -> Dict[str, Any]:
        with self._lock:
            blob = self._buckets[bucket][key]
            return {"content_type": blob.content_type, **blob.options}

    def calls_to(self, operation: str) -> List[Dict[str, Any]]:
        return [args for name, args in self.calls if name == operation]

    # -------------------------------------------------------------------------
    # TRANSPORT OPERATIONS
    # -------------------------------------------------------------------------

    def put_object(
        self,
        bucket: str,
        key: str,
        body: Body,
        content_type: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ObjectRef:
        data = body if isinstance(body, bytes) else body.read()
        self._record("put_object", bucket=bucket, key=key, content_type=content_type,
                     options=dict(options or {}))
        blob = _Blob(data=data, content_type=content_type, options=dict(options or {}))
        with self._lock:
            self._buckets.setdefault(bucket, {})[key] = blob
        return blob.ref(bucket, key)

    def get_object_range(
        self,
        bucket: str,
        key: str,
        byte_range: Optional[ByteRange],
        sink: ChunkSink,
    ) -> None:
        self._record("get_object_range", bucket=bucket, key=key, byte_range=byte_range)
        with self._lock:
            blob = self._buckets.get(bucket, {}).get(key)
        if blob is None:
            raise ObjectNotFound.for_key(bucket, key)

        data = blob.data
        if byte_range is not None:
            if data and byte_range.start >= len(data):
                raise TransportError.failed(
                    "get_object_range", "InvalidRange", bucket=bucket, key=key, status=416,
                )
            data = byte_range.slice(data)

        for offset in range(0, len(data), self._chunk_size):
            sink.write(data[offset:offset + self._chunk_size])

    def head_object(self, bucket: str, key: str) -> Optional[ObjectRef]:
        self._record("head_object", bucket=bucket, key=key)
        with self._lock:
            blob = self._buckets.get(bucket, {}).get(key)
            return blob.ref(bucket, key) if blob else None

    def delete_object(self, bucket: str, key: str) -> bool:
        self._record("delete_object", bucket=bucket, key=key)
        if (bucket, key) in self._denied:
            raise TransportError.failed("delete_object", "AccessDenied", bucket=bucket, key=key, status=403)
        with self._lock:
            return self._buckets.get(bucket, {}).pop(key, None) is not None

    def delete_objects(self, bucket: str, keys: Sequence[str]) -> List[DeleteFailure]:
        self._record("delete_objects", bucket=bucket, keys=list(keys))
        failures: List[DeleteFailure] = []
        with self._lock:
            objects = self._buckets.get(bucket, {})
            for key in keys:
                if (bucket, key) in self._denied:
                    failures.append(DeleteFailure(key=key, code="AccessDenied", message="Access denied"))
                elif objects.pop(key, None) is None:
                    failures.append(DeleteFailure(key=key, code="NoSuchKey", not_found=True))
        return failures

    def list_objects(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        page_token: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> ListPage:
        self._record("list_objects", bucket=bucket, prefix=prefix, page_token=page_token)
        limit = page_size or C.DEFAULT_PAGE_SIZE
        with self._lock:
            objects = self._buckets.get(bucket, {})
            keys = sorted(
                k for k in objects
                if (not prefix or k.startswith(prefix)) and (page_token is None or k > page_token)
            )
            page = [objects[k].ref(bucket, k) for k in keys[:limit]]

        next_token = page[-1].key if len(keys) > limit else None
        return ListPage(entries=page, next_token=next_token)

    def copy_object(
        self,
        src_bucket: str,
        src_key: str,
        dst_bucket: str,
        dst_key: str,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ObjectRef:
        self._record("copy_object", src_bucket=src_bucket, src_key=src_key,
                     dst_bucket=dst_bucket, dst_key=dst_key, options=dict(options or {}))
        options = dict(options or {})
        with self._lock:
            source = self._buckets.get(src_bucket, {}).get(src_key)
            if source is None:
                raise ObjectNotFound.for_key(src_bucket, src_key)
            # metadata is replaced, not inherited
            blob = _Blob(
                data=source.data,
                content_type=options.pop("content_type", None),
                options=options,
            )
            self._buckets.setdefault(dst_bucket, {})[dst_key] = blob
        return blob.ref(dst_bucket, dst_key)

    def _record(self, operation: str, **kwargs: Any) -> None:
        self.calls.append((operation, kwargs))


__all__ = ["InMemoryTransport"]
