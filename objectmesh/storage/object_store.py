"""
Cloud Object Store: the facade applications talk to.

Composes the key resolver, transfer adapter, batch pager and request signer
over one bucket and one optional namespace prefix.

Error contract:
---------------
- exists() and delete() answer absence with False; every other operation
  raises ObjectNotFound for a missing object
- backend failures surface as TransportError and are never reported as
  absence
- no retries happen here; retry policy belongs to the transport

Credentials for signing are resolved on every call, in order: the explicit
argument, StoreConfig.credential, StoreConfig.credentials_file, then
application-default discovery.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import IO, Any, Callable, Iterator, Mapping, Optional, Sequence, Union
from urllib.parse import quote

from objectmesh.core import constants as C
from objectmesh.core.config import StoreConfig, validate_store
from objectmesh.core.errors import ConfigurationError, PartialBatchFailure
from objectmesh.observability.logging import StructuredLogger
from objectmesh.storage.gcs_transport import GCSInteropTransport
from objectmesh.storage.keys import KeyResolver
from objectmesh.storage.pager import BatchPager, BatchReport, Predicate
from objectmesh.storage.signer import Credential, PresignedRequest, RequestSigner
from objectmesh.storage.streaming import (
    ChunkedStream,
    ObjectLocation,
    RangeLike,
    TransferAdapter,
    UploadSource,
)
from objectmesh.storage.transport import ObjectRef, Transport


# =============================================================================
# METRICS
# =============================================================================

@dataclass
class StoreMetrics:
    """
    Operation counters of one store instance.

    Not synchronized; counts from concurrent callers are approximate.
    """
    # Writes
    upload_count: int = 0
    copy_count: int = 0
    bytes_uploaded: int = 0

    # Reads
    open_count: int = 0
    download_count: int = 0

    # Deletion
    delete_count: int = 0
    batch_count: int = 0
    batch_deleted: int = 0

    # Signing
    signed_count: int = 0

    def record_upload(self, size_bytes: Optional[int], copied: bool) -> None:
        """Record a direct upload or a server-side copy."""
        if copied:
            self.copy_count += 1
        else:
            self.upload_count += 1
            self.bytes_uploaded += size_bytes or 0

    def record_batches(self, report: BatchReport) -> None:
        """Record a finished clear/multi-delete run."""
        self.batch_count += len(report.batches)
        self.batch_deleted += report.deleted

    def to_dict(self) -> dict[str, int]:
        return {
            "upload_count": self.upload_count,
            "copy_count": self.copy_count,
            "bytes_uploaded": self.bytes_uploaded,
            "open_count": self.open_count,
            "download_count": self.download_count,
            "delete_count": self.delete_count,
            "batch_count": self.batch_count,
            "batch_deleted": self.batch_deleted,
            "signed_count": self.signed_count,
        }


# =============================================================================
# STORED OBJECT HANDLE
# =============================================================================

class StoredObject:
    """
    Handle to an object in a CloudObjectStore.

    Returned by upload(). Passing it back to upload() on a store of the same
    backend performs a server-side copy instead of a byte transfer.
    """

    __slots__ = ("id", "key", "storage", "ref")

    def __init__(
        self,
        id: str,
        storage: CloudObjectStore,
        ref: Optional[ObjectRef] = None,
    ) -> None:
        self.id = id
        self.storage = storage
        self.key = storage.object_key(id)
        self.ref = ref

    @property
    def size(self) -> Optional[int]:
        return self.ref.size_bytes if self.ref else None

    @property
    def content_type(self) -> Optional[str]:
        return self.ref.content_type if self.ref else None

    def open(self, rewindable: bool = True, byte_range: Optional[RangeLike] = None) -> ChunkedStream:
        return self.storage.open(self.id, rewindable=rewindable, byte_range=byte_range)

    def read(self) -> bytes:
        """Whole object contents."""
        with self.open(rewindable=False) as stream:
            return stream.read()

    def exists(self) -> bool:
        return self.storage.exists(self.id)

    def delete(self) -> bool:
        return self.storage.delete(self.id)

    def url(self, **options: Any) -> str:
        return self.storage.url(self.id, **options)

    def source_location(self) -> ObjectLocation:
        return ObjectLocation(
            backend=self.storage.transport.identity,
            bucket=self.storage.bucket,
            key=self.key,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StoredObject):
            return NotImplemented
        return self.source_location() == other.source_location()

    def __hash__(self) -> int:
        return hash(self.source_location())

    def __repr__(self) -> str:
        return f"StoredObject(id={self.id!r}, key={self.key!r}, bucket={self.storage.bucket!r})"


# =============================================================================
# OBJECT STORE
# =============================================================================

class CloudObjectStore:
    """
    Object storage over one bucket, optionally scoped to a namespace prefix.

    Stateless between calls apart from metrics; the transport owns its
    cached client handle.

    Example:
        >>> store = CloudObjectStore(StoreConfig(bucket="media", prefix="cache"))
        >>> stored = store.upload(b"hello", "greeting.txt", content_type="text/plain")
        >>> store.exists("greeting.txt")
        True
        >>> with store.open("greeting.txt") as stream:
        ...     stream.read()
        b'hello'
    """

    __slots__ = (
        "_config",
        "_transport",
        "_resolver",
        "_transfer",
        "_pager",
        "_signer",
        "_metrics",
        "_log",
    )

    def __init__(
        self,
        config: StoreConfig,
        transport: Optional[Transport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            config: Bucket-level options.
            transport: Backend to use; defaults to the GCS interoperability
                transport with default TransportConfig.
            clock: Unix time source used for signature expiry.

        Raises:
            ConfigurationError: If config fails validation.
        """
        check = validate_store(config)
        if check.is_err():
            raise ConfigurationError.invalid(check.error)

        self._config = config
        self._transport: Transport = transport if transport is not None else GCSInteropTransport()
        self._resolver = KeyResolver(config.prefix or "")
        self._transfer = TransferAdapter(self._transport, config.bucket)
        self._pager = BatchPager(
            self._transport,
            config.bucket,
            batch_size=config.batch_size,
            page_size=config.page_size,
        )
        self._signer = RequestSigner(config.bucket, host=config.host, clock=clock)
        self._metrics = StoreMetrics()
        self._log = StructuredLogger(__name__).with_extra(
            bucket=config.bucket, prefix=config.prefix or "",
        )

    # -------------------------------------------------------------------------
    # PROPERTIES
    # -------------------------------------------------------------------------

    @property
    def bucket(self) -> str:
        return self._config.bucket

    @property
    def prefix(self) -> Optional[str]:
        return self._config.prefix

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def metrics(self) -> StoreMetrics:
        return self._metrics

    def object_key(self, id: str) -> str:
        """Fully-qualified key for a logical id."""
        return self._resolver.resolve(id)

    # -------------------------------------------------------------------------
    # WRITES
    # -------------------------------------------------------------------------

    def upload(
        self,
        source: Union[bytes, UploadSource, StoredObject],
        id: str,
        content_type: Optional[str] = None,
        acl: Optional[str] = None,
        **options: Any,
    ) -> StoredObject:
        """
        Store `source` under `id`.

        Object options are the store's object_options, then default_acl,
        then the caller's options; later entries win.
        """
        key = self.object_key(id)
        merged = self._object_options(acl, options)
        location = self._same_backend_location(source)

        if location is not None:
            ref = self._transfer.copy(location, key, content_type, merged)
            self._metrics.record_upload(ref.size_bytes, copied=True)
            self._log.info("Copied object", key=key, source_key=location.key)
        else:
            ref = self._put(source, key, content_type, merged)
            self._metrics.record_upload(ref.size_bytes, copied=False)
            self._log.info("Uploaded object", key=key, size_bytes=ref.size_bytes)

        return StoredObject(id, self, ref)

    def _put(
        self,
        source: Union[bytes, UploadSource, StoredObject],
        key: str,
        content_type: Optional[str],
        options: Mapping[str, Any],
    ) -> ObjectRef:
        if isinstance(source, StoredObject):
            # stored elsewhere: stream it across
            with source.open(rewindable=False) as stream:
                return self._transfer.upload(
                    stream, key, content_type or source.content_type, options,
                )
        return self._transfer.upload(source, key, content_type, options)

    def _same_backend_location(self, source: Any) -> Optional[ObjectLocation]:
        if not isinstance(source, StoredObject):
            return None
        location = source.source_location()
        return location if location.backend == self._transport.identity else None

    def _object_options(self, acl: Optional[str], options: Mapping[str, Any]) -> dict[str, Any]:
        merged = dict(self._config.object_options)
        if self._config.default_acl:
            merged["acl"] = self._config.default_acl
        merged.update(options)
        if acl is not None:
            merged["acl"] = acl
        return merged

    # -------------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------------

    def open(
        self,
        id: str,
        rewindable: bool = True,
        byte_range: Optional[RangeLike] = None,
    ) -> ChunkedStream:
        """
        Open a lazy stream over the object. Close it when done.

        Raises:
            ObjectNotFound: If the object does not exist.
        """
        stream = self._transfer.open(self.object_key(id), rewindable=rewindable, byte_range=byte_range)
        self._metrics.open_count += 1
        return stream

    def download(self, id: str) -> IO[bytes]:
        """
        Download into a temporary file that keeps the id's extension.

        The file is open for reading and removed when closed.
        """
        key = self.object_key(id)
        tmp = self._transfer.download(key, id)
        self._metrics.download_count += 1
        self._log.debug("Downloaded object", key=key, path=tmp.name)
        return tmp

    def exists(self, id: str) -> bool:
        """False only when the backend reports the object absent."""
        return self._transport.head_object(self.bucket, self.object_key(id)) is not None

    def list(self) -> Iterator[ObjectRef]:
        """Lazily enumerate the objects of this store's namespace."""
        return self._pager.list(self._resolver.list_prefix)

    # -------------------------------------------------------------------------
    # DELETION
    # -------------------------------------------------------------------------

    def delete(self, id: str) -> bool:
        """Delete one object. Returns False if it was already absent."""
        key = self.object_key(id)
        deleted = self._transport.delete_object(self.bucket, key)
        self._metrics.delete_count += 1
        self._log.info("Deleted object", key=key, existed=deleted)
        return deleted

    def multi_delete(self, ids: Sequence[str]) -> int:
        """Delete many objects in bounded batches. Returns the number removed."""
        report = self._pager.delete_keys(self.object_key(id) for id in ids)
        self._metrics.record_batches(report)
        self._log.info(
            "Deleted objects", requested=len(ids), deleted=report.deleted, batches=report.batches,
        )
        return report.deleted

    def clear(self, predicate: Optional[Predicate] = None) -> int:
        """
        Delete every object in the namespace, or those `predicate` accepts.

        Only keys under "<prefix>/" are ever listed or deleted.

        Raises:
            PartialBatchFailure: If deletion failed after some objects were
                removed. Removed objects stay removed.
        """
        try:
            report = self._pager.clear(self._resolver.list_prefix, predicate)
        except PartialBatchFailure as e:
            self._log.failure("Clear aborted", e)
            raise
        self._metrics.record_batches(report)
        self._log.info("Cleared objects", deleted=report.deleted, batches=report.batches)
        return report.deleted

    # -------------------------------------------------------------------------
    # URLS AND SIGNING
    # -------------------------------------------------------------------------

    def url(
        self,
        id: str,
        expires: Optional[int] = None,
        acl: Optional[str] = None,
        method: str = "GET",
        credential: Optional[Credential] = None,
    ) -> str:
        """
        URL for the object.

        Signed when `expires` is given or when the object's ACL (the
        argument, else default_acl) is not public; plain otherwise.
        """
        key = self.object_key(id)
        effective_acl = acl if acl is not None else self._config.default_acl
        if expires is None and (effective_acl is None or effective_acl in C.PUBLIC_ACLS):
            return self._public_url(key)

        request = self._signer.build(
            key,
            self._credential(credential),
            method=method,
            expires=expires if expires is not None else self._config.presign_ttl_seconds,
        )
        self._metrics.signed_count += 1
        return self._signer.sign(request).url

    def presign(
        self,
        id: str,
        method: str = "GET",
        expires: Optional[int] = None,
        content_type: Optional[str] = None,
        content_md5: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        credential: Optional[Credential] = None,
    ) -> PresignedRequest:
        """
        Authorize a direct request, typically a browser upload with PUT.

        The returned headers must be sent verbatim with the request.
        """
        request = self._signer.build(
            self.object_key(id),
            self._credential(credential),
            method=method,
            expires=expires if expires is not None else self._config.presign_ttl_seconds,
            content_type=content_type,
            content_md5=content_md5,
            headers=headers,
        )
        self._metrics.signed_count += 1
        self._log.debug("Presigned request", key=request.key, method=request.method)
        return self._signer.presign(request)

    def _public_url(self, key: str) -> str:
        path = quote(key, safe="/~")
        if self._config.host:
            return f"https://{self._config.host}/{path}"
        return f"{C.STORAGE_ENDPOINT}/{self.bucket}/{path}"

    def _credential(self, explicit: Optional[Credential]) -> Credential:
        if explicit is not None:
            return explicit
        if self._config.credential is not None:
            return self._config.credential
        if self._config.credentials_file is not None:
            return Credential.from_service_account_file(self._config.credentials_file)
        return Credential.from_environment()

    def __repr__(self) -> str:
        return f"CloudObjectStore(bucket={self.bucket!r}, prefix={self.prefix!r})"


__all__ = ["CloudObjectStore", "StoredObject", "StoreMetrics"]
