"""
GCS Interoperability Transport
==============================

Transport implementation speaking the Cloud Storage XML API through its
S3-compatible interoperability endpoint with boto3 and HMAC keys.

Design Principles:
------------------
1. **Lazy client**: the boto3 client is created on first use and rebuilt
   once its lifetime (client_ttl_seconds) elapses. The expiry check and the
   rebuild run under one lock so concurrent callers never race.
2. **Push downloads**: get_object_range() streams the response body into a
   caller-supplied sink chunk by chunk, never holding the whole object.
3. **Error translation**: 404s become None/False/ObjectNotFound depending
   on the operation; every other failure becomes TransportError.
4. **No retries here**: retries are configured on botocore's client.

Compatibility:
--------------
- Path-style addressing (bucket in the path, not the host)
- Checksums only when the operation requires them; the XML API rejects
  the default CRC32 trailers newer botocore releases send
- The XML API has no multi-object delete, so delete_objects() issues one
  DELETE per key and reports per-key failures
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from objectmesh.core.config import TransportConfig
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

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})

# Object option names accepted by upload/copy and their S3 parameter names
OPTION_PARAMS: Dict[str, str] = {
    "acl": "ACL",
    "cache_control": "CacheControl",
    "content_disposition": "ContentDisposition",
    "content_encoding": "ContentEncoding",
    "content_language": "ContentLanguage",
    "content_type": "ContentType",
    "metadata": "Metadata",
    "storage_class": "StorageClass",
}


# =============================================================================
# HELPERS
# =============================================================================

def build_client(config: TransportConfig) -> Any:
    """Create a boto3 S3 client bound to the interoperability endpoint."""
    session_kwargs: Dict[str, Any] = {}
    if config.access_key_id and config.secret_access_key:
        session_kwargs["aws_access_key_id"] = config.access_key_id
        session_kwargs["aws_secret_access_key"] = config.secret_access_key

    session = boto3.session.Session(**session_kwargs)
    client_config = Config(
        connect_timeout=config.connect_timeout_seconds,
        read_timeout=config.read_timeout_seconds,
        retries={"max_attempts": config.max_retries, "mode": "standard"},
        signature_version="s3v4",
        s3={"addressing_style": "path"},
        request_checksum_calculation="when_required",
        response_checksum_validation="when_required",
    )
    return session.client(
        "s3",
        endpoint_url=config.endpoint_url,
        region_name=config.region,
        config=client_config,
    )


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _status(error: ClientError) -> Optional[int]:
    return error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def _is_not_found(error: ClientError) -> bool:
    return _error_code(error) in NOT_FOUND_CODES


def object_params(options: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Translate snake_case object options into S3 request parameters."""
    params: Dict[str, Any] = {}
    for name, value in (options or {}).items():
        if value is None:
            continue
        if name in OPTION_PARAMS:
            params[OPTION_PARAMS[name]] = value
        elif name in OPTION_PARAMS.values():
            params[name] = value
        else:
            raise ValueError(f"Unsupported object option: {name}")
    if "Metadata" in params:
        params["Metadata"] = {str(k): str(v) for k, v in params["Metadata"].items()}
    return params


# =============================================================================
# TRANSPORT
# =============================================================================

class GCSInteropTransport:
    """
    boto3-backed Transport for Cloud Storage.

    Example:
        >>> transport = GCSInteropTransport(TransportConfig(
        ...     access_key_id="GOOG1E...", secret_access_key="..."))
        >>> transport.head_object("media", "avatars/1.jpg")
    """

    __slots__ = (
        "_config",
        "_client_factory",
        "_clock",
        "_client",
        "_expires_at",
        "_lock",
    )

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        client_factory: Callable[[TransportConfig], Any] = build_client,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or TransportConfig()
        self._client_factory = client_factory
        self._clock = clock
        self._client: Any = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    @property
    def identity(self) -> BackendRef:
        return BackendRef(service=self._config.endpoint_url.rstrip("/"))

    def client(self) -> Any:
        """Return the cached client, rebuilding it once it has expired."""
        with self._lock:
            now = self._clock()
            if self._client is None or now >= self._expires_at:
                if self._client is not None:
                    logger.debug("Refreshing expired storage client")
                self._client = self._client_factory(self._config)
                self._expires_at = now + self._config.client_ttl_seconds
            return self._client

    # -------------------------------------------------------------------------
    # CORE OPERATIONS
    # -------------------------------------------------------------------------

    def put_object(
        self,
        bucket: str,
        key: str,
        body: Body,
        content_type: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ObjectRef:
        """
        Upload bytes in one PUT, or stream a file object through s3transfer.

        s3transfer switches to a multipart upload once the source passes its
        multipart threshold, so large file objects take several requests.
        File-object uploads read their size and etag back with a HEAD.
        """
        params = object_params(options)
        if content_type:
            params["ContentType"] = content_type

        client = self.client()
        try:
            if isinstance(body, (bytes, bytearray)):
                response = client.put_object(Bucket=bucket, Key=key, Body=bytes(body), **params)
                etag = response.get("ETag", "").strip('"') or None
                size: Optional[int] = len(body)
            else:
                client.upload_fileobj(body, bucket, key, ExtraArgs=params or None)
                etag, size = None, None
                stored = self.head_object(bucket, key)
                if stored is not None:
                    etag, size = stored.etag, stored.size_bytes
        except ClientError as e:
            raise TransportError.from_exception(
                "put_object", e, bucket=bucket, key=key, status=_status(e)
            ) from e
        except (BotoCoreError, S3UploadFailedError) as e:
            raise TransportError.from_exception("put_object", e, bucket=bucket, key=key) from e

        return ObjectRef(
            bucket=bucket,
            key=key,
            size_bytes=size,
            content_type=params.get("ContentType"),
            etag=etag,
            metadata=params.get("Metadata", {}),
        )

    def get_object_range(
        self,
        bucket: str,
        key: str,
        byte_range: Optional[ByteRange],
        sink: ChunkSink,
    ) -> None:
        """Push the object (or the requested range) into sink.write()."""
        kwargs: Dict[str, Any] = {"Bucket": bucket, "Key": key}
        if byte_range is not None:
            kwargs["Range"] = byte_range.to_http_header()

        try:
            response = self.client().get_object(**kwargs)
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFound.for_key(bucket, key, cause=e) from e
            raise TransportError.from_exception(
                "get_object_range", e, bucket=bucket, key=key, status=_status(e)
            ) from e
        except BotoCoreError as e:
            raise TransportError.from_exception("get_object_range", e, bucket=bucket, key=key) from e

        body = response["Body"]
        try:
            for chunk in body.iter_chunks(chunk_size=self._config.chunk_size):
                sink.write(chunk)
        except BotoCoreError as e:
            raise TransportError.from_exception("get_object_range", e, bucket=bucket, key=key) from e
        finally:
            body.close()

    def head_object(self, bucket: str, key: str) -> Optional[ObjectRef]:
        try:
            response = self.client().head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise TransportError.from_exception(
                "head_object", e, bucket=bucket, key=key, status=_status(e)
            ) from e
        except BotoCoreError as e:
            raise TransportError.from_exception("head_object", e, bucket=bucket, key=key) from e

        return ObjectRef(
            bucket=bucket,
            key=key,
            size_bytes=response.get("ContentLength"),
            content_type=response.get("ContentType"),
            etag=response.get("ETag", "").strip('"') or None,
            updated_at=response.get("LastModified"),
            metadata=response.get("Metadata", {}),
        )

    def delete_object(self, bucket: str, key: str) -> bool:
        """Delete one object; False when it was already gone."""
        try:
            self.client().delete_object(Bucket=bucket, Key=key)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise TransportError.from_exception(
                "delete_object", e, bucket=bucket, key=key, status=_status(e)
            ) from e
        except BotoCoreError as e:
            raise TransportError.from_exception("delete_object", e, bucket=bucket, key=key) from e

    def delete_objects(self, bucket: str, keys: Sequence[str]) -> List[DeleteFailure]:
        """Delete one batch of keys, reporting every key that was not removed."""
        client = self.client()
        failures: List[DeleteFailure] = []
        for key in keys:
            try:
                client.delete_object(Bucket=bucket, Key=key)
            except ClientError as e:
                failures.append(DeleteFailure(
                    key=key,
                    code=_error_code(e),
                    message=str(e),
                    not_found=_is_not_found(e),
                ))
            except BotoCoreError as e:
                failures.append(DeleteFailure(key=key, code=type(e).__name__, message=str(e)))
        return failures

    # -------------------------------------------------------------------------
    # LIST OPERATIONS
    # -------------------------------------------------------------------------

    def list_objects(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        page_token: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> ListPage:
        """One page of keys under prefix; next_token is None on the last page."""
        kwargs: Dict[str, Any] = {"Bucket": bucket}
        if prefix:
            kwargs["Prefix"] = prefix
        if page_token:
            kwargs["ContinuationToken"] = page_token
        if page_size:
            kwargs["MaxKeys"] = page_size

        try:
            response = self.client().list_objects_v2(**kwargs)
        except ClientError as e:
            raise TransportError.from_exception(
                "list_objects", e, bucket=bucket, status=_status(e)
            ) from e
        except BotoCoreError as e:
            raise TransportError.from_exception("list_objects", e, bucket=bucket) from e

        entries = [
            ObjectRef(
                bucket=bucket,
                key=obj["Key"],
                size_bytes=obj.get("Size"),
                etag=obj.get("ETag", "").strip('"') or None,
                updated_at=obj.get("LastModified"),
            )
            for obj in response.get("Contents", [])
        ]
        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return ListPage(entries=entries, next_token=next_token)

    # -------------------------------------------------------------------------
    # COPY OPERATIONS
    # -------------------------------------------------------------------------

    def copy_object(
        self,
        src_bucket: str,
        src_key: str,
        dst_bucket: str,
        dst_key: str,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ObjectRef:
        """
        Server-side copy. Metadata is replaced with `options`, so the caller
        must pass content_type explicitly.
        """
        params = object_params(options)
        try:
            response = self.client().copy_object(
                Bucket=dst_bucket,
                Key=dst_key,
                CopySource={"Bucket": src_bucket, "Key": src_key},
                MetadataDirective="REPLACE",
                **params,
            )
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFound.for_key(src_bucket, src_key, cause=e) from e
            raise TransportError.from_exception(
                "copy_object", e, bucket=dst_bucket, key=dst_key, status=_status(e)
            ) from e
        except BotoCoreError as e:
            raise TransportError.from_exception("copy_object", e, bucket=dst_bucket, key=dst_key) from e

        result = response.get("CopyObjectResult", {})
        return ObjectRef(
            bucket=dst_bucket,
            key=dst_key,
            content_type=params.get("ContentType"),
            etag=result.get("ETag", "").strip('"') or None,
            updated_at=result.get("LastModified"),
            metadata=params.get("Metadata", {}),
        )


__all__ = [
    "GCSInteropTransport",
    "build_client",
    "object_params",
    "OPTION_PARAMS",
]
