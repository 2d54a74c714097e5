"""
Configuration Management for the objectmesh storage adapter

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after construction
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, Optional

from objectmesh.core.types import Result, Ok, Err
from objectmesh.core import constants as C

if TYPE_CHECKING:
    from objectmesh.storage.signer import Credential


@dataclass(frozen=True)
class StoreConfig:
    """
    Bucket-level options of one store instance.

    Attributes:
        bucket: Bucket every operation targets.
        prefix: Namespace prepended to every object key ("" or None for none).
        host: Custom display host (CDN) used for public and signed URLs.
        default_acl: Canned ACL applied on upload and copy.
        object_options: Options merged into every upload/copy call.
        credential: Explicit signing credential overriding ambient discovery.
        credentials_file: Service-account JSON used when credential is unset.
    """

    bucket: str = ""
    prefix: Optional[str] = None
    host: Optional[str] = None
    default_acl: Optional[str] = None
    object_options: Mapping[str, Any] = field(default_factory=dict)
    credential: Optional["Credential"] = None
    credentials_file: Optional[Path] = None
    presign_ttl_seconds: int = C.DEFAULT_PRESIGN_TTL
    page_size: int = C.DEFAULT_PAGE_SIZE
    batch_size: int = C.MAX_BATCH


@dataclass(frozen=True)
class TransportConfig:
    """Connection settings for the GCS XML interoperability endpoint."""

    endpoint_url: str = C.STORAGE_ENDPOINT
    region: str = C.STORAGE_REGION
    access_key_id: str = ""
    secret_access_key: str = ""
    connect_timeout_seconds: int = C.CONNECT_TIMEOUT_SECONDS
    read_timeout_seconds: int = C.READ_TIMEOUT_SECONDS
    max_retries: int = C.MAX_RETRIES
    client_ttl_seconds: int = C.CLIENT_TTL_SECONDS
    chunk_size: int = C.DEFAULT_CHUNK_SIZE


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = True


@dataclass(frozen=True)
class ObjectMeshConfig:
    """Root configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[ObjectMeshConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with OBJECTMESH_.
        Example: OBJECTMESH_BUCKET, OBJECTMESH_PREFIX
        """
        try:
            credentials_file = os.getenv("OBJECTMESH_CREDENTIALS_FILE")
            object_options = json.loads(os.getenv("OBJECTMESH_OBJECT_OPTIONS", "{}"))
            if not isinstance(object_options, dict):
                return Err("Configuration error: OBJECTMESH_OBJECT_OPTIONS must be a JSON object")

            store = StoreConfig(
                bucket=os.getenv("OBJECTMESH_BUCKET", ""),
                prefix=os.getenv("OBJECTMESH_PREFIX") or None,
                host=os.getenv("OBJECTMESH_HOST") or None,
                default_acl=os.getenv("OBJECTMESH_DEFAULT_ACL") or None,
                object_options=object_options,
                credentials_file=Path(credentials_file) if credentials_file else None,
                presign_ttl_seconds=int(
                    os.getenv("OBJECTMESH_PRESIGN_TTL", str(C.DEFAULT_PRESIGN_TTL))
                ),
            )

            transport = TransportConfig(
                endpoint_url=os.getenv("OBJECTMESH_ENDPOINT_URL", C.STORAGE_ENDPOINT),
                region=os.getenv("OBJECTMESH_REGION", C.STORAGE_REGION),
                access_key_id=os.getenv("OBJECTMESH_HMAC_ACCESS_KEY_ID", ""),
                secret_access_key=os.getenv("OBJECTMESH_HMAC_SECRET", ""),
            )

            observability = ObservabilityConfig(
                log_level=os.getenv("OBJECTMESH_LOG_LEVEL", "INFO").upper(),
                log_json=os.getenv("OBJECTMESH_LOG_JSON", "true").lower() in ("1", "true", "yes"),
            )

            return Ok(cls(store=store, transport=transport, observability=observability))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        store_check = validate_store(self.store)
        if store_check.is_err():
            return store_check
        if self.transport.chunk_size < 1:
            return Err("chunk_size must be >= 1")
        if self.transport.client_ttl_seconds < 1:
            return Err("client_ttl_seconds must be >= 1")
        if bool(self.transport.access_key_id) != bool(self.transport.secret_access_key):
            return Err("HMAC access key id and secret must be set together")
        return Ok(None)


def validate_store(store: StoreConfig) -> Result[None, str]:
    """Validate the bucket-level invariants of a StoreConfig."""
    if not store.bucket:
        return Err("bucket is required")
    if store.prefix and (store.prefix.startswith("/") or store.prefix.endswith("/")):
        return Err(f"prefix must not start or end with '/': {store.prefix!r}")
    if not 1 <= store.batch_size <= C.MAX_BATCH:
        return Err(f"batch_size must be between 1 and {C.MAX_BATCH}")
    if not 1 <= store.page_size <= C.MAX_PAGE_SIZE:
        return Err(f"page_size must be between 1 and {C.MAX_PAGE_SIZE}")
    if store.presign_ttl_seconds < 0:
        return Err("presign_ttl_seconds must be >= 0")
    return Ok(None)
