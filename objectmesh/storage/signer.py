"""
Request Signer: V2-style signed URLs for direct object access.

Builds the canonical request string, signs it with an RSA/SHA-256 service
account key and assembles a time-bound URL. Nothing here talks to the
storage service, so presigning works offline.

Canonical string (newline-joined, absent fields dropped rather than
rendered as blank lines):

    HTTP-method
    content-MD5        ("" when not supplied)
    content-type       ("" when not supplied)
    expires            (absolute Unix seconds)
    extension headers  (sorted "x-goog-name:value" lines, absent if none)
    /bucket/object-key

URL wire format:

    https://storage.googleapis.com/<bucket>/<key>
        ?GoogleAccessId=<issuer>&Expires=<epoch>&Signature=<base64>

For identical inputs and a fixed clock the output is byte-identical:
PKCS#1 v1.5 signatures carry no salt, and every field has a fixed position.
"""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union
from urllib.parse import quote, urlsplit, urlunsplit

import google.auth
from google.auth import crypt
from google.auth.exceptions import DefaultCredentialsError, GoogleAuthError
from google.oauth2 import service_account

from objectmesh.core import constants as C
from objectmesh.core.errors import InvalidCredential

logger = logging.getLogger(__name__)

KeyMaterial = Union[str, bytes, crypt.Signer]


# =============================================================================
# CREDENTIAL
# =============================================================================

@dataclass(frozen=True)
class Credential:
    """
    Signing identity: RSA private key material plus the issuing account.

    private_key may be a PEM string/bytes or an already-loaded
    google.auth.crypt.Signer. The parsed key is never cached between
    signing calls.
    """

    private_key: KeyMaterial = field(repr=False)
    issuer: str

    def load_signer(self) -> crypt.Signer:
        """Parse the key material, raising InvalidCredential if it is not an RSA key."""
        if isinstance(self.private_key, crypt.Signer):
            return self.private_key
        try:
            return crypt.RSASigner.from_string(self.private_key)
        except (ValueError, TypeError, IndexError) as e:
            raise InvalidCredential.unparseable(self.issuer, cause=e) from e

    def sign(self, payload: bytes) -> bytes:
        signer = self.load_signer()
        try:
            return signer.sign(payload)
        except (ValueError, TypeError, AttributeError) as e:
            raise InvalidCredential.unparseable(self.issuer, cause=e) from e

    @classmethod
    def from_service_account_info(cls, info: Mapping[str, Any]) -> Credential:
        """Build from a parsed service-account JSON document."""
        try:
            creds = service_account.Credentials.from_service_account_info(dict(info))
        except (ValueError, KeyError) as e:
            raise InvalidCredential.unavailable("invalid service account info", cause=e) from e
        return cls(private_key=creds.signer, issuer=creds.service_account_email)

    @classmethod
    def from_service_account_file(cls, path: Union[str, Path]) -> Credential:
        """Build from a service-account JSON key file."""
        try:
            creds = service_account.Credentials.from_service_account_file(str(path))
        except (OSError, ValueError, KeyError) as e:
            raise InvalidCredential.unavailable(
                f"cannot load service account file {path}", cause=e
            ) from e
        return cls(private_key=creds.signer, issuer=creds.service_account_email)

    @classmethod
    def from_environment(cls) -> Credential:
        """
        Discover application-default credentials.

        Only service-account credentials carry a private key, so user or
        metadata-server credentials are rejected.
        """
        try:
            creds, _project = google.auth.default(scopes=[C.STORAGE_SCOPE])
        except (DefaultCredentialsError, GoogleAuthError) as e:
            raise InvalidCredential.unavailable("no application default credentials", cause=e) from e

        signer = getattr(creds, "signer", None)
        issuer = getattr(creds, "service_account_email", None)
        if signer is None or not issuer:
            raise InvalidCredential.unavailable(
                f"{type(creds).__name__} credentials cannot sign URLs offline"
            )
        return cls(private_key=signer, issuer=issuer)


# =============================================================================
# REQUEST AND RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class SigningRequest:
    """Everything that goes into one signature."""

    method: str
    bucket: str
    key: str
    expires_at: int
    credential: Credential
    content_type: Optional[str] = None
    content_md5: Optional[str] = None
    extra_headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.expires_at < 0:
            raise ValueError(f"expires_at must be >= 0, got {self.expires_at}")

    @property
    def resource(self) -> str:
        """Canonical resource path: /bucket/url-encoded-key."""
        return f"/{self.bucket}/{quote(self.key, safe='/~')}"


@dataclass(frozen=True)
class SignedURL:
    """A signed, time-bound URL."""
    url: str
    method: str
    expires_at: int


@dataclass(frozen=True)
class PresignedRequest:
    """
    Everything a client needs to perform the request directly:
    method, URL and the headers it must send verbatim.
    """
    method: str
    url: str
    headers: dict[str, str]
    expires_at: int

    def to_dict(self) -> dict[str, Any]:
        return {"method": self.method, "url": self.url, "headers": dict(self.headers)}


# =============================================================================
# SIGNER
# =============================================================================

_CONTENT_HEADERS = {"content-type": "Content-Type", "content-md5": "Content-MD5"}


def _header_lookup(headers: Mapping[str, str], name: str) -> Optional[str]:
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return None


def canonical_extension_headers(headers: Mapping[str, str]) -> Optional[str]:
    """Sorted x-goog-* headers as "name:value" lines, None when there are none."""
    lines = sorted(
        f"{name.lower().strip()}:{str(value).strip()}"
        for name, value in headers.items()
        if name.lower().startswith(C.EXTENSION_HEADER_PREFIX)
    )
    return "\n".join(lines) if lines else None


def canonical_string(request: SigningRequest) -> str:
    """The exact string that gets signed."""
    fields = [
        request.method,
        request.content_md5 or "",
        request.content_type or "",
        str(request.expires_at),
        canonical_extension_headers(request.extra_headers),
        request.resource,
    ]
    return "\n".join(f for f in fields if f is not None)


class RequestSigner:
    """
    Produces signed URLs and upload authorizations for one bucket.

    Args:
        bucket: Bucket named in the canonical resource.
        host: Optional display host; replaces the storage authority in
            signed URLs after signing.
        storage_host: Authority the signature is issued for.
        clock: Returns the current Unix time; injectable for tests.
    """

    __slots__ = ("_bucket", "_host", "_storage_host", "_clock")

    def __init__(
        self,
        bucket: str,
        host: Optional[str] = None,
        storage_host: str = C.STORAGE_HOST,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._bucket = bucket
        self._host = host
        self._storage_host = storage_host
        self._clock = clock

    def build(
        self,
        key: str,
        credential: Credential,
        method: str = "GET",
        expires: int = C.DEFAULT_PRESIGN_TTL,
        content_type: Optional[str] = None,
        content_md5: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> SigningRequest:
        """
        Assemble a SigningRequest expiring `expires` seconds from now.

        Caller headers win over content_type/content_md5 on collision, and
        the canonical string uses whichever value wins.
        """
        method = method.upper()
        if method not in C.SIGNABLE_METHODS:
            raise ValueError(f"Unsupported signing method: {method}")
        if expires < 0:
            raise ValueError(f"expires must be >= 0, got {expires}")

        extra = dict(headers or {})
        content_type = _header_lookup(extra, "Content-Type") or content_type
        content_md5 = _header_lookup(extra, "Content-MD5") or content_md5

        return SigningRequest(
            method=method,
            bucket=self._bucket,
            key=key,
            expires_at=int(self._clock()) + expires,
            credential=credential,
            content_type=content_type,
            content_md5=content_md5,
            extra_headers=extra,
        )

    def sign(self, request: SigningRequest) -> SignedURL:
        """Sign a request and return the URL carrying the authorization."""
        to_sign = canonical_string(request)
        signature = base64.b64encode(request.credential.sign(to_sign.encode("utf-8")))
        signature_text = signature.decode("ascii").replace("\n", "")

        url = (
            f"https://{self._storage_host}{request.resource}"
            f"?GoogleAccessId={quote(request.credential.issuer, safe='@')}"
            f"&Expires={request.expires_at}"
            f"&Signature={quote(signature_text, safe='')}"
        )
        logger.debug(
            "Signed %s request for /%s/%s expiring at %d",
            request.method, request.bucket, request.key, request.expires_at,
        )
        return SignedURL(url=self._display(url), method=request.method, expires_at=request.expires_at)

    def presign(self, request: SigningRequest) -> PresignedRequest:
        """
        Upload-style authorization: method, URL and the headers to send.

        Headers include Content-Type/Content-MD5 when supplied plus every
        caller header, caller values taking precedence.
        """
        signed = self.sign(request)
        headers: dict[str, str] = {}
        if request.content_type:
            headers["Content-Type"] = request.content_type
        if request.content_md5:
            headers["Content-MD5"] = request.content_md5
        for name, value in request.extra_headers.items():
            # caller casing replaces ours
            headers.pop(_CONTENT_HEADERS.get(name.lower(), name), None)
            headers[name] = value
        return PresignedRequest(
            method=request.method,
            url=signed.url,
            headers=headers,
            expires_at=request.expires_at,
        )

    def _display(self, url: str) -> str:
        """Swap the storage authority for the display host, exact-match only."""
        if not self._host:
            return url
        parts = urlsplit(url)
        if parts.netloc != self._storage_host:
            return url
        return urlunsplit(parts._replace(netloc=self._host))


__all__ = [
    "Credential",
    "SigningRequest",
    "SignedURL",
    "PresignedRequest",
    "RequestSigner",
    "canonical_string",
    "canonical_extension_headers",
]
