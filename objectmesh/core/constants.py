"""
System-Wide Constants for the objectmesh storage adapter

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# SIZE AND TIME UNITS
# =============================================================================
KB: Final[int] = 1024
MB: Final[int] = 1024 * KB

SECOND: Final[int] = 1
MINUTE: Final[int] = 60 * SECOND
HOUR: Final[int] = 60 * MINUTE

# =============================================================================
# STORAGE SERVICE
# =============================================================================
STORAGE_HOST: Final[str] = "storage.googleapis.com"
STORAGE_ENDPOINT: Final[str] = f"https://{STORAGE_HOST}"
STORAGE_REGION: Final[str] = "auto"
STORAGE_SCOPE: Final[str] = "https://www.googleapis.com/auth/devstorage.read_write"

# Canned ACLs that make an object readable without a signature
PUBLIC_ACLS: Final[frozenset[str]] = frozenset({"public-read", "public-read-write"})

# =============================================================================
# SIGNING
# =============================================================================
DEFAULT_PRESIGN_TTL: Final[int] = 5 * MINUTE
SIGNABLE_METHODS: Final[frozenset[str]] = frozenset({"GET", "HEAD", "PUT", "DELETE"})
EXTENSION_HEADER_PREFIX: Final[str] = "x-goog-"

# =============================================================================
# LISTING AND BATCH DELETION
# =============================================================================
MAX_BATCH: Final[int] = 100          # hard limit of one bulk-delete call
DEFAULT_PAGE_SIZE: Final[int] = 1000
MAX_PAGE_SIZE: Final[int] = 1000

# =============================================================================
# STREAMING
# =============================================================================
DEFAULT_CHUNK_SIZE: Final[int] = 1 * MB
HANDOFF_SLOTS: Final[int] = 1        # chunks in flight between fetch and reader
HANDOFF_POLL_SECONDS: Final[float] = 0.1
TEMPFILE_PREFIX: Final[str] = "objectmesh"

# =============================================================================
# TRANSPORT CLIENT
# =============================================================================
CLIENT_TTL_SECONDS: Final[int] = 50 * MINUTE
CONNECT_TIMEOUT_SECONDS: Final[int] = 10
READ_TIMEOUT_SECONDS: Final[int] = 60
MAX_RETRIES: Final[int] = 3
