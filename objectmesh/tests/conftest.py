"""
Shared fixtures: in-memory transport, stores and the fixed signing key.

The signing key is a throwaway RSA key used only by this test-suite. Expected
signatures in the tests were computed from it for the fixed clock below.
"""

from pathlib import Path

import pytest

from objectmesh.core.config import StoreConfig
from objectmesh.storage.memory import InMemoryTransport
from objectmesh.storage.object_store import CloudObjectStore
from objectmesh.storage.signer import Credential

FIXTURES = Path(__file__).parent / "fixtures"

BUCKET = "shrine-test"
ISSUER = "test-shrine@test.google"
NOW = 1486649900          # Expires=1486650200 with the default 300s TTL


@pytest.fixture
def signing_key_pem() -> str:
    return (FIXTURES / "signing_key.pem").read_text()


@pytest.fixture
def credential(signing_key_pem) -> Credential:
    return Credential(private_key=signing_key_pem, issuer=ISSUER)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def transport() -> InMemoryTransport:
    # small chunks so streams span several handoffs
    return InMemoryTransport(chunk_size=4)


@pytest.fixture
def make_store(transport, credential, clock):
    """Factory for stores sharing the fixture transport."""

    def _make(**overrides) -> CloudObjectStore:
        options = {"bucket": BUCKET, "credential": credential}
        options.update(overrides)
        return CloudObjectStore(StoreConfig(**options), transport=transport, clock=clock)

    return _make


@pytest.fixture
def store(make_store) -> CloudObjectStore:
    return make_store()


@pytest.fixture
def prefixed_store(make_store) -> CloudObjectStore:
    return make_store(prefix="pre")
