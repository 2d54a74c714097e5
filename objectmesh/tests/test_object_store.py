"""
Integration Tests: Object Store Facade

Tests:
    - Existence and idempotent deletion
    - Upload option merging and server-side copy
    - Plain and signed URLs, presigned uploads
    - Namespace-scoped clear and multi-delete
    - Credential resolution and configuration errors
"""

import pytest

from objectmesh.core.config import StoreConfig
from objectmesh.core.errors import ConfigurationError, ObjectNotFound, TransportError
from objectmesh.storage.memory import InMemoryTransport
from objectmesh.storage.object_store import CloudObjectStore, StoredObject
from objectmesh.storage.signer import Credential
from objectmesh.tests.conftest import BUCKET, ISSUER
from objectmesh.tests.test_signer import GET_URL, PUT_SIGNATURE


class FailingHeadTransport(InMemoryTransport):
    def head_object(self, bucket, key):
        raise TransportError.failed("head_object", "AccessDenied", bucket=bucket, key=key, status=403)


class TestExistsAndDelete:
    """Tests for exists/delete absence handling."""

    def test_exists(self, store):
        assert not store.exists("a.txt")
        store.upload(b"data", "a.txt")
        assert store.exists("a.txt")

    def test_delete_idempotent(self, store):
        """Deleting twice succeeds; the second call reports absence."""
        store.upload(b"data", "a.txt")
        assert store.delete("a.txt") is True
        assert store.delete("a.txt") is False
        assert not store.exists("a.txt")

    def test_exists_does_not_swallow_failures(self):
        """'Could not determine' never collapses into False."""
        store = CloudObjectStore(StoreConfig(bucket=BUCKET), transport=FailingHeadTransport())
        with pytest.raises(TransportError):
            store.exists("a.txt")

    def test_open_missing(self, store):
        with pytest.raises(ObjectNotFound):
            store.open("nope.txt")
        with pytest.raises(ObjectNotFound):
            store.download("nope.txt")


class TestUpload:
    """Tests for uploads and copies."""

    def test_roundtrip(self, store):
        stored = store.upload(b"file", "a.txt", content_type="text/plain")
        assert isinstance(stored, StoredObject)
        with store.open("a.txt") as stream:
            assert stream.read() == b"file"
        assert stored.read() == b"file"
        assert stored.size == 4
        assert stored.content_type == "text/plain"

    def test_prefix_applied(self, prefixed_store, transport):
        stored = prefixed_store.upload(b"x", "a.txt")
        assert stored.key == "pre/a.txt"
        assert transport.keys(BUCKET) == ["pre/a.txt"]

    def test_options_merged(self, make_store, transport):
        """object_options, then default_acl, then caller options."""
        store = make_store(
            default_acl="public-read",
            object_options={"cache_control": "max-age=60", "content_language": "en"},
        )
        store.upload(b"x", "a.txt", content_type="text/plain", content_language="fr")
        assert transport.stored_options(BUCKET, "a.txt") == {
            "content_type": "text/plain",
            "cache_control": "max-age=60",
            "content_language": "fr",
            "acl": "public-read",
        }

    def test_acl_argument_wins(self, make_store, transport):
        store = make_store(default_acl="public-read")
        store.upload(b"x", "a.txt", acl="private")
        assert transport.stored_options(BUCKET, "a.txt")["acl"] == "private"

    def test_same_backend_copy(self, store, prefixed_store, transport):
        """Uploading a stored object from the same backend copies it server-side."""
        stored = store.upload(b"file", "a.txt", content_type="text/plain")
        copied = prefixed_store.upload(stored, "b.txt")

        assert copied.key == "pre/b.txt"
        assert len(transport.calls_to("put_object")) == 1
        assert len(transport.calls_to("copy_object")) == 1
        assert transport.stored_options(BUCKET, "pre/b.txt")["content_type"] == "text/plain"
        assert copied.read() == b"file"
        assert prefixed_store.metrics.copy_count == 1

    def test_copy_keeps_options(self, make_store, transport):
        store = make_store(default_acl="private", object_options={"cache_control": "no-store"})
        stored = store.upload(b"file", "a.txt", content_type="text/plain")
        store.upload(stored, "b.txt", metadata={"owner": "qa"})
        assert transport.stored_options(BUCKET, "b.txt") == {
            "content_type": "text/plain",
            "cache_control": "no-store",
            "acl": "private",
            "metadata": {"owner": "qa"},
        }

    def test_other_backend_streams(self, store, credential):
        """A source on another backend is transferred byte by byte."""
        other_transport = InMemoryTransport()
        other = CloudObjectStore(
            StoreConfig(bucket="elsewhere", credential=credential), transport=other_transport,
        )
        stored = store.upload(b"file", "a.txt", content_type="text/plain")
        moved = other.upload(stored, "a.txt")

        assert other_transport.calls_to("copy_object") == []
        assert other_transport.stored_options("elsewhere", "a.txt")["content_type"] == "text/plain"
        assert moved.read() == b"file"

    def test_metrics(self, store):
        store.upload(b"12345", "a.txt")
        store.delete("a.txt")
        metrics = store.metrics.to_dict()
        assert metrics["upload_count"] == 1
        assert metrics["bytes_uploaded"] == 5
        assert metrics["delete_count"] == 1


class TestStoredObject:
    """Tests for the StoredObject handle."""

    def test_handle_operations(self, store):
        stored = store.upload(b"data", "a.txt")
        assert stored.exists()
        assert stored.url() == "https://storage.googleapis.com/shrine-test/a.txt"
        assert stored.delete()
        assert not stored.exists()

    def test_equality(self, store):
        first = store.upload(b"data", "a.txt")
        second = StoredObject("a.txt", store)
        assert first == second
        assert hash(first) == hash(second)
        assert first != StoredObject("b.txt", store)

    def test_source_location(self, prefixed_store, transport):
        location = prefixed_store.upload(b"x", "a.txt").source_location()
        assert location.backend == transport.identity
        assert (location.bucket, location.key) == (BUCKET, "pre/a.txt")


class TestURLs:
    """Tests for url() and presign()."""

    def test_plain_url(self, store):
        assert store.url("a b.txt") == "https://storage.googleapis.com/shrine-test/a%20b.txt"

    def test_plain_url_with_host(self, make_store):
        store = make_store(host="cdn.example.com", prefix="pre")
        assert store.url("a.txt") == "https://cdn.example.com/pre/a.txt"

    def test_public_acl_is_plain(self, make_store):
        store = make_store(default_acl="public-read")
        assert "Signature=" not in store.url("a.txt")

    def test_expires_signs(self, store):
        assert store.url("test_presign.txt", expires=300) == GET_URL

    def test_private_acl_signs(self, make_store):
        """A non-public default ACL signs with the default TTL."""
        store = make_store(default_acl="private")
        assert store.url("test_presign.txt") == GET_URL

    def test_public_acl_argument_overrides(self, make_store):
        store = make_store(default_acl="private")
        assert store.url("a.txt", acl="public-read") == (
            "https://storage.googleapis.com/shrine-test/a.txt"
        )

    def test_signed_url_with_host(self, make_store):
        store = make_store(host="cdn.example.com")
        assert store.url("test_presign.txt", expires=300) == GET_URL.replace(
            "storage.googleapis.com", "cdn.example.com", 1,
        )

    def test_presign_put(self, prefixed_store):
        presigned = prefixed_store.presign(
            "upload.txt", method="PUT", content_type="text/plain", content_md5="xyz",
        )
        assert presigned.method == "PUT"
        assert presigned.url == (
            "https://storage.googleapis.com/shrine-test/pre/upload.txt"
            f"?GoogleAccessId={ISSUER}&Expires=1486650200&Signature={PUT_SIGNATURE}"
        )
        assert presigned.headers == {"Content-Type": "text/plain", "Content-MD5": "xyz"}

    def test_presign_ttl_from_config(self, make_store):
        store = make_store(presign_ttl_seconds=60)
        assert store.presign("a.txt").expires_at == 1486649900 + 60


class TestCredentialResolution:
    """Tests for the order in which signing credentials are found."""

    def test_explicit_wins(self, store, signing_key_pem):
        other = Credential(private_key=signing_key_pem, issuer="other@test.google")
        url = store.url("a.txt", expires=10, credential=other)
        assert "GoogleAccessId=other@test.google" in url

    def test_ambient_discovery(self, monkeypatch, transport, clock, credential):
        calls = []

        def discover(cls):
            calls.append(cls)
            return credential

        monkeypatch.setattr(Credential, "from_environment", classmethod(discover))
        store = CloudObjectStore(StoreConfig(bucket=BUCKET), transport=transport, clock=clock)
        assert store.url("test_presign.txt", expires=300) == GET_URL
        store.url("test_presign.txt", expires=300)
        # resolved per call, never cached
        assert len(calls) == 2

    def test_credentials_file(self, monkeypatch, transport, clock, credential, tmp_path):
        path = tmp_path / "sa.json"
        seen = []

        def from_file(cls, value):
            seen.append(value)
            return credential

        monkeypatch.setattr(Credential, "from_service_account_file", classmethod(from_file))
        store = CloudObjectStore(
            StoreConfig(bucket=BUCKET, credentials_file=path), transport=transport, clock=clock,
        )
        store.presign("a.txt")
        assert seen == [path]


class TestNamespaceDeletion:
    """Tests for clear() and multi_delete()."""

    def test_clear_prefix_isolation(self, make_store, transport):
        """Only keys under 'pre/' are touched."""
        root = make_store()
        root.upload(b"x", "foo")
        root.upload(b"x", "pre")
        scoped = make_store(prefix="pre")
        scoped.upload(b"x", "a")
        scoped.upload(b"x", "b")

        assert scoped.clear() == 2
        assert root.exists("foo")
        assert root.exists("pre")
        assert not scoped.exists("a")

    def test_clear_with_predicate(self, store):
        store.upload(b"x", "A")
        store.upload(b"x", "B")
        assert store.clear(lambda ref: ref.key == "A") == 1
        assert not store.exists("A")
        assert store.exists("B")

    def test_clear_batches(self, prefixed_store, transport):
        for i in range(250):
            transport.put_object(BUCKET, f"pre/{i:03d}", b"x")
        assert prefixed_store.clear() == 250
        sizes = [len(call["keys"]) for call in transport.calls_to("delete_objects")]
        assert sizes == [100, 100, 50]
        assert prefixed_store.metrics.batch_count == 3

    def test_multi_delete(self, prefixed_store, transport):
        prefixed_store.upload(b"x", "a")
        prefixed_store.upload(b"x", "b")
        assert prefixed_store.multi_delete(["a", "b", "ghost"]) == 2
        assert transport.calls_to("delete_objects")[0]["keys"] == ["pre/a", "pre/b", "pre/ghost"]

    def test_list(self, prefixed_store, transport):
        transport.put_object(BUCKET, "other", b"x")
        prefixed_store.upload(b"x", "a")
        assert [ref.key for ref in prefixed_store.list()] == ["pre/a"]


class TestConfiguration:
    """Tests for construction-time validation."""

    @pytest.mark.parametrize("config", [
        StoreConfig(bucket=""),
        StoreConfig(bucket=BUCKET, prefix="/pre"),
        StoreConfig(bucket=BUCKET, prefix="pre/"),
        StoreConfig(bucket=BUCKET, batch_size=101),
    ])
    def test_invalid(self, config, transport):
        with pytest.raises(ConfigurationError):
            CloudObjectStore(config, transport=transport)

    def test_download_extension(self, store):
        store.upload(b"%PDF", "docs/report.pdf")
        tmp = store.download("docs/report.pdf")
        try:
            assert tmp.name.endswith(".pdf")
            assert tmp.read() == b"%PDF"
        finally:
            tmp.close()
