"""
Streaming Transfer Adapter
==========================

Presents a remote object as a pull-style byte stream and performs uploads,
either by direct transfer or as a server-side copy.

Pull-from-push bridge:
----------------------
The transport downloads by pushing chunks into a sink. ChunkedStream runs
that push on a background thread whose sink is a bounded queue
(HANDOFF_SLOTS deep). The fetch thread blocks as soon as the queue is full,
so a slow reader holds the download back and at most one chunk sits
between the two sides.

    transport.get_object_range ──write()──▶ [handoff queue] ──read()──▶ caller

Rewinding:
----------
- rewindable=True keeps every fetched byte, so rewind() replays from memory
  without a second request
- rewindable=False keeps only the current chunk, and rewind() always raises
  NotSeekable

Lifecycle:
----------
A stream is a scoped resource. Use it as a context manager or call close();
closing cancels the background fetch and joins its thread. A stream that is
garbage-collected while open cancels its fetch without joining.

Failures:
---------
A fetch that fails part way never reads as end of stream. The error is
raised by the read that reaches it and by every read, read1() and eof()
after it, including reads that replay past the buffered bytes after rewind().
"""

from __future__ import annotations

import functools
import logging
import queue
import tempfile
import threading
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import IO, Any, Callable, Iterator, Mapping, Optional, Protocol, Sequence, Union

from objectmesh.core import constants as C
from objectmesh.core.errors import NotSeekable, ObjectNotFound, StreamClosed
from objectmesh.core.types import ByteRange
from objectmesh.storage.transport import BackendRef, ChunkSink, ObjectRef, Transport

logger = logging.getLogger(__name__)

RangeLike = Union[ByteRange, range, Sequence[int]]


# =============================================================================
# SOURCE CAPABILITY
# =============================================================================

@dataclass(frozen=True, slots=True)
class ObjectLocation:
    """Where an upload source already lives, if it lives in object storage."""
    backend: BackendRef
    bucket: str
    key: str


class UploadSource(Protocol):
    """Anything upload() accepts: a readable byte source."""

    def read(self, size: int = -1) -> bytes: ...


def source_location(source: Any) -> Optional[ObjectLocation]:
    """
    Ask a source where it is stored.

    Sources opt in by implementing source_location(); plain file objects
    have no location and are always transferred byte by byte.
    """
    query = getattr(source, "source_location", None)
    return query() if callable(query) else None


# =============================================================================
# HANDOFF
# =============================================================================

class _Cancelled(Exception):
    """Raised inside the fetch thread once the reader has closed the stream."""


@dataclass(frozen=True, slots=True)
class _Done:
    error: Optional[BaseException] = None


class _HandoffSink:
    """
    ChunkSink the transport writes into.

    write() blocks while the queue is full and raises _Cancelled once the
    reader is gone, which unwinds the transport's download loop.
    """

    __slots__ = ("_queue", "_cancelled", "_poll")

    def __init__(self, slots: int, cancelled: threading.Event, poll: float) -> None:
        self._queue: queue.Queue[Union[bytes, _Done]] = queue.Queue(maxsize=slots)
        self._cancelled = cancelled
        self._poll = poll

    def write(self, chunk: bytes) -> int:
        if chunk:
            self._put(bytes(chunk))
        return len(chunk)

    def finish(self, error: Optional[BaseException] = None) -> None:
        try:
            self._put(_Done(error))
        except _Cancelled:
            pass

    def take(self) -> Union[bytes, _Done]:
        return self._queue.get()

    def drain(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return

    def _put(self, item: Union[bytes, _Done]) -> None:
        while True:
            if self._cancelled.is_set():
                raise _Cancelled()
            try:
                self._queue.put(item, timeout=self._poll)
                return
            except queue.Full:
                continue


# =============================================================================
# CHUNKED STREAM
# =============================================================================

class ChunkedStream:
    """
    Read-only, optionally rewindable byte stream over a push-style download.

    The download starts on the first read, not on construction.

    Example:
        >>> with store.open("report.pdf") as stream:
        ...     for chunk in stream:
        ...         sink.write(chunk)
    """

    def __init__(
        self,
        key: str,
        fetch: Callable[[ChunkSink], None],
        size: Optional[int] = None,
        rewindable: bool = True,
        content_type: Optional[str] = None,
        slots: int = C.HANDOFF_SLOTS,
        poll_seconds: float = C.HANDOFF_POLL_SECONDS,
    ) -> None:
        self.key = key
        self.size = size
        self.content_type = content_type
        self.rewindable = rewindable
        self._fetch = fetch
        self._cancelled = threading.Event()
        self._sink = _HandoffSink(slots, self._cancelled, poll_seconds)
        self._thread: Optional[threading.Thread] = None
        self._buffer = bytearray()   # every fetched byte if rewindable, else the current chunk
        self._cursor = 0             # next unread index into _buffer
        self._position = 0           # bytes consumed since start (or last rewind)
        self._exhausted = False
        self._error: Optional[BaseException] = None
        self._closed = False

    # -------------------------------------------------------------------------
    # READING
    # -------------------------------------------------------------------------

    def read(self, size: Optional[int] = -1) -> bytes:
        """Read up to `size` bytes, or everything that is left when size < 0."""
        self._check_open()
        parts = []
        remaining = size if size is not None and size >= 0 else None
        try:
            while remaining is None or remaining > 0:
                if not self._available():
                    break
                data = self._take(self._unread() if remaining is None else remaining)
                parts.append(data)
                if remaining is not None:
                    remaining -= len(data)
        except Exception:
            # bytes taken by this call stay unread
            self._give_back(parts)
            raise
        return b"".join(parts)

    def read1(self, size: int = -1) -> bytes:
        """Return the next available chunk (b"" at end of stream)."""
        self._check_open()
        available = self._available()
        if not available:
            return b""
        return self._take(available if size < 0 else min(size, available))

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.read1()
            if not chunk:
                return
            yield chunk

    def eof(self) -> bool:
        self._check_open()
        return self._available() == 0

    def tell(self) -> int:
        return self._position

    def rewind(self) -> None:
        """Restart from the first byte, replaying buffered data."""
        self._check_open()
        if not self.rewindable:
            raise NotSeekable.for_key(self.key)
        self._cursor = 0
        self._position = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        # rewind() is the only repositioning; there is no seek()
        return False

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Cancel the download, release the fetch thread and drop buffers."""
        if self._closed:
            return
        self._closed = True
        self._cancelled.set()
        self._sink.drain()
        if self._thread is not None:
            self._thread.join()
        self._buffer = bytearray()

    def __enter__(self) -> ChunkedStream:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __del__(self) -> None:
        # abandoned while open: unblock and stop the fetch thread without joining
        if not getattr(self, "_closed", True):
            self._cancelled.set()
            self._sink.drain()

    def __repr__(self) -> str:
        return (
            f"ChunkedStream(key={self.key!r}, size={self.size}, "
            f"rewindable={self.rewindable}, position={self._position})"
        )

    # -------------------------------------------------------------------------
    # INTERNALS
    # -------------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise StreamClosed.for_key(self.key)

    def _unread(self) -> int:
        return len(self._buffer) - self._cursor

    def _take(self, n: int) -> bytes:
        data = bytes(self._buffer[self._cursor:self._cursor + n])
        self._cursor += len(data)
        self._position += len(data)
        return data

    def _give_back(self, parts: Sequence[bytes]) -> None:
        data = b"".join(parts)
        if not data:
            return
        self._position -= len(data)
        if self.rewindable:
            self._cursor -= len(data)
        else:
            self._buffer = bytearray(data) + self._buffer[self._cursor:]
            self._cursor = 0

    def _available(self) -> int:
        """Unread buffered bytes, pulling one chunk from the handoff when none are left."""
        if self._unread() == 0:
            chunk = self._next_chunk()
            if chunk is None:
                return 0
            if self.rewindable:
                self._buffer += chunk
            else:
                self._buffer = bytearray(chunk)
                self._cursor = 0
        return self._unread()

    def _next_chunk(self) -> Optional[bytes]:
        if self._error is not None:
            raise self._error
        if self._exhausted:
            return None
        if self._thread is None:
            # the fetch thread holds no reference to the stream
            self._thread = threading.Thread(
                target=_produce,
                args=(self.key, self._fetch, self._sink),
                name=f"objectmesh-fetch:{self.key}",
                daemon=True,
            )
            self._thread.start()

        item = self._sink.take()
        if isinstance(item, _Done):
            self._thread.join()
            if item.error is not None:
                self._error = item.error
                raise item.error
            self._exhausted = True
            return None
        return item


def _produce(key: str, fetch: Callable[[ChunkSink], None], sink: _HandoffSink) -> None:
    try:
        fetch(sink)
    except _Cancelled:
        logger.debug("Fetch of %s cancelled by reader", key)
        return
    except Exception as e:
        sink.finish(e)
        return
    sink.finish()


# =============================================================================
# TRANSFER ADAPTER
# =============================================================================

class TransferAdapter:
    """
    Uploads and downloads for one bucket over a Transport.

    Keys passed here are already resolved; the adapter never applies a prefix.
    """

    __slots__ = ("_transport", "_bucket")

    def __init__(self, transport: Transport, bucket: str) -> None:
        self._transport = transport
        self._bucket = bucket

    def upload(
        self,
        source: Union[bytes, UploadSource],
        key: str,
        content_type: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ObjectRef:
        """
        Store `source` under `key`.

        Sources already stored on the same backend are copied server-side;
        anything else is streamed to the backend in one request.
        """
        location = source_location(source)
        if location is not None and location.backend == self._transport.identity:
            return self.copy(location, key, content_type, options)

        logger.debug("Uploading to gs://%s/%s", self._bucket, key)
        return self._transport.put_object(self._bucket, key, source, content_type, options)

    def copy(
        self,
        location: ObjectLocation,
        key: str,
        content_type: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ObjectRef:
        """
        Server-side copy that re-asserts content type and object options.

        Copies replace metadata, so the source's content type is looked up
        when the caller does not supply one.
        """
        if content_type is None:
            source = self._transport.head_object(location.bucket, location.key)
            if source is None:
                raise ObjectNotFound.for_key(location.bucket, location.key)
            content_type = source.content_type

        copy_options = dict(options or {})
        if content_type:
            copy_options["content_type"] = content_type

        logger.debug(
            "Copying gs://%s/%s to gs://%s/%s",
            location.bucket, location.key, self._bucket, key,
        )
        return self._transport.copy_object(
            location.bucket, location.key, self._bucket, key, copy_options,
        )

    def open(
        self,
        key: str,
        rewindable: bool = True,
        byte_range: Optional[RangeLike] = None,
    ) -> ChunkedStream:
        """
        Open a lazy stream over the object.

        Raises ObjectNotFound before any transfer begins. A byte range is
        passed through to the fetch, never applied client-side.
        """
        ref = self._transport.head_object(self._bucket, key)
        if ref is None:
            raise ObjectNotFound.for_key(self._bucket, key)

        rng = ByteRange.coerce(byte_range) if byte_range is not None else None
        size = ref.size_bytes if rng is None else rng.length_within(ref.size_bytes)

        fetch = functools.partial(self._transport.get_object_range, self._bucket, key, rng)
        return ChunkedStream(
            key,
            fetch,
            size=size,
            rewindable=rewindable,
            content_type=ref.content_type,
        )

    def download(self, key: str, id: str) -> IO[bytes]:
        """
        Drain the object into a temporary file and return it opened for reading.

        The file name keeps the extension of `id`. It is deleted when the
        caller closes it.
        """
        tmp = tempfile.NamedTemporaryFile(
            mode="w+b",
            prefix=C.TEMPFILE_PREFIX,
            suffix=PurePosixPath(id).suffix,
        )
        try:
            self._transport.get_object_range(self._bucket, key, None, tmp)
            tmp.flush()
            tmp.seek(0)
        except BaseException:
            tmp.close()
            raise
        return tmp


__all__ = [
    "ChunkedStream",
    "TransferAdapter",
    "ObjectLocation",
    "UploadSource",
    "source_location",
]
