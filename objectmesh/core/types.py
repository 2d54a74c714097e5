"""
Core value types for objectmesh

- Ok / Err: the Result container returned by config loading and validation
- Timestamp: nanosecond wall clock stamped on errors
- ByteRange: inclusive byte window for ranged reads
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Generic, Literal, Optional, Sequence, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


# =============================================================================
# RESULT
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome carrying `value`."""

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failed outcome carrying a description of what went wrong."""

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self):
        raise RuntimeError(f"unwrap() on a failed result: {self.error}")


Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIMESTAMP
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """Nanoseconds since the Unix epoch."""

    nanos: int

    @classmethod
    def now(cls) -> Timestamp:
        return cls(time.time_ns())


# =============================================================================
# BYTE RANGE
# =============================================================================
@dataclass(frozen=True, slots=True)
class ByteRange:
    """
    Inclusive byte window ``start..end`` of an object.

    Sent to the backend as a ``Range`` header so only the window is
    transferred. Requires ``0 <= start <= end``.
    """

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError(f"byte range start must be >= 0, got {self.start}")
        if self.end < self.start:
            raise ValueError(f"byte range end {self.end} is before start {self.start}")

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def length_within(self, size: Optional[int]) -> int:
        """Bytes the window yields from an object of `size` bytes (if known)."""
        if size is None:
            return self.length
        return max(0, min(self.end + 1, size) - self.start)

    def to_http_header(self) -> str:
        return f"bytes={self.start}-{self.end}"

    def slice(self, data: bytes) -> bytes:
        return data[self.start:self.end + 1]

    @classmethod
    def coerce(cls, value: ByteRange | range | Sequence[int]) -> ByteRange:
        """
        Build a ByteRange from the forms callers pass around.

        A ``(start, end)`` pair is inclusive like the HTTP header; a Python
        ``range`` keeps its exclusive stop, so ``range(1, 3)`` covers bytes 1-2.
        """
        if isinstance(value, ByteRange):
            return value
        if isinstance(value, range):
            if value.step != 1 or len(value) == 0:
                raise ValueError(f"Unsupported byte range: {value!r}")
            return cls(value.start, value.stop - 1)
        start, end = value
        return cls(int(start), int(end))

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"
