"""
Key Resolver: logical id -> fully-qualified object key.

Every component resolves ids through the same KeyResolver before touching
the network. Keys that come back from a listing already carry the prefix and
are never resolved a second time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class KeyResolver:
    """
    Pure mapping from logical ids to object keys under an optional namespace.

    Example:
        >>> KeyResolver("cache").resolve("avatar.jpg")
        'cache/avatar.jpg'
        >>> KeyResolver().resolve("avatar.jpg")
        'avatar.jpg'
    """

    prefix: str = ""

    def resolve(self, id: str) -> str:
        return f"{self.prefix}/{id}" if self.prefix else id

    @property
    def list_prefix(self) -> Optional[str]:
        """Listing filter scoping enumeration to this namespace, None for the whole bucket."""
        return f"{self.prefix}/" if self.prefix else None


def resolve(prefix: Optional[str], id: str) -> str:
    """Functional form of KeyResolver.resolve()."""
    return KeyResolver(prefix or "").resolve(id)
