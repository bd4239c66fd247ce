"""
Key-value store interface.

All protocol state (links, device records, rate-limit counters) lives
behind this interface so that any number of service instances can share
it. Each method is one round trip; there are no multi-key transactions.
"""

from abc import ABC, abstractmethod
from typing import List, Optional


class KeyValueStore(ABC):
    """Async key-value store with per-key TTLs."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Get a value, or None if absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl_seconds: Optional[int] = None) -> None:
        """Set a value, replacing any previous value and TTL."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether a live key exists."""

    @abstractmethod
    async def increment(self, key: str) -> int:
        """
        Atomically increment an integer counter and return the new value.

        A missing key starts at 0. An existing TTL is preserved.
        """

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a TTL on an existing key. Returns False if absent."""

    @abstractmethod
    async def ttl(self, key: str) -> Optional[int]:
        """Remaining lifetime in whole seconds (rounded up), or None."""

    @abstractmethod
    async def keys(self, prefix: str) -> List[str]:
        """List live keys starting with ``prefix``."""
