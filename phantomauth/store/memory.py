"""
In-process KeyValueStore.

Suitable for tests and single-instance deployments. Expiry is evaluated
lazily against the injected clock, so advancing a ManualClock expires
keys without any background task. Keys that are never read again (old
rate-limit windows) are dropped by a sweep that runs on writes at most
once per ``CLEANUP_INTERVAL`` seconds.
"""

import logging
import math
import threading
from typing import Dict, List, Optional, Tuple

from ..clock import Clock, SystemClock
from .base import KeyValueStore

logger = logging.getLogger(__name__)


class MemoryStore(KeyValueStore):
    """Dictionary-backed store guarded by a lock."""

    CLEANUP_INTERVAL = 60  # seconds between sweeps of expired keys

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        self._data: Dict[str, Tuple[bytes, Optional[float]]] = {}  # key -> (value, expires_at)
        self._lock = threading.Lock()
        self._last_cleanup = self.clock.now()

    def _maybe_sweep(self) -> None:
        """Drop every expired entry if the interval has passed. Caller holds the lock."""
        now = self.clock.now()
        if now - self._last_cleanup < self.CLEANUP_INTERVAL:
            return
        self._last_cleanup = now

        expired = [
            key for key, (_, expires_at) in self._data.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._data[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired key(s), {len(self._data)} remain")

    def _live(self, key: str) -> Optional[Tuple[bytes, Optional[float]]]:
        """Get an entry, evicting it if expired. Caller holds the lock."""
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and self.clock.now() >= expires_at:
            del self._data[key]
            return None
        return entry

    def _expiry(self, ttl_seconds: Optional[int]) -> Optional[float]:
        if ttl_seconds is None:
            return None
        return self.clock.now() + ttl_seconds

    async def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    async def set(self, key: str, value: bytes, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds is not None and ttl_seconds <= 0:
            # Redis rejects non-positive EX; treat as immediate expiry
            await self.delete(key)
            return
        with self._lock:
            self._maybe_sweep()
            self._data[key] = (value, self._expiry(ttl_seconds))

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None and self._data.pop(key, None) is not None

    async def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    async def increment(self, key: str) -> int:
        with self._lock:
            self._maybe_sweep()
            entry = self._live(key)
            if entry is None:
                value, expires_at = 0, None
            else:
                try:
                    value = int(entry[0])
                except ValueError:
                    raise ValueError(f"Value at '{key}' is not an integer")
                expires_at = entry[1]
            value += 1
            self._data[key] = (str(value).encode(), expires_at)
            return value

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return False
            self._data[key] = (entry[0], self._expiry(ttl_seconds))
            return True

    async def ttl(self, key: str) -> Optional[int]:
        with self._lock:
            entry = self._live(key)
            if entry is None or entry[1] is None:
                return None
            return max(0, math.ceil(entry[1] - self.clock.now()))

    async def keys(self, prefix: str) -> List[str]:
        with self._lock:
            candidates = [k for k in self._data if k.startswith(prefix)]
            return [k for k in candidates if self._live(k) is not None]

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for k in list(self._data) if self._live(k) is not None)
