"""
Time sources.

Every component that reads the time takes a clock so that expiry,
TTLs and rate-limit windows can be driven deterministically in tests.
"""

import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Wall-clock time in seconds since the epoch."""

    @abstractmethod
    def now(self) -> float:
        """Current time as unix seconds."""


class SystemClock(Clock):
    """Clock backed by ``time.time()``."""

    def now(self) -> float:
        return time.time()


class ManualClock(Clock):
    """
    A clock that only moves when told to.

    Example:
        >>> clock = ManualClock(1_700_000_000)
        >>> clock.advance(301)
    """

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        """Move time forward and return the new value."""
        self._now += seconds
        return self._now

    def set(self, timestamp: float) -> None:
        self._now = float(timestamp)
