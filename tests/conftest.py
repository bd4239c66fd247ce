"""
Shared fixtures for PhantomAuth tests.
"""

import pytest

from phantomauth.clock import ManualClock
from phantomauth.config import Config
from phantomauth.context import RequestSignals, derive_context
from phantomauth.service import AuthFlow
from phantomauth.store import MemoryStore

SIGNING_SECRET = "test-signing-secret-0123456789abcdef"
ENCRYPTION_KEY = "0123456789abcdef" * 4  # 32 bytes as hex


class RecordingSender:
    """LinkSender that remembers what it sent and can be told to fail."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = 0
        self.sent = []

    async def send(self, email: str, link: str) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("SMTP unavailable")
        self.sent.append((email, link))


@pytest.fixture
def clock():
    return ManualClock(1_700_000_000)


@pytest.fixture
def store(clock):
    return MemoryStore(clock)


@pytest.fixture
def config():
    return Config(signing_secret=SIGNING_SECRET, encryption_key=ENCRYPTION_KEY)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def flow(config, store, clock, sender):
    return AuthFlow.from_config(config, store, clock, sender=sender, delivery_base_delay=0)


@pytest.fixture
def make_context(clock):
    """Build a context from signal overrides on top of a fixed browser."""
    def _make(**overrides):
        signals = {
            "ip": "203.0.113.7",
            "user_agent": "Mozilla/5.0 (X11; Linux x86_64)",
            "fingerprint": "fp-laptop-1",
        }
        signals.update(overrides)
        return derive_context(RequestSignals(**signals), clock.now())
    return _make
