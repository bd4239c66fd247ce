"""
Tests for time sources.
"""

import time

import pytest

from phantomauth.clock import Clock, ManualClock, SystemClock


class TestClocks:
    """Tests for the clock implementations."""

    def test_clock_is_abstract(self):
        with pytest.raises(TypeError):
            Clock()

    def test_manual_clock(self):
        clock = ManualClock(100)

        assert clock.now() == 100.0
        assert clock.advance(5.5) == 105.5
        clock.set(10)
        assert clock.now() == 10.0

    def test_system_clock(self):
        before = time.time()
        assert before <= SystemClock().now() <= time.time()
