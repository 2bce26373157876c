"""
Tests for the asyncio Debouncer and timer utilities
"""

import asyncio

from image_ecolo.core.utils import Debouncer, timer


class TestDebouncer:
    """Test Debouncer functionality"""

    def test_burst_fires_once_with_last_args(self):
        """Test that a burst of calls collapses to the last one"""
        calls = []

        async def scenario():
            debouncer = Debouncer(delay_ms=30)
            for value in range(5):
                debouncer.schedule(calls.append, value)
                await asyncio.sleep(0.005)
            assert debouncer.pending
            await asyncio.sleep(0.1)
            assert not debouncer.pending

        asyncio.run(scenario())
        assert calls == [4]

    def test_quiet_gaps_fire_separately(self):
        """Test that calls separated by the window each fire"""
        calls = []

        async def scenario():
            debouncer = Debouncer(delay_ms=10)
            debouncer.schedule(calls.append, "a")
            await asyncio.sleep(0.05)
            debouncer.schedule(calls.append, "b")
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert calls == ["a", "b"]

    def test_cancel(self):
        """Test cancelling a pending call"""
        calls = []

        async def scenario():
            debouncer = Debouncer(delay_ms=10)
            debouncer.schedule(calls.append, 1)
            assert debouncer.cancel() is True
            assert debouncer.cancel() is False
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert calls == []


def test_timer_measures_block():
    """Test timer context manager"""
    with timer() as t:
        assert t["ms"] == 0
        sum(range(1000))
    assert t["ms"] >= 0
    assert isinstance(t["ms"], int)
