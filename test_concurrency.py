"""
Bounded Concurrency Mapper Tests
"""

import asyncio

import pytest

from sync_engine.concurrency import bounded_map


class TestBoundedMap:
    """Ordering, concurrency limit and fail-fast behavior."""

    def test_results_in_input_order(self):
        """Results follow input order even when tasks finish out of order."""
        async def slow_double(n):
            await asyncio.sleep(0.001 * (5 - n))
            return n * 2

        results = asyncio.run(bounded_map([1, 2, 3, 4], slow_double, concurrency=2))
        assert results == [2, 4, 6, 8]

    def test_never_exceeds_concurrency(self):
        in_flight = 0
        peak = 0

        async def track(_):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1

        asyncio.run(bounded_map(range(20), track, concurrency=3))
        assert peak == 3

    def test_empty_input(self):
        async def never(_):
            raise AssertionError("should not be called")

        assert asyncio.run(bounded_map([], never)) == []

    def test_invalid_concurrency(self):
        async def identity(n):
            return n

        with pytest.raises(ValueError):
            asyncio.run(bounded_map([1], identity, concurrency=0))

    def test_first_error_propagates_and_stops_work(self):
        """A failing task cancels the remaining workers."""
        started = []

        async def work(n):
            started.append(n)
            if n == 2:
                raise RuntimeError("boom")
            await asyncio.sleep(0.01)
            return n

        with pytest.raises(RuntimeError, match="boom"):
            asyncio.run(bounded_map(range(50), work, concurrency=3))
        assert len(started) < 50
