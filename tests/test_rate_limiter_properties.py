"""
Property-based tests for the Rate Limiter module.

Uses Hypothesis to check the concurrency ceiling and the per-server minimum
spacing between invocations.
"""

import asyncio
import time

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_watcher.config import RateLimitConfig
from domain_watcher.rate_limiter import RateLimiter


class TestConcurrencyCeiling:
    """No more than max_concurrent operations are ever in flight."""

    @given(
        max_concurrent=st.integers(min_value=1, max_value=4),
        num_tasks=st.integers(min_value=1, max_value=12),
    )
    @settings(max_examples=30, deadline=None)
    def test_in_flight_never_exceeds_ceiling(self, max_concurrent: int, num_tasks: int) -> None:
        limiter = RateLimiter(RateLimitConfig(max_concurrent=max_concurrent, min_interval_seconds=0.0))
        in_flight = 0
        peak = 0

        async def operation() -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return 1

        async def run_all() -> list[int]:
            # Distinct servers so only the global ceiling applies
            return await asyncio.gather(*(
                limiter.with_limit(f"https://rdap{i}.example", operation)
                for i in range(num_tasks)
            ))

        results = asyncio.run(run_all())

        assert sum(results) == num_tasks
        assert peak <= max_concurrent
        assert limiter.active_count == 0

    def test_slot_released_when_operation_raises(self) -> None:
        limiter = RateLimiter(RateLimitConfig(max_concurrent=1, min_interval_seconds=0.0))

        async def boom() -> None:
            raise RuntimeError("upstream failed")

        async def ok() -> str:
            return "ok"

        async def scenario() -> str:
            with pytest.raises(RuntimeError):
                await limiter.with_limit("https://rdap.example", boom)
            return await asyncio.wait_for(limiter.with_limit("https://rdap.example", ok), timeout=1.0)

        assert asyncio.run(scenario()) == "ok"
        assert limiter.active_count == 0

    def test_rejects_zero_ceiling(self) -> None:
        with pytest.raises(ValueError):
            RateLimiter(RateLimitConfig(max_concurrent=0))


class TestPerServerSpacing:
    """Consecutive invocations for one server are at least min_interval apart."""

    @given(num_requests=st.integers(min_value=2, max_value=4))
    @settings(max_examples=5, deadline=None)
    def test_same_server_invocations_are_spaced(self, num_requests: int) -> None:
        interval = 0.05
        limiter = RateLimiter(RateLimitConfig(max_concurrent=5, min_interval_seconds=interval))
        started: list[float] = []

        async def operation() -> None:
            started.append(time.monotonic())

        async def run_all() -> None:
            await asyncio.gather(*(
                limiter.with_limit("https://rdap.verisign.com/com/v1", operation)
                for _ in range(num_requests)
            ))

        asyncio.run(run_all())

        started.sort()
        gaps = [b - a for a, b in zip(started, started[1:])]
        assert all(gap >= interval - 0.005 for gap in gaps)

    def test_different_servers_are_not_spaced(self) -> None:
        limiter = RateLimiter(RateLimitConfig(max_concurrent=5, min_interval_seconds=5.0))

        async def operation() -> None:
            return None

        async def run_all() -> float:
            begin = time.monotonic()
            await asyncio.gather(
                limiter.with_limit("https://rdap.a.example", operation),
                limiter.with_limit("https://rdap.b.example", operation),
            )
            return time.monotonic() - begin

        assert asyncio.run(run_all()) < 1.0

    def test_last_invocation_recorded(self) -> None:
        limiter = RateLimiter(RateLimitConfig(min_interval_seconds=0.0))
        assert limiter.last_invocation("https://rdap.example") is None

        async def operation() -> None:
            return None

        asyncio.run(limiter.with_limit("https://rdap.example", operation))
        assert limiter.last_invocation("https://rdap.example") is not None
