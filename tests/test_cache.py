"""Tests for the TTL result cache and its single-flight refresh."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from healthgate.health.cache import ResultCache
from healthgate.health.engine import AggregateState, ConfigurationError, Status


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingCompute:
    """Produces a fresh AggregateState per call, optionally after a delay."""

    def __init__(self, delay: float = 0.0, status: Status = Status.UP) -> None:
        self.delay = delay
        self.status = status
        self.calls = 0

    async def __call__(self) -> AggregateState:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return AggregateState(status=self.status, results={}, computed_at=datetime.now(timezone.utc))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def test_negative_ttl_rejected() -> None:
    with pytest.raises(ConfigurationError):
        ResultCache(ttl=-1)


@pytest.mark.anyio
class TestResultCache:
    async def test_hit_within_ttl_returns_same_state(self, clock: FakeClock) -> None:
        cache = ResultCache(ttl=1.0, clock=clock)
        compute = CountingCompute()

        first = await cache.get_or_compute(compute)
        clock.advance(0.5)
        second = await cache.get_or_compute(compute)

        assert second is first
        assert second.computed_at == first.computed_at
        assert compute.calls == 1

    async def test_recompute_after_ttl(self, clock: FakeClock) -> None:
        cache = ResultCache(ttl=1.0, clock=clock)
        compute = CountingCompute()

        first = await cache.get_or_compute(compute)
        clock.advance(1.0)  # expires_at is exclusive
        await asyncio.sleep(0.001)
        second = await cache.get_or_compute(compute)

        assert second is not first
        assert second.computed_at > first.computed_at
        assert compute.calls == 2

    async def test_ttl_zero_always_recomputes(self) -> None:
        cache = ResultCache(ttl=0)
        compute = CountingCompute()
        for _ in range(3):
            await cache.get_or_compute(compute)
        assert compute.calls == 3
        assert cache.peek() is None

    async def test_per_call_ttl_override(self, clock: FakeClock) -> None:
        cache = ResultCache(ttl=0, clock=clock)
        compute = CountingCompute()
        first = await cache.get_or_compute(compute, ttl=5.0)
        assert await cache.get_or_compute(compute) is first
        assert compute.calls == 1

    async def test_joining_caller_ttl_is_ignored(self, clock: FakeClock) -> None:
        cache = ResultCache(ttl=1.0, clock=clock)
        compute = CountingCompute(delay=0.05)

        starter = asyncio.create_task(cache.get_or_compute(compute, ttl=0))
        await asyncio.sleep(0.01)
        joined = await cache.get_or_compute(compute, ttl=60.0)

        assert joined is await starter
        assert compute.calls == 1
        # Lifetime comes from the starting call (0), not the joiner (60).
        assert cache.peek() is None

    async def test_single_flight_on_miss(self) -> None:
        cache = ResultCache(ttl=1.0)
        compute = CountingCompute(delay=0.05)

        states = await asyncio.gather(*(cache.get_or_compute(compute) for _ in range(20)))

        assert compute.calls == 1
        assert all(s is states[0] for s in states)

    async def test_single_flight_with_ttl_zero(self) -> None:
        cache = ResultCache(ttl=0)
        compute = CountingCompute(delay=0.05)
        await asyncio.gather(*(cache.get_or_compute(compute) for _ in range(10)))
        assert compute.calls == 1

    async def test_cancelled_caller_does_not_cancel_refresh(self) -> None:
        cache = ResultCache(ttl=1.0)
        compute = CountingCompute(delay=0.05)

        impatient = asyncio.create_task(cache.get_or_compute(compute))
        patient = asyncio.create_task(cache.get_or_compute(compute))
        await asyncio.sleep(0.01)
        impatient.cancel()

        state = await patient
        assert state.status is Status.UP
        assert compute.calls == 1
        assert cache.peek() is state

    async def test_compute_error_propagates_and_is_not_cached(self) -> None:
        cache = ResultCache(ttl=1.0)

        async def broken() -> AggregateState:
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await cache.get_or_compute(broken)
        assert cache.peek() is None

        compute = CountingCompute()
        await cache.get_or_compute(compute)
        assert compute.calls == 1

    async def test_on_refresh_runs_after_store(self, clock: FakeClock) -> None:
        seen: list[AggregateState | None] = []
        cache: ResultCache

        async def on_refresh(state: AggregateState) -> None:
            seen.append(cache.peek())

        cache = ResultCache(ttl=1.0, on_refresh=on_refresh, clock=clock)
        compute = CountingCompute()
        state = await cache.get_or_compute(compute)
        await cache.get_or_compute(compute)

        assert seen == [state]

    async def test_invalidate(self, clock: FakeClock) -> None:
        cache = ResultCache(ttl=10.0, clock=clock)
        compute = CountingCompute()
        await cache.get_or_compute(compute)
        cache.invalidate()
        await cache.get_or_compute(compute)
        assert compute.calls == 2
