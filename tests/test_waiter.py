"""Tests for the intelligent waiter (fake sleep that advances a manual clock)."""

import pytest

from football_intel.health.governor import GovernorPolicy, SourceHealthGovernor, SourceLimits
from football_intel.health.waiter import IntelligentWaiter


@pytest.fixture
def governor(clock):
    limits = SourceLimits(requests_per_minute=600, burst_limit=100)
    return SourceHealthGovernor(
        limits={"alpha": limits, "beta": limits},
        policy=GovernorPolicy(min_spacing_seconds=0),
        clock=clock,
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def waiter(governor, clock, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)
        clock.advance(seconds)

    return IntelligentWaiter(governor, poll_seconds=1.0, default_timeout=30.0, sleep=fake_sleep, clock=clock)


class TestWaitFor:
    """Bounded polling until the governor admits the source."""

    @pytest.mark.asyncio
    async def test_available_source_returns_immediately(self, waiter, sleeps):
        assert await waiter.wait_for("alpha")
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_waits_out_backoff(self, waiter, governor, sleeps):
        governor.record_error("alpha", 503)  # 10s backoff
        assert await waiter.wait_for("alpha", timeout=30)
        assert sum(sleeps) == pytest.approx(10)

    @pytest.mark.asyncio
    async def test_timeout_means_unavailable(self, waiter, governor, sleeps):
        governor.record_error("alpha", 503)
        assert not await waiter.wait_for("alpha", timeout=4)
        assert sum(sleeps) == pytest.approx(4)

    @pytest.mark.asyncio
    async def test_wait_for_any_prefers_open_source(self, waiter, governor, sleeps):
        governor.record_error("alpha", 503)
        assert await waiter.wait_for_any(["alpha", "beta"]) == "beta"
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_wait_for_any_gives_up(self, waiter, governor):
        governor.record_error("alpha", 503)
        governor.record_error("beta", 503)
        assert await waiter.wait_for_any(["alpha", "beta"], timeout=2) is None


class TestBackoffAndSmartWait:
    """Exponential retry and choosing the quickest source."""

    @pytest.mark.asyncio
    async def test_wait_with_backoff_sleeps_exponentially(self, waiter, governor, sleeps):
        governor.record_error("alpha", 503)  # open again after 10s
        assert await waiter.wait_with_backoff("alpha", max_retries=5)
        assert sleeps == [1, 2, 4, 8]

    @pytest.mark.asyncio
    async def test_smart_wait_picks_quickest(self, waiter, governor):
        governor.record_error("alpha", 503)
        governor.record_error("alpha", 503)  # 20s
        governor.record_error("beta", 503)  # 10s
        assert waiter.optimal_wait_time("beta") < waiter.optimal_wait_time("alpha")
        assert await waiter.smart_wait(["alpha", "beta"]) == "beta"

    @pytest.mark.asyncio
    async def test_smart_wait_without_sources(self, waiter):
        assert await waiter.smart_wait([]) is None
