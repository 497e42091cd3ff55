"""Shared fakes: call-counting source adapters, a manual clock and an engine factory."""

import asyncio
import random
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from football_intel.cache import ResultCache
from football_intel.config import Settings
from football_intel.engine import FootballIntelligenceEngine
from football_intel.fallback import FallbackDataGenerator
from football_intel.health.governor import GovernorPolicy, SourceHealthGovernor
from football_intel.health.waiter import IntelligentWaiter
from football_intel.identity.store import InMemoryIdentityStore
from football_intel.models import MatchRecord, MatchStatus, TeamCandidate
from football_intel.sources.base import SourceAdapter

NOW = datetime(2025, 3, 1, 15, 0, tzinfo=timezone.utc)


class ManualClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAdapter(SourceAdapter):
    """
    In-memory source. Each capability answers with the configured value,
    or raises it when it is an exception. Calls are counted per capability.
    """

    def __init__(
        self,
        name: str,
        candidate: Optional[TeamCandidate] = None,
        recent=None,
        upcoming=None,
        h2h=None,
        healthy=True,
        delay: float = 0.0,
    ):
        self.name = name
        self.candidate = candidate
        self.recent = recent if recent is not None else []
        self.upcoming = upcoming if upcoming is not None else []
        self.h2h = h2h if h2h is not None else []
        self.healthy = healthy
        self.delay = delay
        self.calls: Counter = Counter()
        self.closed = False

    async def _answer(self, capability: str, value):
        self.calls[capability] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(value, Exception):
            raise value
        return value

    async def search_team(self, name):
        return await self._answer("search_team", self.candidate)

    async def get_recent_matches(self, team_id, limit=5):
        return await self._answer("get_recent_matches", self.recent)

    async def get_upcoming_matches(self, team_id, limit=5):
        return await self._answer("get_upcoming_matches", self.upcoming)

    async def get_head_to_head(self, team_a_id, team_b_id):
        return await self._answer("get_head_to_head", self.h2h)

    async def health_check(self):
        return await self._answer("health_check", self.healthy)

    async def close(self):
        self.closed = True

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


def make_match(
    home: str,
    away: str,
    home_score: Optional[int],
    away_score: Optional[int],
    days_ago: int = 7,
    source: str = "api-football",
    home_id: Optional[str] = None,
    away_id: Optional[str] = None,
    status: MatchStatus = MatchStatus.FINISHED,
) -> MatchRecord:
    return MatchRecord(
        id=f"{source}-{home}-{away}-{days_ago}",
        date=NOW - timedelta(days=days_ago),
        home_team_name=home,
        away_team_name=away,
        home_score=home_score,
        away_score=away_score,
        status=status,
        league_name="Premier League",
        kickoff_time="15:00",
        home_team_id=home_id,
        away_team_id=away_id,
        source=source,
    )


def make_settings(**overrides) -> Settings:
    values = {
        "MATCHES_WAIT_SECONDS": 0,
        "SEARCH_WAIT_SECONDS": 0,
        "H2H_WAIT_SECONDS": 0,
        "SOURCE_MIN_SPACING_SECONDS": 0,
        "RESEARCH_SINGLE_FLIGHT": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def make_engine():
    """
    Engine over fake adapters. The governor tracks no limits, so every
    call is admitted unless a test passes its own governor.
    """

    def _make(
        adapters: dict,
        governor: Optional[SourceHealthGovernor] = None,
        waiter: Optional[IntelligentWaiter] = None,
        **settings,
    ):
        return FootballIntelligenceEngine(
            adapters=adapters,
            settings=make_settings(**settings),
            governor=governor or SourceHealthGovernor(limits={}, policy=GovernorPolicy(min_spacing_seconds=0)),
            cache=ResultCache(ttl=3600),
            store=InMemoryIdentityStore(),
            fallback=FallbackDataGenerator(rng=random.Random(7), now=lambda: NOW),
            waiter=waiter,
        )

    return _make


@pytest.fixture
def governed(clock):
    """
    Governor with the real per-vendor limits and a waiter on the same manual
    clock. Each waiter sleep moves the clock forward and then yields, so
    gated calls wait in simulated time only.
    """

    async def sleep(seconds: float) -> None:
        clock.advance(seconds)
        await asyncio.sleep(0)

    governor = SourceHealthGovernor(clock=clock)
    return governor, IntelligentWaiter(governor, sleep=sleep, clock=clock)
