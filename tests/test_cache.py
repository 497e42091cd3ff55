"""Tests for the research TTL cache."""

from datetime import datetime, timezone

import pytest

from football_intel.cache import ResultCache, cache_key
from football_intel.fallback import FallbackDataGenerator


@pytest.fixture
def research():
    return FallbackDataGenerator(now=lambda: datetime(2025, 3, 1, tzinfo=timezone.utc)).research_for("Arsenal")


@pytest.fixture
def cache(clock):
    return ResultCache(ttl=3600, clock=clock)


class TestResultCache:
    """TTL measured from the time of storing."""

    def test_keys(self):
        assert cache_key("Arsenal") == "team_arsenal"
        assert cache_key("Arsenal FC", "57") == "team_arsenal_57"
        assert cache_key("  ") == "team_"

    def test_name_variants_share_an_entry(self, cache, research):
        cache.set("Arsenal FC", research)
        assert cache.get("Arsenal") == research

    def test_hit_returns_an_independent_copy(self, cache, research):
        cache.set("Arsenal", research)
        first = cache.get("Arsenal")
        assert first == research
        assert first is not research

        first.recent_form.last5_games = "LLLLL"
        research.season_stats.wins = 0
        again = cache.get("Arsenal")
        assert again.recent_form.last5_games != "LLLLL"
        assert again.season_stats.wins != 0

    def test_expires_after_ttl(self, cache, clock, research):
        cache.set("Arsenal", research)
        clock.advance(3599)
        assert cache.get("Arsenal") == research
        clock.advance(1)
        assert cache.get("Arsenal") is None

    def test_team_id_is_part_of_the_key(self, cache, research):
        cache.set("Arsenal", research, team_id="57")
        assert cache.get("Arsenal") is None
        assert cache.get("Arsenal", "57") == research

    def test_reads_do_not_evict(self, cache, clock, research):
        cache.set("Arsenal", research)
        clock.advance(4000)
        assert cache.get("Arsenal") is None
        assert cache.stats()["size"] == 1
        assert cache.sweep_expired() == 1
        assert cache.stats()["size"] == 0

    def test_stats_and_clear(self, cache, research):
        cache.set("Arsenal", research)
        cache.get("Arsenal")
        cache.get("Chelsea")
        stats = cache.stats()
        assert stats["keys"] == ["team_arsenal"]
        assert (stats["hits"], stats["misses"]) == (1, 1)
        assert cache.delete("team_arsenal")
        assert not cache.delete("team_arsenal")
        cache.set("Arsenal", research)
        cache.clear()
        assert cache.stats()["size"] == 0
