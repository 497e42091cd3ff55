"""
Football Intelligence Engine: the public entry points.

Pipeline per team:
    cache -> resolve identity -> fan-out recent matches -> aggregate -> cache
Any failure along the way degrades to generated fallback data; the public
methods never raise.

Usage:
    async with await FootballIntelligenceEngine.from_settings() as engine:
        analysis = await engine.analyze_match("Arsenal", "Chelsea", "Premier League")
        print(analysis.probabilities.home_win)
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from football_intel.aggregation import build_research, head_to_head_stats, select_matches, summary_for
from football_intel.cache import ResultCache
from football_intel.config import Settings, get_settings
from football_intel.fallback import FallbackDataGenerator
from football_intel.fanout import FanOutEngine, merge_head_to_head
from football_intel.health.governor import GovernorPolicy, SourceHealthGovernor
from football_intel.health.waiter import IntelligentWaiter
from football_intel.identity.normalization import normalize_team_name
from football_intel.identity.resolver import TeamIdentityResolver
from football_intel.identity.store import IdentityStore, InMemoryIdentityStore
from football_intel.models import (
    HeadToHeadData,
    MatchAnalysis,
    MatchRecord,
    ProbabilityResult,
    RiskLevel,
    TeamResearch,
    ValueBet,
)
from football_intel.probability import calculate
from football_intel.sources.base import SourceAdapter
from football_intel.sources.registry import (
    H2H_PRIORITY,
    MATCHES_PRIORITY,
    UPCOMING_PRIORITY,
    build_adapters,
)
from football_intel.telemetry.metrics import record_cache_lookup, record_fallback

logger = logging.getLogger(__name__)

MAX_INSIGHTS = 3
FORM_GAP_POINTS = 20
HIGH_SCORING_AVG = 2.0


class FootballIntelligenceEngine:
    """
    Owns every stateful collaborator (governor, cache, identity store) so
    each engine instance is isolated; nothing lives in module globals.
    """

    def __init__(
        self,
        adapters: Optional[dict[str, SourceAdapter]] = None,
        settings: Optional[Settings] = None,
        governor: Optional[SourceHealthGovernor] = None,
        cache: Optional[ResultCache] = None,
        store: Optional[IdentityStore] = None,
        fallback: Optional[FallbackDataGenerator] = None,
        waiter: Optional[IntelligentWaiter] = None,
    ):
        self.settings = settings or get_settings()
        self.adapters = adapters if adapters is not None else build_adapters(self.settings)
        self.governor = governor or SourceHealthGovernor(policy=GovernorPolicy(
            min_spacing_seconds=self.settings.SOURCE_MIN_SPACING_SECONDS,
            window_cap_ratio=self.settings.SOURCE_WINDOW_CAP_RATIO,
            burst_cap_ratio=self.settings.SOURCE_BURST_CAP_RATIO,
        ))
        self.waiter = waiter or IntelligentWaiter(
            self.governor,
            poll_seconds=self.settings.WAITER_POLL_SECONDS,
            default_timeout=self.settings.WAITER_TIMEOUT_SECONDS,
        )
        self.cache = cache or ResultCache(ttl=self.settings.RESEARCH_CACHE_TTL_SECONDS)
        self.store = store or InMemoryIdentityStore()
        self.fallback = fallback or FallbackDataGenerator()
        for adapter in self.adapters.values():
            adapter.bind_governor(self.governor)
        self.fanout = FanOutEngine(self.adapters, self.governor, self.waiter)
        self.resolver = TeamIdentityResolver(
            self.fanout,
            self.store,
            candidate_threshold=self.settings.IDENTITY_CANDIDATE_THRESHOLD,
            persist_threshold=self.settings.IDENTITY_PERSIST_THRESHOLD,
            search_cache_ttl=self.settings.SEARCH_CACHE_TTL_SECONDS,
            search_wait_timeout=self.settings.SEARCH_WAIT_SECONDS,
        )
        self._in_flight: dict[str, asyncio.Future] = {}

    @classmethod
    async def from_settings(cls, settings: Optional[Settings] = None) -> "FootballIntelligenceEngine":
        """Build an engine with adapters and identity store taken from settings."""
        settings = settings or get_settings()
        store: IdentityStore = InMemoryIdentityStore()
        if settings.IDENTITY_DATABASE_URL:
            from football_intel.database import create_engine_for, create_session_factory, init_db
            from football_intel.identity.store import SqlIdentityStore

            db_engine = create_engine_for(settings.IDENTITY_DATABASE_URL)
            await init_db(db_engine)
            store = SqlIdentityStore(create_session_factory(db_engine), engine=db_engine)
        return cls(settings=settings, store=store)

    async def __aenter__(self) -> "FootballIntelligenceEngine":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close adapter HTTP clients and the identity store."""
        for adapter in self.adapters.values():
            try:
                await adapter.close()
            except Exception as e:
                logger.warning("[ENGINE] Failed to close %s: %s", adapter.name, e)
        await self.store.close()

    # =========================================================================
    # TEAM RESEARCH
    # =========================================================================

    async def research_team(self, team_name: str) -> TeamResearch:
        """
        Research one team. Never raises.

        Args:
            team_name: Free-text team name.

        Returns:
            TeamResearch built from live data, or from fallback data when
            sources or identity resolution come up empty.
        """
        if not self.settings.RESEARCH_SINGLE_FLIGHT:
            return await self._research(team_name)

        key = normalize_team_name(team_name) or team_name
        future = self._in_flight.get(key)
        if future is None:
            future = asyncio.ensure_future(self._research(team_name))
            self._in_flight[key] = future
            future.add_done_callback(lambda _: self._in_flight.pop(key, None))
        return await asyncio.shield(future)

    async def _research(self, team_name: str) -> TeamResearch:
        try:
            cached = self.cache.get(team_name)
            record_cache_lookup(cached is not None)
            if cached is not None:
                logger.debug("[ENGINE] Cache hit for '%s'", team_name)
                return cached

            research = await self._build_research(team_name)
            self.cache.set(team_name, research)
            return research
        except Exception as e:
            logger.error("[ENGINE] research_team('%s') failed: %s", team_name, e, exc_info=True)
            record_fallback("error")
            return self.fallback.minimal_research(team_name)

    async def _build_research(self, team_name: str) -> TeamResearch:
        if not self.adapters:
            logger.warning("[ENGINE] No sources configured, using fallback for '%s'", team_name)
            record_fallback("no_sources")
            return self.fallback.research_for(team_name)

        identity = await self.resolver.resolve(team_name)
        if identity is None:
            logger.warning("[ENGINE] Could not resolve '%s', using fallback", team_name)
            record_fallback("unresolved")
            return self.fallback.research_for(team_name)

        ids = {s: i for s, i in identity.external_ids.items() if s in self.adapters}
        limit = self.settings.RECENT_MATCHES_LIMIT
        source, matches = await self.fanout.query_with_source(
            "get_recent_matches",
            lambda adapter: adapter.get_recent_matches(ids[adapter.name], limit) if adapter.name in ids else None,
            MATCHES_PRIORITY,
            wait_timeout=self.settings.MATCHES_WAIT_SECONDS,
        )

        if not matches:
            logger.warning(
                "[ENGINE] No recent matches for '%s' (%s), using %s fallback",
                team_name, identity.universal_id, identity.tier.value,
            )
            record_fallback("no_matches")
            research = self.fallback.research_for(team_name, identity.tier, team_id=identity.universal_id)
            return replace(research, external_ids=ids)

        chosen, real_count = select_matches(matches, team_name, self.fallback, identity.universal_id)
        research = build_research(
            team_name,
            chosen,
            team_id=identity.universal_id,
            real_matches=real_count,
            data_source=source,
            external_ids=ids,
        )
        logger.info(
            "[ENGINE] Researched '%s' via %s: %s (%d real matches)",
            team_name, source, research.recent_form.last5_games, real_count,
        )
        return research

    async def get_upcoming_matches(self, team_name: str, limit: int = 5) -> list[MatchRecord]:
        """Next fixtures for a team; empty when unknown or no source answers."""
        try:
            identity = await self.resolver.resolve(team_name)
            if identity is None:
                return []
            ids = {s: i for s, i in identity.external_ids.items() if s in self.adapters}
            matches = await self.fanout.query(
                "get_upcoming_matches",
                lambda adapter: adapter.get_upcoming_matches(ids[adapter.name], limit) if adapter.name in ids else None,
                UPCOMING_PRIORITY,
            )
            return list(matches or [])[:limit]
        except Exception as e:
            logger.error("[ENGINE] get_upcoming_matches('%s') failed: %s", team_name, e, exc_info=True)
            return []

    # =========================================================================
    # HEAD TO HEAD
    # =========================================================================

    async def fetch_head_to_head(self, home: TeamResearch, away: TeamResearch) -> HeadToHeadData:
        """Merged meetings from every source that knows both teams."""
        common = {s for s in home.external_ids if s in away.external_ids and s in self.adapters}
        if not common:
            return HeadToHeadData()

        results = await self.fanout.query_all(
            "get_head_to_head",
            lambda adapter: (
                adapter.get_head_to_head(home.external_ids[adapter.name], away.external_ids[adapter.name])
                if adapter.name in common else None
            ),
            H2H_PRIORITY,
            wait_timeout=self.settings.H2H_WAIT_SECONDS,
        )
        meetings = merge_head_to_head(results)
        return head_to_head_stats(
            meetings, home.team_name, away.team_name, home.external_ids, away.external_ids,
        )

    # =========================================================================
    # MATCH ANALYSIS
    # =========================================================================

    async def analyze_match(self, home_team: str, away_team: str, league: str = "") -> MatchAnalysis:
        """
        Full analysis of a fixture. Never raises.

        Args:
            home_team: Home team name.
            away_team: Away team name.
            league: Competition name (informational).

        Returns:
            MatchAnalysis; a fully generated one if anything unexpected fails.
        """
        try:
            home, away = await asyncio.gather(
                self.research_team(home_team),
                self.research_team(away_team),
            )
            h2h = await self.fetch_head_to_head(home, away)
            probabilities = calculate(home, away, h2h)

            home = replace(home, head_to_head=summary_for(h2h, "home"))
            away = replace(away, head_to_head=summary_for(h2h, "away"))

            return MatchAnalysis(
                match_id=_match_id(home_team, away_team),
                home_team=home_team,
                away_team=away_team,
                date=datetime.now(timezone.utc),
                league=league,
                home_research=home,
                away_research=away,
                head_to_head=h2h,
                probabilities=probabilities,
                insights=build_insights(home, away, probabilities),
                value_bets=build_value_bets(home_team, away_team, probabilities),
                research_summary=research_summary(home, away, h2h, probabilities),
                is_fallback=home.is_fallback and away.is_fallback,
            )
        except Exception as e:
            logger.error(
                "[ENGINE] analyze_match('%s', '%s') failed: %s", home_team, away_team, e, exc_info=True,
            )
            return self._fallback_analysis(home_team, away_team, league)

    def _fallback_analysis(self, home_team: str, away_team: str, league: str) -> MatchAnalysis:
        home = self.fallback.minimal_research(home_team)
        away = self.fallback.minimal_research(away_team)
        probabilities = ProbabilityResult(
            home_win=35,
            draw=30,
            away_win=35,
            both_teams_score=45,
            over25_goals=40,
            under25_goals=60,
            confidence=25,
            risk_level=RiskLevel.HIGH,
        )
        return MatchAnalysis(
            match_id=_match_id(home_team, away_team),
            home_team=home_team,
            away_team=away_team,
            date=datetime.now(timezone.utc),
            league=league,
            home_research=home,
            away_research=away,
            head_to_head=HeadToHeadData(),
            probabilities=probabilities,
            insights=["Limited data available: analysis based on generic team profiles"],
            value_bets=[ValueBet(
                tip="No recommendation (insufficient data)",
                confidence=1,
                risk_level=RiskLevel.HIGH,
                expected_value=0.0,
            )],
            research_summary=f"{home_team} vs {away_team}: live data unavailable, generic estimate only.",
            is_fallback=True,
        )

    # =========================================================================
    # OBSERVABILITY / ADMIN
    # =========================================================================

    async def health_check(self) -> dict[str, bool]:
        """Probe every source concurrently."""
        names = list(self.adapters)

        async def probe(name: str) -> bool:
            try:
                return bool(await self.adapters[name].health_check())
            except Exception as e:
                logger.warning("[ENGINE] Health check failed for %s: %s", name, e)
                return False

        results = await asyncio.gather(*(probe(n) for n in names))
        return dict(zip(names, results))

    def get_status(self) -> dict:
        return {
            "available_sources": self.governor.available_sources(list(self.adapters)),
            "cache_stats": self.cache.stats(),
            "rate_limit_status": {name: self.governor.status(name) for name in self.adapters},
        }

    async def get_team_mapping_stats(self) -> dict:
        return await self.resolver.stats()

    def clear_cache(self) -> None:
        self.cache.clear()
        self.resolver.clear_search_cache()

    def reset_source(self, source: str) -> None:
        self.governor.reset(source)


# =============================================================================
# CONTENT HELPERS
# =============================================================================


def _match_id(home_team: str, away_team: str) -> str:
    stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"{home_team}-vs-{away_team}-{stamp}"


def _outcome_labels(home_team: str, away_team: str) -> dict[str, str]:
    return {"home": f"{home_team} to win", "draw": "Draw", "away": f"{away_team} to win"}


def build_insights(home: TeamResearch, away: TeamResearch, probabilities: ProbabilityResult) -> list[str]:
    insights = []

    home_perf = home.recent_form.last5_performance
    away_perf = away.recent_form.last5_performance
    if abs(home_perf - away_perf) > FORM_GAP_POINTS:
        better, worse = (home, away) if home_perf > away_perf else (away, home)
        insights.append(
            f"{better.team_name} in much better recent form "
            f"({better.recent_form.last5_performance}% vs {worse.recent_form.last5_performance}%)"
        )

    played = max(home.season_stats.played, 1)
    home_avg = home.season_stats.goals_for / played
    if home_avg > HIGH_SCORING_AVG:
        insights.append(f"{home.team_name} averaging {home_avg:.1f} goals per game")

    if home.is_fallback or away.is_fallback:
        insights.append("Limited live data: part of this analysis uses estimated team profiles")
    elif probabilities.risk_level == RiskLevel.HIGH:
        insights.append("Evenly matched fixture, no clear favourite")

    return insights[:MAX_INSIGHTS]


def build_value_bets(home_team: str, away_team: str, probabilities: ProbabilityResult) -> list[ValueBet]:
    """Single tip on the most likely outcome."""
    by_outcome = {
        "home": probabilities.home_win,
        "draw": probabilities.draw,
        "away": probabilities.away_win,
    }
    outcome = max(by_outcome, key=by_outcome.get)
    best = by_outcome[outcome]

    if outcome == "draw":
        confidence = 3
    else:
        confidence = 5 if best >= 60 else 4

    if best > 60:
        risk = RiskLevel.LOW
    elif best > 45:
        risk = RiskLevel.MEDIUM
    else:
        risk = RiskLevel.HIGH

    return [ValueBet(
        tip=_outcome_labels(home_team, away_team)[outcome],
        confidence=confidence,
        risk_level=risk,
        expected_value=round((best - 50) / 100, 2),
    )]


def research_summary(
    home: TeamResearch,
    away: TeamResearch,
    h2h: HeadToHeadData,
    probabilities: ProbabilityResult,
) -> str:
    parts = [
        f"{home.team_name}: form {home.recent_form.last5_games} "
        f"({home.recent_form.last5_performance}%), "
        f"{home.season_stats.goals_for}-{home.season_stats.goals_against} goals in last 5.",
        f"{away.team_name}: form {away.recent_form.last5_games} "
        f"({away.recent_form.last5_performance}%), "
        f"{away.season_stats.goals_for}-{away.season_stats.goals_against} goals in last 5.",
    ]
    if h2h.total_meetings:
        parts.append(
            f"Head to head: {h2h.total_meetings} meetings, "
            f"{h2h.home_wins}-{h2h.draws}-{h2h.away_wins} (home wins-draws-away wins)."
        )
    parts.append(
        f"Probabilities: {probabilities.home_win}% / {probabilities.draw}% / {probabilities.away_win}%, "
        f"confidence {probabilities.confidence}, risk {probabilities.risk_level.value}."
    )
    return " ".join(parts)
