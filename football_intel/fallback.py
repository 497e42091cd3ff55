"""
Fallback Data Generator.

Guarantees a structurally complete TeamResearch when upstream sources or
identity resolution give us nothing, and pads short match histories so
every team is always described by exactly five matches.

Archetypes per tier:
    top:   4W 1D 0L, 11-4 goals, form WWWDW, 80%
    mid:   2W 2D 1L,  8-7 goals, form WDWDL, 60%
    lower: 1W 2D 2L,  6-9 goals, form LDWDL, 40%
"""

import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from football_intel.models import (
    HomeAwayRecord,
    MatchRecord,
    MatchStatus,
    RecentForm,
    SeasonStats,
    TeamResearch,
    Tier,
    VenueRecord,
)
from football_intel.probability import round_half_up

logger = logging.getLogger(__name__)

MATCHES_PER_TEAM = 5
FALLBACK_SOURCE = "fallback"

# =============================================================================
# CONFIGURATION
# =============================================================================

TOP_TEAMS = (
    "real madrid", "barcelona", "manchester city", "psg", "paris saint",
    "bayern munich", "liverpool", "chelsea", "arsenal", "manchester united",
    "juventus", "inter milan", "ac milan", "atletico madrid", "tottenham",
)

MID_TEAMS = (
    "dortmund", "leipzig", "sevilla", "valencia", "napoli", "roma",
    "leicester", "west ham", "wolves", "everton", "newcastle",
)

# Outcome weights for generated matches: win / draw / loss
OUTCOME_WEIGHTS = (0.4, 0.3, 0.3)


@dataclass(frozen=True)
class Archetype:
    wins: int
    draws: int
    losses: int
    goals_for: int
    goals_against: int
    form: str
    performance: int


ARCHETYPES: dict[Tier, Archetype] = {
    Tier.TOP: Archetype(4, 1, 0, 11, 4, "WWWDW", 80),
    Tier.MID: Archetype(2, 2, 1, 8, 7, "WDWDL", 60),
    Tier.LOWER: Archetype(1, 2, 2, 6, 9, "LDWDL", 40),
}


def tier_for(team_name: str) -> Tier:
    """Coarse strength bucket from the curated name lists (default: lower)."""
    name = (team_name or "").lower().strip()
    if not name:
        return Tier.LOWER
    if any(t in name or name in t for t in TOP_TEAMS):
        return Tier.TOP
    if any(t in name or name in t for t in MID_TEAMS):
        return Tier.MID
    return Tier.LOWER


def _home_away_split(arch: Archetype) -> HomeAwayRecord:
    return HomeAwayRecord(
        home=VenueRecord(
            played=math.ceil(MATCHES_PER_TEAM / 2),
            wins=round_half_up(arch.wins * 0.6),
            draws=round_half_up(arch.draws * 0.5),
            losses=round_half_up(arch.losses * 0.3),
        ),
        away=VenueRecord(
            played=MATCHES_PER_TEAM // 2,
            wins=round_half_up(arch.wins * 0.4),
            draws=round_half_up(arch.draws * 0.5),
            losses=round_half_up(arch.losses * 0.7),
        ),
    )


# =============================================================================
# GENERATOR
# =============================================================================


class FallbackDataGenerator:
    """Never fails; every method returns complete, well-formed data."""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._rng = rng or random.Random()
        self._now = now

    def tier_for(self, team_name: str) -> Tier:
        return tier_for(team_name)

    def research_for(
        self,
        team_name: str,
        tier: Optional[Tier] = None,
        team_id: Optional[str] = None,
    ) -> TeamResearch:
        """Archetype research for the team's tier."""
        tier = tier or tier_for(team_name)
        arch = ARCHETYPES[tier]
        logger.debug("[FALLBACK] %s research for '%s'", tier.value, team_name)
        return TeamResearch(
            team_name=team_name,
            team_id=team_id,
            last_updated=self._now(),
            season_stats=SeasonStats(
                played=MATCHES_PER_TEAM,
                wins=arch.wins,
                draws=arch.draws,
                losses=arch.losses,
                goals_for=arch.goals_for,
                goals_against=arch.goals_against,
                goal_difference=arch.goals_for - arch.goals_against,
                points=arch.wins * 3 + arch.draws,
            ),
            recent_form=RecentForm(
                last5_games=arch.form,
                last5_performance=arch.performance,
                recent_goals_scored=arch.goals_for,
                recent_goals_conceded=arch.goals_against,
            ),
            home_away_record=_home_away_split(arch),
            data_source=FALLBACK_SOURCE,
            is_fallback=True,
        )

    def minimal_research(self, team_name: str) -> TeamResearch:
        """Last-resort research (mid archetype) used when even tiering is moot."""
        return self.research_for(team_name, Tier.MID)

    def _scoreline(self, outcome: str) -> tuple[int, int]:
        """(team goals, opponent goals) consistent with the outcome."""
        if outcome == "W":
            opponent = self._rng.randint(0, 2)
            return opponent + self._rng.randint(1, 3), opponent
        if outcome == "D":
            goals = self._rng.randint(0, 3)
            return goals, goals
        team = self._rng.randint(0, 2)
        return team, team + self._rng.randint(1, 3)

    def pad_matches(
        self,
        existing_count: int,
        team_name: str,
        team_id: Optional[str] = None,
    ) -> list[MatchRecord]:
        """
        Generate enough matches to bring a history up to exactly five.

        Args:
            existing_count: Real matches already available.
            team_name: Team the matches belong to (always the home side).
            team_id: Optional id stamped on the generated records.

        Returns:
            max(0, 5 - existing_count) generated MatchRecords, newest first.
        """
        needed = max(0, MATCHES_PER_TEAM - existing_count)
        now = self._now()
        matches = []
        for i in range(needed):
            outcome = self._rng.choices("WDL", weights=OUTCOME_WEIGHTS)[0]
            team_goals, opponent_goals = self._scoreline(outcome)
            matches.append(MatchRecord(
                id=f"fallback_{i}",
                date=now - timedelta(weeks=existing_count + i + 1),
                home_team_name=team_name,
                home_team_id=team_id,
                away_team_name=f"Opponent {i + 1}",
                home_score=team_goals,
                away_score=opponent_goals,
                status=MatchStatus.FINISHED,
                league_name="Unknown League",
                kickoff_time="15:00",
                source=FALLBACK_SOURCE,
                is_fallback=True,
            ))
        return matches
