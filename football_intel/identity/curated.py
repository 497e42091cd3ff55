"""
Curated, hand-verified identities for the most requested clubs.

Checked before the store and before any discovery. External ids are the
ones each vendor actually uses; lookup is on the normalized name or any
alias (exact only, no fuzzy matching here).

Ambiguous shorthands (e.g. "FCB" for both Barcelona and Bayern) are
deliberately left out.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from football_intel.identity.normalization import normalize_team_name
from football_intel.models import TeamIdentity, Tier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CuratedTeam:
    universal_id: str
    name: str
    external_ids: dict[str, str]
    aliases: tuple[str, ...] = ()
    league: Optional[str] = None
    country: Optional[str] = None
    tier: Tier = Tier.TOP


def _ids(football_data: int, api_football: int, apifootball: int, thesportsdb: int) -> dict[str, str]:
    return {
        "football-data": str(football_data),
        "api-football": str(api_football),
        "apifootball": str(apifootball),
        "thesportsdb": str(thesportsdb),
    }


CURATED_TEAMS: tuple[CuratedTeam, ...] = (
    # ===================
    # LA LIGA (Spain)
    # ===================
    CuratedTeam(
        "real-madrid", "Real Madrid", _ids(86, 541, 188, 134577),
        ("Real Madrid CF", "Madrid", "Los Blancos"), "La Liga", "Spain",
    ),
    CuratedTeam(
        "barcelona", "FC Barcelona", _ids(81, 529, 189, 134576),
        ("Barcelona", "Barca", "Barça"), "La Liga", "Spain",
    ),

    # ===================
    # PREMIER LEAGUE (England)
    # ===================
    CuratedTeam(
        "manchester-city", "Manchester City", _ids(65, 50, 133, 133613),
        ("Man City", "MCFC"), "Premier League", "England",
    ),
    CuratedTeam(
        "arsenal", "Arsenal", _ids(57, 42, 130, 133602),
        ("Arsenal FC", "Gunners"), "Premier League", "England",
    ),
    CuratedTeam(
        "liverpool", "Liverpool", _ids(64, 40, 132, 133612),
        ("Liverpool FC", "LFC"), "Premier League", "England",
    ),
    CuratedTeam(
        "chelsea", "Chelsea", _ids(61, 49, 131, 133610),
        ("Chelsea FC", "CFC"), "Premier League", "England",
    ),

    # ===================
    # BUNDESLIGA (Germany)
    # ===================
    CuratedTeam(
        "bayern-munich", "Bayern Munich", _ids(5, 157, 165, 135260),
        ("FC Bayern München", "Bayern München", "Bayern"), "Bundesliga", "Germany",
    ),
    CuratedTeam(
        "dortmund", "Borussia Dortmund", _ids(4, 165, 164, 135271),
        ("BVB", "Dortmund"), "Bundesliga", "Germany", tier=Tier.MID,
    ),

    # ===================
    # LIGUE 1 / SERIE A
    # ===================
    CuratedTeam(
        "psg", "Paris Saint-Germain", _ids(524, 85, 147, 135289),
        ("PSG", "Paris SG", "Paris Saint Germain"), "Ligue 1", "France",
    ),
    CuratedTeam(
        "juventus", "Juventus", _ids(109, 496, 168, 135269),
        ("Juventus FC", "Juve"), "Serie A", "Italy",
    ),
)


@lru_cache(maxsize=1)
def _name_index() -> dict[str, CuratedTeam]:
    index: dict[str, CuratedTeam] = {}
    for team in CURATED_TEAMS:
        for raw in (team.name, team.universal_id.replace("-", " "), *team.aliases):
            key = normalize_team_name(raw)
            if key and key in index and index[key] is not team:
                logger.warning("[CURATED] Alias collision on '%s'", key)
                continue
            if key:
                index[key] = team
    return index


def find_curated(team_name: str) -> Optional[CuratedTeam]:
    return _name_index().get(normalize_team_name(team_name))


def find_curated_by_source_id(source: str, external_id: str) -> Optional[CuratedTeam]:
    for team in CURATED_TEAMS:
        if team.external_ids.get(source) == str(external_id):
            return team
    return None


def to_identity(team: CuratedTeam) -> TeamIdentity:
    """Materialize a curated entry as a verified identity."""
    return TeamIdentity(
        universal_id=team.universal_id,
        name=team.name,
        normalized_name=normalize_team_name(team.name),
        external_ids=dict(team.external_ids),
        aliases=set(team.aliases) | {team.name},
        confidence=1.0,
        country=team.country,
        league=team.league,
        tier=team.tier,
        verified=True,
        discovered_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
