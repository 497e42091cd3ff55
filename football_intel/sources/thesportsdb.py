"""
TheSportsDB v1 adapter.

The API key is part of the URL path ("3" is the public test key). Team
search returns every sport; only Soccer entries are considered.
"""

import logging
from typing import Optional

import httpx

from football_intel.models import MatchRecord, MatchStatus, TeamCandidate
from football_intel.sources.base import HttpSourceAdapter, expect, parse_datetime, to_int

logger = logging.getLogger(__name__)

HEALTH_LEAGUE = "English Premier League"


def normalize_status(raw: Optional[str], home_score: Optional[int] = None) -> MatchStatus:
    status = (raw or "").strip().lower()
    if status in ("match finished", "ft", "aet", "pen", "finished"):
        return MatchStatus.FINISHED
    if status in ("not started", "ns", "tbd", "time to be defined"):
        return MatchStatus.SCHEDULED
    if status in ("1h", "2h", "ht", "live", "et", "in progress"):
        return MatchStatus.LIVE
    if status in ("postponed", "pst", "match postponed"):
        return MatchStatus.POSTPONED
    if status in ("cancelled", "canc", "abd", "match cancelled", "abandoned"):
        return MatchStatus.CANCELLED
    if status in ("awarded", "awd"):
        return MatchStatus.AWARDED
    # Older events often carry no status but do carry a score
    if not status and home_score is not None:
        return MatchStatus.FINISHED
    return MatchStatus.SCHEDULED


def parse_event(raw: dict) -> MatchRecord:
    """TheSportsDB event object -> MatchRecord."""
    home_score = to_int(raw.get("intHomeScore"))
    return MatchRecord(
        id=str(raw.get("idEvent", "")),
        date=parse_datetime(raw.get("dateEvent"), raw.get("strTime")),
        home_team_name=raw.get("strHomeTeam") or "",
        home_team_id=str(raw["idHomeTeam"]) if raw.get("idHomeTeam") else None,
        away_team_name=raw.get("strAwayTeam") or "",
        away_team_id=str(raw["idAwayTeam"]) if raw.get("idAwayTeam") else None,
        home_score=home_score,
        away_score=to_int(raw.get("intAwayScore")),
        status=normalize_status(raw.get("strStatus"), home_score),
        league_name=raw.get("strLeague") or "",
        kickoff_time=(raw.get("strTime") or "")[:5] or None,
        source=TheSportsDBAdapter.name,
    )


class TheSportsDBAdapter(HttpSourceAdapter):
    name = "thesportsdb"

    def __init__(self, api_key: str = "3", timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.BASE_URL = f"https://www.thesportsdb.com/api/v1/json/{api_key}"
        super().__init__(timeout=timeout, client=client)

    async def search_team(self, name: str) -> Optional[TeamCandidate]:
        payload = await self._request("/searchteams.php", params={"t": name})
        candidates = [
            TeamCandidate(
                source=self.name,
                external_id=str(team.get("idTeam")),
                name=team.get("strTeam") or "",
                short_name=team.get("strTeamShort") or None,
                country=team.get("strCountry"),
                league=team.get("strLeague"),
            )
            for team in expect(payload, "teams", self.name)
            if team.get("strSport") in (None, "Soccer")
        ]
        return self._best_candidate(name, candidates)

    async def get_recent_matches(self, team_id: str, limit: int = 5) -> list[MatchRecord]:
        payload = await self._request("/eventslast.php", params={"id": team_id})
        matches = [parse_event(e) for e in expect(payload, "results", self.name)]
        matches.sort(key=lambda m: m.date, reverse=True)
        return matches[:limit]

    async def get_upcoming_matches(self, team_id: str, limit: int = 5) -> list[MatchRecord]:
        payload = await self._request("/eventsnext.php", params={"id": team_id})
        matches = [parse_event(e) for e in expect(payload, "events", self.name)]
        matches.sort(key=lambda m: m.date)
        return matches[:limit]

    async def get_head_to_head(self, team_a_id: str, team_b_id: str) -> list[MatchRecord]:
        # No h2h endpoint on the free tier: filter team A's last results
        payload = await self._request("/eventslast.php", params={"id": team_a_id})
        return [
            match for match in (parse_event(e) for e in expect(payload, "results", self.name))
            if str(team_b_id) in (match.home_team_id, match.away_team_id)
        ]

    async def health_check(self) -> bool:
        payload = await self._request("/search_all_teams.php", params={"l": HEALTH_LEAGUE})
        return bool(expect(payload, "teams", self.name))
