"""
football-data.org v4 adapter.

Free tier: 10 requests/minute, competitions listed in COMPETITION_CODES.
Auth via the X-Auth-Token header. There is no team search endpoint, so
search walks the team lists of the major competitions.
"""

import logging
from typing import Optional

import httpx

from football_intel.exceptions import SourceError
from football_intel.models import MatchRecord, MatchStatus, TeamCandidate
from football_intel.sources.base import HttpSourceAdapter, expect, parse_datetime, to_int

logger = logging.getLogger(__name__)

COMPETITION_CODES = ("PL", "CL", "EL", "PD", "BL1", "SA", "FL1")

_STATUS_MAP = {
    "FINISHED": MatchStatus.FINISHED,
    "AWARDED": MatchStatus.AWARDED,
    "SCHEDULED": MatchStatus.SCHEDULED,
    "TIMED": MatchStatus.SCHEDULED,
    "IN_PLAY": MatchStatus.LIVE,
    "PAUSED": MatchStatus.LIVE,
    "LIVE": MatchStatus.LIVE,
    "POSTPONED": MatchStatus.POSTPONED,
    "SUSPENDED": MatchStatus.POSTPONED,
    "CANCELLED": MatchStatus.CANCELLED,
}


def normalize_status(raw: Optional[str]) -> MatchStatus:
    return _STATUS_MAP.get((raw or "").upper(), MatchStatus.SCHEDULED)


def parse_match(raw: dict) -> MatchRecord:
    """football-data match object -> MatchRecord."""
    home = raw.get("homeTeam") or {}
    away = raw.get("awayTeam") or {}
    full_time = (raw.get("score") or {}).get("fullTime") or {}
    kickoff = parse_datetime(raw.get("utcDate"))
    return MatchRecord(
        id=str(raw.get("id", "")),
        date=kickoff,
        home_team_name=home.get("name") or "",
        home_team_id=str(home["id"]) if home.get("id") is not None else None,
        away_team_name=away.get("name") or "",
        away_team_id=str(away["id"]) if away.get("id") is not None else None,
        home_score=to_int(full_time.get("home")),
        away_score=to_int(full_time.get("away")),
        status=normalize_status(raw.get("status")),
        league_name=(raw.get("competition") or {}).get("name") or "",
        kickoff_time=kickoff.strftime("%H:%M"),
        source=FootballDataAdapter.name,
    )


class FootballDataAdapter(HttpSourceAdapter):
    name = "football-data"
    BASE_URL = "https://api.football-data.org/v4"

    def __init__(self, api_key: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        super().__init__(headers={"X-Auth-Token": api_key}, timeout=timeout, client=client)

    async def search_team(self, name: str) -> Optional[TeamCandidate]:
        return await self._search_team_lists(name, COMPETITION_CODES, self._competition_teams)

    async def _competition_teams(self, code: str) -> list[TeamCandidate]:
        try:
            payload = await self._request(f"/competitions/{code}/teams")
        except SourceError as e:
            # One competition outside the plan must not hide the others
            if e.status_code in (403, 404):
                logger.debug("[FOOTBALL_DATA] %s unavailable: %s", code, e)
                return []
            raise
        return [
            TeamCandidate(
                source=self.name,
                external_id=str(team.get("id")),
                name=team.get("name") or "",
                short_name=team.get("shortName"),
                country=(team.get("area") or {}).get("name"),
                league=code,
            )
            for team in expect(payload, "teams", self.name)
        ]

    async def get_recent_matches(self, team_id: str, limit: int = 5) -> list[MatchRecord]:
        payload = await self._request(
            f"/teams/{team_id}/matches", params={"status": "FINISHED", "limit": limit},
        )
        matches = [parse_match(m) for m in expect(payload, "matches", self.name)]
        matches.sort(key=lambda m: m.date, reverse=True)
        return matches[:limit]

    async def get_upcoming_matches(self, team_id: str, limit: int = 5) -> list[MatchRecord]:
        payload = await self._request(
            f"/teams/{team_id}/matches", params={"status": "SCHEDULED", "limit": limit},
        )
        matches = [parse_match(m) for m in expect(payload, "matches", self.name)]
        matches.sort(key=lambda m: m.date)
        return matches[:limit]

    async def get_head_to_head(self, team_a_id: str, team_b_id: str) -> list[MatchRecord]:
        # v4 exposes h2h per match; filter team A's history for team B instead
        payload = await self._request(
            f"/teams/{team_a_id}/matches", params={"status": "FINISHED", "limit": 100},
        )
        return [
            match for match in (parse_match(m) for m in expect(payload, "matches", self.name))
            if str(team_b_id) in (match.home_team_id, match.away_team_id)
        ]

    async def health_check(self) -> bool:
        await self._request("/competitions")
        return True
