"""
API-Football v3 adapter (api-sports.io direct key, or RapidAPI).

Every response is wrapped as {"errors": ..., "response": [...]}; a non-empty
"errors" with HTTP 200 is how the vendor reports bad keys and exhausted
quotas, so it is surfaced as an error instead of an empty result.
"""

import logging
from typing import Optional

import httpx

from football_intel.exceptions import RateLimitExceeded, SourceError
from football_intel.models import MatchRecord, MatchStatus, TeamCandidate
from football_intel.sources.base import HttpSourceAdapter, expect, parse_datetime, to_int

logger = logging.getLogger(__name__)

DIRECT_BASE_URL = "https://v3.football.api-sports.io"

_STATUS_MAP = {
    "FT": MatchStatus.FINISHED,
    "AET": MatchStatus.FINISHED,
    "PEN": MatchStatus.FINISHED,
    "1H": MatchStatus.LIVE,
    "2H": MatchStatus.LIVE,
    "HT": MatchStatus.LIVE,
    "ET": MatchStatus.LIVE,
    "BT": MatchStatus.LIVE,
    "P": MatchStatus.LIVE,
    "LIVE": MatchStatus.LIVE,
    "INT": MatchStatus.LIVE,
    "NS": MatchStatus.SCHEDULED,
    "TBD": MatchStatus.SCHEDULED,
    "PST": MatchStatus.POSTPONED,
    "SUSP": MatchStatus.POSTPONED,
    "CANC": MatchStatus.CANCELLED,
    "ABD": MatchStatus.CANCELLED,
    "AWD": MatchStatus.AWARDED,
    "WO": MatchStatus.WALKOVER,
}


def normalize_status(raw: Optional[str]) -> MatchStatus:
    return _STATUS_MAP.get((raw or "").upper(), MatchStatus.SCHEDULED)


def parse_fixture(raw: dict) -> MatchRecord:
    """API-Football fixture object -> MatchRecord."""
    fixture = raw.get("fixture") or {}
    teams = raw.get("teams") or {}
    home = teams.get("home") or {}
    away = teams.get("away") or {}
    goals = raw.get("goals") or {}
    kickoff = parse_datetime(fixture.get("date"))
    return MatchRecord(
        id=str(fixture.get("id", "")),
        date=kickoff,
        home_team_name=home.get("name") or "",
        home_team_id=str(home["id"]) if home.get("id") is not None else None,
        away_team_name=away.get("name") or "",
        away_team_id=str(away["id"]) if away.get("id") is not None else None,
        home_score=to_int(goals.get("home")),
        away_score=to_int(goals.get("away")),
        status=normalize_status((fixture.get("status") or {}).get("short")),
        league_name=(raw.get("league") or {}).get("name") or "",
        kickoff_time=kickoff.strftime("%H:%M"),
        source=APIFootballAdapter.name,
    )


class APIFootballAdapter(HttpSourceAdapter):
    name = "api-football"
    BASE_URL = DIRECT_BASE_URL

    def __init__(
        self,
        api_key: str,
        use_rapidapi: bool = False,
        rapidapi_host: str = "api-football-v1.p.rapidapi.com",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if use_rapidapi:
            self.BASE_URL = f"https://{rapidapi_host}/v3"
            headers = {
                "X-RapidAPI-Key": api_key,
                "X-RapidAPI-Host": rapidapi_host,
            }
        else:
            headers = {"x-apisports-key": api_key}
        super().__init__(headers=headers, timeout=timeout, client=client)

    async def _response(self, path: str, params: dict) -> list:
        payload = await self._request(path, params=params)
        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            text = str(errors)
            logger.error("[API_FOOTBALL] API error on %s: %s", path, text)
            if "rateLimit" in text or "requests" in text.lower():
                raise RateLimitExceeded(self.name, text)
            raise SourceError(self.name, text)
        return expect(payload, "response", self.name)

    async def search_team(self, name: str) -> Optional[TeamCandidate]:
        candidates = []
        for item in await self._response("/teams", {"search": name}):
            team = item.get("team") or {}
            candidates.append(TeamCandidate(
                source=self.name,
                external_id=str(team.get("id")),
                name=team.get("name") or "",
                short_name=team.get("code"),
                country=team.get("country"),
            ))
        return self._best_candidate(name, candidates)

    async def get_recent_matches(self, team_id: str, limit: int = 5) -> list[MatchRecord]:
        fixtures = await self._response("/fixtures", {"team": team_id, "last": limit})
        matches = [parse_fixture(f) for f in fixtures]
        matches.sort(key=lambda m: m.date, reverse=True)
        return matches

    async def get_upcoming_matches(self, team_id: str, limit: int = 5) -> list[MatchRecord]:
        fixtures = await self._response("/fixtures", {"team": team_id, "next": limit})
        matches = [parse_fixture(f) for f in fixtures]
        matches.sort(key=lambda m: m.date)
        return matches

    async def get_head_to_head(self, team_a_id: str, team_b_id: str) -> list[MatchRecord]:
        fixtures = await self._response("/fixtures/headtohead", {"h2h": f"{team_a_id}-{team_b_id}"})
        return [parse_fixture(f) for f in fixtures]

    async def health_check(self) -> bool:
        await self._request("/status")
        return True
