"""
apifootball.com v3 adapter.

Single endpoint, operation chosen by the `action` query parameter. Errors
come back as HTTP 200 with {"error": code, "message": ...}; code 404 means
"no data" and is treated as an empty result.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from football_intel.exceptions import MalformedResponse, SourceError
from football_intel.models import MatchRecord, MatchStatus, TeamCandidate
from football_intel.sources.base import HttpSourceAdapter, parse_datetime, to_int

logger = logging.getLogger(__name__)

# Premier League, La Liga, Bundesliga, Ligue 1, Serie A
LEAGUE_IDS = ("152", "302", "175", "168", "207")
LOOKBACK_DAYS = 120
LOOKAHEAD_DAYS = 60


def normalize_status(raw: Optional[str]) -> MatchStatus:
    status = (raw or "").strip().lower()
    if status in ("finished", "after et", "after pen.", "ft"):
        return MatchStatus.FINISHED
    if status in ("", "not started", "scheduled"):
        return MatchStatus.SCHEDULED
    if status in ("postponed", "susp"):
        return MatchStatus.POSTPONED
    if status in ("cancelled", "canc", "abandoned"):
        return MatchStatus.CANCELLED
    if status in ("awarded", "awd"):
        return MatchStatus.AWARDED
    if status == "half time" or status.rstrip("'+").isdigit():
        return MatchStatus.LIVE
    return MatchStatus.SCHEDULED


def parse_event(raw: dict, source: str = "apifootball") -> MatchRecord:
    """apifootball.com / SoccersAPI event object -> MatchRecord."""
    return MatchRecord(
        id=str(raw.get("match_id", "")),
        date=parse_datetime(raw.get("match_date"), raw.get("match_time")),
        home_team_name=raw.get("match_hometeam_name") or "",
        home_team_id=str(raw["match_hometeam_id"]) if raw.get("match_hometeam_id") else None,
        away_team_name=raw.get("match_awayteam_name") or "",
        away_team_id=str(raw["match_awayteam_id"]) if raw.get("match_awayteam_id") else None,
        home_score=to_int(raw.get("match_hometeam_score")),
        away_score=to_int(raw.get("match_awayteam_score")),
        status=normalize_status(raw.get("match_status")),
        league_name=raw.get("league_name") or "",
        kickoff_time=raw.get("match_time") or None,
        source=source,
    )


class APIFootballComAdapter(HttpSourceAdapter):
    name = "apifootball"
    BASE_URL = "https://apiv3.apifootball.com"

    def __init__(self, api_key: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        super().__init__(timeout=timeout, client=client)

    async def _action(self, action: str, **params) -> Any:
        payload = await self._request("/", params={"action": action, "APIkey": self.api_key, **params})
        if isinstance(payload, dict) and "error" in payload:
            if str(payload.get("error")) == "404":
                return []
            raise SourceError(self.name, str(payload.get("message") or payload.get("error")))
        return payload

    def _event_list(self, payload: Any) -> list[dict]:
        if not isinstance(payload, list):
            raise MalformedResponse(self.name, f"expected list, got {type(payload).__name__}")
        return payload

    async def search_team(self, name: str) -> Optional[TeamCandidate]:
        return await self._search_team_lists(name, LEAGUE_IDS, self._league_teams)

    async def _league_teams(self, league_id: str) -> list[TeamCandidate]:
        return [
            TeamCandidate(
                source=self.name,
                external_id=str(team.get("team_key")),
                name=team.get("team_name") or "",
                country=team.get("team_country"),
                league=league_id,
            )
            for team in self._event_list(await self._action("get_teams", league_id=league_id))
        ]

    async def _events(self, team_id: str, start: datetime, end: datetime) -> list[MatchRecord]:
        payload = await self._action(
            "get_events",
            **{"from": start.strftime("%Y-%m-%d"), "to": end.strftime("%Y-%m-%d"), "team_id": team_id},
        )
        return [parse_event(e, self.name) for e in self._event_list(payload)]

    async def get_recent_matches(self, team_id: str, limit: int = 5) -> list[MatchRecord]:
        now = datetime.now(timezone.utc)
        matches = await self._events(team_id, now - timedelta(days=LOOKBACK_DAYS), now)
        finished = [m for m in matches if m.status == MatchStatus.FINISHED]
        finished.sort(key=lambda m: m.date, reverse=True)
        return finished[:limit]

    async def get_upcoming_matches(self, team_id: str, limit: int = 5) -> list[MatchRecord]:
        now = datetime.now(timezone.utc)
        matches = await self._events(team_id, now, now + timedelta(days=LOOKAHEAD_DAYS))
        upcoming = [m for m in matches if m.status == MatchStatus.SCHEDULED]
        upcoming.sort(key=lambda m: m.date)
        return upcoming[:limit]

    async def get_head_to_head(self, team_a_id: str, team_b_id: str) -> list[MatchRecord]:
        payload = await self._action("get_H2H", firstTeamId=team_a_id, secondTeamId=team_b_id)
        if isinstance(payload, list):
            return []
        if not isinstance(payload, dict):
            raise MalformedResponse(self.name, "expected H2H object")
        events = payload.get("firstTeam_VS_secondTeam") or []
        return [parse_event(e, self.name) for e in events]

    async def health_check(self) -> bool:
        payload = await self._action("get_countries")
        return isinstance(payload, list)
