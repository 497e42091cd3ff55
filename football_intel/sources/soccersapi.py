"""
SoccersAPI v2.2 adapter.

Auth is `user` + `token` query parameters. Payloads are wrapped as
{"success": 1, "data": [...]}; events use the same match_* field set as
apifootball.com, so parsing is shared.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from football_intel.exceptions import SourceError
from football_intel.models import MatchRecord, MatchStatus, TeamCandidate
from football_intel.sources.apifootball_com import parse_event
from football_intel.sources.base import HttpSourceAdapter, expect

logger = logging.getLogger(__name__)

LOOKBACK_DAYS = 120
LOOKAHEAD_DAYS = 60


def normalize_status(raw: Optional[str]) -> MatchStatus:
    status = (raw or "").strip().lower()
    if status in ("finished", "match finished", "ft"):
        return MatchStatus.FINISHED
    if status in ("live", "in play", "1st half", "2nd half", "half time"):
        return MatchStatus.LIVE
    if status in ("", "not started", "scheduled", "ns"):
        return MatchStatus.SCHEDULED
    if status == "postponed":
        return MatchStatus.POSTPONED
    if status in ("cancelled", "canceled"):
        return MatchStatus.CANCELLED
    return MatchStatus.SCHEDULED


class SoccersAPIAdapter(HttpSourceAdapter):
    name = "soccersapi"
    BASE_URL = "https://api.soccersapi.com/v2.2"

    def __init__(self, user: str, token: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.user = user
        self.token = token
        super().__init__(timeout=timeout, client=client)

    async def _data(self, path: str, **params) -> list:
        payload = await self._request(path, params={"user": self.user, "token": self.token, **params})
        if isinstance(payload, dict) and payload.get("success") not in (None, 1, "1", True):
            raise SourceError(self.name, str(payload.get("message") or "request rejected"))
        return expect(payload, "data", self.name)

    def _parse(self, raw: dict) -> MatchRecord:
        match = parse_event(raw, self.name)
        match.status = normalize_status(raw.get("match_status"))
        return match

    async def _schedule(self, team_id: str, start: datetime, end: datetime) -> list[MatchRecord]:
        events = await self._data(
            "/fixtures/",
            t="schedule",
            d=f"{start.strftime('%Y-%m-%d')}:{end.strftime('%Y-%m-%d')}",
            team_id=team_id,
        )
        return [self._parse(e) for e in events]

    async def search_team(self, name: str) -> Optional[TeamCandidate]:
        candidates = [
            TeamCandidate(
                source=self.name,
                external_id=str(team.get("id") or team.get("team_key")),
                name=team.get("name") or team.get("team_name") or "",
                country=team.get("country") or team.get("team_country"),
            )
            for team in await self._data("/teams/", t="list", search=name)
        ]
        return self._best_candidate(name, candidates)

    async def get_recent_matches(self, team_id: str, limit: int = 5) -> list[MatchRecord]:
        now = datetime.now(timezone.utc)
        matches = await self._schedule(team_id, now - timedelta(days=LOOKBACK_DAYS), now)
        finished = [m for m in matches if m.status == MatchStatus.FINISHED]
        finished.sort(key=lambda m: m.date, reverse=True)
        return finished[:limit]

    async def get_upcoming_matches(self, team_id: str, limit: int = 5) -> list[MatchRecord]:
        now = datetime.now(timezone.utc)
        matches = await self._schedule(team_id, now, now + timedelta(days=LOOKAHEAD_DAYS))
        upcoming = [m for m in matches if m.status == MatchStatus.SCHEDULED]
        upcoming.sort(key=lambda m: m.date)
        return upcoming[:limit]

    async def get_head_to_head(self, team_a_id: str, team_b_id: str) -> list[MatchRecord]:
        now = datetime.now(timezone.utc)
        matches = await self._schedule(team_a_id, now - timedelta(days=LOOKBACK_DAYS * 3), now)
        return [
            m for m in matches
            if m.status == MatchStatus.FINISHED and str(team_b_id) in (m.home_team_id, m.away_team_id)
        ]

    async def health_check(self) -> bool:
        payload: Any = await self._request(
            "/livescores/", params={"user": self.user, "token": self.token, "t": "today"},
        )
        return isinstance(payload, dict) and payload.get("success") in (1, "1", True)
