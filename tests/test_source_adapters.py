"""Tests for the vendor adapters over httpx.MockTransport."""

import json

import httpx
import pytest

from football_intel.config import Settings
from football_intel.exceptions import (
    MalformedResponse,
    NetworkError,
    NotFound,
    RateLimitExceeded,
    SourceError,
    SourceTimeout,
    UpstreamServerError,
)
from football_intel.health.governor import GovernorPolicy, SourceHealthGovernor, SourceLimits
from football_intel.models import MatchStatus
from football_intel.sources import api_football, apifootball_com, football_data, soccersapi, thesportsdb
from football_intel.sources.api_football import APIFootballAdapter
from football_intel.sources.apifootball_com import APIFootballComAdapter
from football_intel.sources.base import parse_datetime
from football_intel.sources.football_data import FootballDataAdapter
from football_intel.sources.registry import build_adapters
from football_intel.sources.soccersapi import SoccersAPIAdapter
from football_intel.sources.thesportsdb import TheSportsDBAdapter


def client_for(handler, base_url: str) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=base_url)


def respond(payload, status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=payload)
    return handler


def football_data_with(handler) -> FootballDataAdapter:
    return FootballDataAdapter("key", client=client_for(handler, FootballDataAdapter.BASE_URL))


# ---------------------------------------------------------------------------
# HTTP outcome -> error taxonomy
# ---------------------------------------------------------------------------

class TestHttpErrorMapping:
    """One place turns HTTP results into engine errors."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error", [
        (429, RateLimitExceeded),
        (500, UpstreamServerError),
        (503, UpstreamServerError),
        (404, NotFound),
        (403, SourceError),
    ])
    async def test_status_codes(self, status, error):
        adapter = football_data_with(respond({"message": "nope"}, status))
        with pytest.raises(error) as excinfo:
            await adapter.get_recent_matches("57")
        assert excinfo.value.status_code == status
        assert excinfo.value.source == "football-data"

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(SourceTimeout):
            await football_data_with(handler).get_recent_matches("57")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkError):
            await football_data_with(handler).get_recent_matches("57")

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(MalformedResponse):
            await football_data_with(handler).get_recent_matches("57")

    @pytest.mark.asyncio
    async def test_wrong_shape(self):
        with pytest.raises(MalformedResponse):
            await football_data_with(respond({"matches": {"not": "a list"}})).get_recent_matches("57")


# ---------------------------------------------------------------------------
# football-data.org
# ---------------------------------------------------------------------------

class TestFootballData:
    """football-data v4 payloads."""

    MATCH = {
        "id": 1001,
        "utcDate": "2025-02-22T15:00:00Z",
        "status": "FINISHED",
        "homeTeam": {"id": 57, "name": "Arsenal FC"},
        "awayTeam": {"id": 61, "name": "Chelsea FC"},
        "score": {"fullTime": {"home": 2, "away": 1}},
        "competition": {"name": "Premier League"},
    }

    @pytest.mark.asyncio
    async def test_recent_matches(self):
        requests = []

        def handler(request):
            requests.append(request)
            older = dict(self.MATCH, id=1000, utcDate="2025-02-15T15:00:00Z")
            return httpx.Response(200, json={"matches": [older, self.MATCH]})

        matches = await football_data_with(handler).get_recent_matches("57", limit=5)
        assert [m.id for m in matches] == ["1001", "1000"]
        first = matches[0]
        assert (first.home_team_id, first.away_team_id) == ("57", "61")
        assert (first.home_score, first.away_score) == (2, 1)
        assert first.status == MatchStatus.FINISHED
        assert first.kickoff_time == "15:00"
        assert first.source == "football-data"
        assert requests[0].url.path == "/v4/teams/57/matches"
        assert requests[0].headers["X-Auth-Token"] == "key"

    @pytest.mark.asyncio
    async def test_head_to_head_filters_opponent(self):
        other = dict(self.MATCH, id=1002, awayTeam={"id": 73, "name": "Tottenham"})
        adapter = football_data_with(respond({"matches": [self.MATCH, other]}))
        meetings = await adapter.get_head_to_head("57", "61")
        assert [m.id for m in meetings] == ["1001"]

    @pytest.mark.asyncio
    async def test_search_skips_unavailable_competitions(self):
        def handler(request):
            if request.url.path.endswith("/PL/teams"):
                return httpx.Response(200, json={"teams": [
                    {"id": 57, "name": "Arsenal FC", "shortName": "Arsenal", "area": {"name": "England"}},
                    {"id": 61, "name": "Chelsea FC", "shortName": "Chelsea", "area": {"name": "England"}},
                ]})
            return httpx.Response(403, json={"message": "restricted"})

        found = await football_data_with(handler).search_team("Arsenal")
        assert found.external_id == "57"
        assert found.confidence == 1.0
        assert found.league == "PL"

    def test_normalize_status(self):
        assert football_data.normalize_status("FINISHED") == MatchStatus.FINISHED
        assert football_data.normalize_status("TIMED") == MatchStatus.SCHEDULED
        assert football_data.normalize_status("IN_PLAY") == MatchStatus.LIVE
        assert football_data.normalize_status("SUSPENDED") == MatchStatus.POSTPONED
        assert football_data.normalize_status(None) == MatchStatus.SCHEDULED


# ---------------------------------------------------------------------------
# API-Football
# ---------------------------------------------------------------------------

class TestAPIFootball:
    """API-Football v3 envelope and fixtures."""

    FIXTURE = {
        "fixture": {"id": 7, "date": "2025-02-22T17:30:00+00:00", "status": {"short": "FT"}},
        "league": {"name": "Premier League"},
        "teams": {"home": {"id": 42, "name": "Arsenal"}, "away": {"id": 49, "name": "Chelsea"}},
        "goals": {"home": 1, "away": 1},
    }

    def adapter(self, handler) -> APIFootballAdapter:
        return APIFootballAdapter("key", client=client_for(handler, APIFootballAdapter.BASE_URL))

    @pytest.mark.asyncio
    async def test_recent_matches(self):
        matches = await self.adapter(respond({"errors": [], "response": [self.FIXTURE]})).get_recent_matches("42")
        assert len(matches) == 1
        assert matches[0].home_team_id == "42"
        assert matches[0].status == MatchStatus.FINISHED
        assert matches[0].kickoff_time == "17:30"

    @pytest.mark.asyncio
    async def test_errors_envelope_is_an_error(self):
        adapter = self.adapter(respond({"errors": {"token": "Error/Missing application key"}, "response": []}))
        with pytest.raises(SourceError):
            await adapter.get_recent_matches("42")

    @pytest.mark.asyncio
    async def test_quota_errors_are_rate_limits(self):
        adapter = self.adapter(respond({"errors": {"rateLimit": "Too many requests"}, "response": []}))
        with pytest.raises(RateLimitExceeded):
            await adapter.search_team("Arsenal")

    @pytest.mark.asyncio
    async def test_search_uses_code_as_short_name(self):
        payload = {"errors": [], "response": [
            {"team": {"id": 42, "name": "Arsenal", "code": "ARS", "country": "England"}},
            {"team": {"id": 1463, "name": "Arsenal Tula", "code": "ART", "country": "Russia"}},
        ]}
        found = await self.adapter(respond(payload)).search_team("Arsenal")
        assert found.external_id == "42"

    def test_rapidapi_headers(self):
        adapter = APIFootballAdapter("key", use_rapidapi=True, rapidapi_host="host.example")
        assert adapter.client.headers["X-RapidAPI-Host"] == "host.example"
        assert str(adapter.client.base_url).startswith("https://host.example/v3")

    def test_normalize_status(self):
        assert api_football.normalize_status("AET") == MatchStatus.FINISHED
        assert api_football.normalize_status("HT") == MatchStatus.LIVE
        assert api_football.normalize_status("PST") == MatchStatus.POSTPONED
        assert api_football.normalize_status("AWD") == MatchStatus.AWARDED
        assert api_football.normalize_status("WO") == MatchStatus.WALKOVER
        assert api_football.normalize_status("???") == MatchStatus.SCHEDULED


# ---------------------------------------------------------------------------
# apifootball.com / SoccersAPI
# ---------------------------------------------------------------------------

EVENT = {
    "match_id": "99",
    "match_date": "2025-02-22",
    "match_time": "20:00",
    "match_status": "Finished",
    "match_hometeam_id": "130",
    "match_hometeam_name": "Arsenal",
    "match_hometeam_score": "3",
    "match_awayteam_id": "131",
    "match_awayteam_name": "Chelsea",
    "match_awayteam_score": "0",
    "league_name": "Premier League",
}


class TestAPIFootballCom:
    """apifootball.com actions."""

    def adapter(self, handler) -> APIFootballComAdapter:
        return APIFootballComAdapter("key", client=client_for(handler, APIFootballComAdapter.BASE_URL))

    @pytest.mark.asyncio
    async def test_events(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=[EVENT, dict(EVENT, match_id="100", match_status="")])

        matches = await self.adapter(handler).get_recent_matches("130")
        assert [m.id for m in matches] == ["99"]
        assert (matches[0].home_score, matches[0].away_score) == (3, 0)
        assert matches[0].date.hour == 20
        params = requests[0].url.params
        assert params["action"] == "get_events"
        assert params["team_id"] == "130"

    @pytest.mark.asyncio
    async def test_no_data_error_is_empty(self):
        adapter = self.adapter(respond({"error": 404, "message": "No event found"}))
        assert await adapter.get_recent_matches("130") == []

    @pytest.mark.asyncio
    async def test_other_errors_raise(self):
        adapter = self.adapter(respond({"error": 401, "message": "Invalid API key"}))
        with pytest.raises(SourceError):
            await adapter.get_recent_matches("130")

    @pytest.mark.asyncio
    async def test_head_to_head(self):
        payload = {"firstTeam_VS_secondTeam": [EVENT], "firstTeam_lastResults": []}
        meetings = await self.adapter(respond(payload)).get_head_to_head("130", "131")
        assert [m.id for m in meetings] == ["99"]

    def test_normalize_status(self):
        assert apifootball_com.normalize_status("After Pen.") == MatchStatus.FINISHED
        assert apifootball_com.normalize_status("45+") == MatchStatus.LIVE
        assert apifootball_com.normalize_status("Half Time") == MatchStatus.LIVE
        assert apifootball_com.normalize_status("") == MatchStatus.SCHEDULED
        assert apifootball_com.normalize_status("Postponed") == MatchStatus.POSTPONED


class TestSoccersAPI:
    """SoccersAPI envelope."""

    def adapter(self, handler) -> SoccersAPIAdapter:
        return SoccersAPIAdapter("user", "token", client=client_for(handler, SoccersAPIAdapter.BASE_URL))

    @pytest.mark.asyncio
    async def test_rejected_request(self):
        adapter = self.adapter(respond({"success": 0, "message": "Invalid token"}))
        with pytest.raises(SourceError):
            await adapter.get_recent_matches("1")

    @pytest.mark.asyncio
    async def test_fixtures(self):
        matches = await self.adapter(respond({"success": 1, "data": [EVENT]})).get_recent_matches("130")
        assert matches[0].source == "soccersapi"
        assert matches[0].status == MatchStatus.FINISHED

    @pytest.mark.asyncio
    async def test_health_check(self):
        assert await self.adapter(respond({"success": 1, "data": []})).health_check()

    def test_normalize_status(self):
        assert soccersapi.normalize_status("Match Finished") == MatchStatus.FINISHED
        assert soccersapi.normalize_status("2nd half") == MatchStatus.LIVE
        assert soccersapi.normalize_status("Canceled") == MatchStatus.CANCELLED


# ---------------------------------------------------------------------------
# TheSportsDB
# ---------------------------------------------------------------------------

class TestTheSportsDB:
    """TheSportsDB v1 with the key in the path."""

    def adapter(self, handler) -> TheSportsDBAdapter:
        base = "https://www.thesportsdb.com/api/v1/json/3"
        return TheSportsDBAdapter("3", client=client_for(handler, base))

    @pytest.mark.asyncio
    async def test_search_ignores_other_sports(self):
        payload = {"teams": [
            {"idTeam": "1", "strTeam": "Arsenal", "strSport": "Basketball"},
            {"idTeam": "133604", "strTeam": "Arsenal", "strSport": "Soccer", "strCountry": "England"},
        ]}
        found = await self.adapter(respond(payload)).search_team("Arsenal")
        assert found.external_id == "133604"

    @pytest.mark.asyncio
    async def test_null_results_are_empty(self):
        assert await self.adapter(respond({"results": None})).get_recent_matches("133604") == []

    @pytest.mark.asyncio
    async def test_recent_matches(self):
        event = {
            "idEvent": "5",
            "dateEvent": "2025-02-22",
            "strTime": "15:00:00",
            "strHomeTeam": "Arsenal",
            "idHomeTeam": "133604",
            "strAwayTeam": "Chelsea",
            "idAwayTeam": "133610",
            "intHomeScore": "1",
            "intAwayScore": "2",
            "strStatus": None,
        }
        matches = await self.adapter(respond({"results": [event]})).get_recent_matches("133604")
        assert matches[0].status == MatchStatus.FINISHED
        assert matches[0].kickoff_time == "15:00"

    def test_normalize_status(self):
        assert thesportsdb.normalize_status("Match Finished") == MatchStatus.FINISHED
        assert thesportsdb.normalize_status("NS") == MatchStatus.SCHEDULED
        assert thesportsdb.normalize_status("", home_score=2) == MatchStatus.FINISHED
        assert thesportsdb.normalize_status("", home_score=None) == MatchStatus.SCHEDULED


# ---------------------------------------------------------------------------
# Searches spanning several requests
# ---------------------------------------------------------------------------

class TestRequestBudget:
    """Every HTTP request of a multi-list search is charged to the governor."""

    @staticmethod
    def recording(requests: list, payload, clock=None):
        def handler(request):
            requests.append(request)
            if clock is not None:
                clock.advance(1)
            return httpx.Response(200, json=payload)
        return handler

    @pytest.mark.asyncio
    async def test_search_stops_when_governor_says_no(self, clock):
        requests = []
        adapter = football_data_with(self.recording(requests, {"teams": []}))
        governor = SourceHealthGovernor(clock=clock)
        adapter.bind_governor(governor)

        # The slot a fan-out would take before calling the adapter
        assert governor.try_acquire("football-data")
        assert await adapter.search_team("Nowhere Rovers") is None
        assert len(requests) == 1
        assert governor.status("football-data")["requests_this_window"] == 1

        clock.advance(60)
        assert governor.try_acquire("football-data")
        await adapter.search_team("Nowhere Rovers")
        # PL comes from the kept list, CL is the one new download
        assert [r.url.path for r in requests] == ["/v4/competitions/PL/teams", "/v4/competitions/CL/teams"]

    @pytest.mark.asyncio
    async def test_each_request_is_recorded(self, clock):
        requests = []
        adapter = APIFootballComAdapter(
            "key", client=client_for(self.recording(requests, [], clock), APIFootballComAdapter.BASE_URL),
        )
        governor = SourceHealthGovernor(
            limits={"apifootball": SourceLimits(requests_per_minute=600, burst_limit=100)},
            policy=GovernorPolicy(min_spacing_seconds=0),
            clock=clock,
        )
        adapter.bind_governor(governor)

        assert governor.try_acquire("apifootball")
        assert await adapter.search_team("Nowhere Rovers") is None
        assert len(requests) == len(apifootball_com.LEAGUE_IDS)
        assert governor.status("apifootball")["requests_this_window"] == len(requests)

    @pytest.mark.asyncio
    async def test_team_lists_are_kept_between_searches(self):
        requests = []
        teams = {"teams": [{"id": 57, "name": "Arsenal FC", "shortName": "Arsenal"}]}
        adapter = football_data_with(self.recording(requests, teams))

        assert await adapter.search_team("Nowhere Rovers") is None
        assert len(requests) == len(football_data.COMPETITION_CODES)

        found = await adapter.search_team("Arsenal")
        assert found.external_id == "57"
        assert len(requests) == len(football_data.COMPETITION_CODES)


# ---------------------------------------------------------------------------
# Registry / helpers
# ---------------------------------------------------------------------------

class TestRegistry:
    """Only configured sources are built."""

    def test_only_public_source_without_keys(self):
        adapters = build_adapters(Settings(_env_file=None))
        assert list(adapters) == ["thesportsdb"]

    def test_all_sources_with_keys(self):
        settings = Settings(
            _env_file=None,
            FOOTBALL_DATA_API_KEY="a",
            API_FOOTBALL_KEY="b",
            APIFOOTBALL_KEY="c",
            SOCCERSAPI_USER="d",
            SOCCERSAPI_TOKEN="e",
        )
        assert set(build_adapters(settings)) == {
            "football-data", "api-football", "apifootball", "thesportsdb", "soccersapi",
        }

    def test_parse_datetime(self):
        parsed = parse_datetime("2025-02-22", "20:00")
        assert (parsed.year, parsed.hour, parsed.tzinfo is not None) == (2025, 20, True)
        assert parse_datetime("2025-02-22T15:00:00Z").hour == 15
        assert parse_datetime("2025-02-22T17:00:00+02:00").hour == 15
