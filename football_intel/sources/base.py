"""Abstract base class for source adapters, plus the shared httpx plumbing."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

from football_intel.exceptions import (
    MalformedResponse,
    NetworkError,
    NotFound,
    RateLimitExceeded,
    SourceError,
    SourceTimeout,
    UpstreamServerError,
)
from football_intel.health.governor import SourceHealthGovernor
from football_intel.identity.normalization import name_similarity
from football_intel.models import MatchRecord, TeamCandidate

logger = logging.getLogger(__name__)

# Competition team lists change a few times a season
TEAM_LIST_TTL_SECONDS = 24 * 3600


class SourceAdapter(ABC):
    """Capability set every third-party football source provides."""

    name: str = ""

    @abstractmethod
    async def search_team(self, name: str) -> Optional[TeamCandidate]:
        """
        Find the source's best match for a team name.

        Args:
            name: Free-text team name.

        Returns:
            The closest candidate, or None if the source knows no such team.
        """
        pass

    @abstractmethod
    async def get_recent_matches(self, team_id: str, limit: int = 5) -> list[MatchRecord]:
        """
        Fetch the team's most recent finished matches, newest first.

        Args:
            team_id: The team id in this source's own id space.
            limit: Maximum number of matches.

        Returns:
            List of MatchRecord objects.
        """
        pass

    @abstractmethod
    async def get_upcoming_matches(self, team_id: str, limit: int = 5) -> list[MatchRecord]:
        """Fetch the team's next scheduled matches, soonest first."""
        pass

    @abstractmethod
    async def get_head_to_head(self, team_a_id: str, team_b_id: str) -> list[MatchRecord]:
        """Fetch past meetings between two teams (ids in this source's space)."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Cheap probe; True if the source answers."""
        pass

    def bind_governor(self, governor: SourceHealthGovernor) -> None:
        """Hook for adapters whose capabilities issue more than one request."""
        return None

    async def close(self) -> None:
        return None


class HttpSourceAdapter(SourceAdapter):
    """
    SourceAdapter over an httpx.AsyncClient.

    `_request` is the single place where HTTP outcomes become the engine's
    error taxonomy; subclasses only build URLs and parse payloads.
    """

    BASE_URL = ""

    def __init__(
        self,
        headers: Optional[dict] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers=headers or {},
            timeout=timeout,
        )
        self._governor: Optional[SourceHealthGovernor] = None
        self._clock: Callable[[], float] = time.monotonic
        # list key -> (fetched_at, candidates)
        self._team_lists: dict[str, tuple[float, list[TeamCandidate]]] = {}

    def bind_governor(self, governor: SourceHealthGovernor) -> None:
        self._governor = governor

    def _claim_extra_request(self) -> bool:
        """
        Charge one more HTTP request to the governor.

        A fan-out slot pays for one request. Capabilities that need several
        must claim each further one here; False means the budget is spent.
        """
        if self._governor is None:
            return True
        return self._governor.try_acquire(self.name)

    async def _request(self, path: str, params: Optional[dict] = None) -> Any:
        """
        GET `path` and return the decoded JSON body.

        Raises:
            SourceTimeout, NetworkError: transport failures.
            RateLimitExceeded: HTTP 429.
            UpstreamServerError: HTTP 5xx.
            NotFound: HTTP 404.
            SourceError: any other non-2xx.
            MalformedResponse: body is not JSON.
        """
        try:
            response = await self.client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise SourceTimeout(self.name, f"timeout on {path}") from e
        except httpx.TransportError as e:
            raise NetworkError(self.name, f"{type(e).__name__} on {path}") from e

        status = response.status_code
        if status == 429:
            logger.warning("[%s] Rate limited on %s", self.name.upper(), path)
            raise RateLimitExceeded(self.name)
        if status >= 500:
            raise UpstreamServerError(self.name, f"HTTP {status} on {path}", status)
        if status == 404:
            raise NotFound(self.name, f"HTTP 404 on {path}", status)
        if status >= 400:
            raise SourceError(self.name, f"HTTP {status} on {path}", status)

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse(self.name, f"non-JSON body on {path}", status) from e

    async def _search_team_lists(
        self,
        name: str,
        keys: Sequence[str],
        fetch: Callable[[str], Awaitable[list[TeamCandidate]]],
    ) -> Optional[TeamCandidate]:
        """
        Search per-competition team lists until an exact match turns up.

        Downloaded lists are kept for TEAM_LIST_TTL_SECONDS. The first
        download rides on the caller's governed slot; each further one is
        claimed separately, and the search stops with the best candidate so
        far once the governor says no.
        """
        candidates: list[TeamCandidate] = []
        downloaded = False
        for key in keys:
            cached = self._team_lists.get(key)
            if cached is not None and self._clock() - cached[0] < TEAM_LIST_TTL_SECONDS:
                teams = cached[1]
            else:
                if downloaded and not self._claim_extra_request():
                    logger.debug("[%s] Request budget spent, search for '%s' stopped at %s",
                                 self.name.upper(), name, key)
                    break
                downloaded = True
                teams = await fetch(key)
                self._team_lists[key] = (self._clock(), teams)
            candidates.extend(replace(team) for team in teams)
            best = self._best_candidate(name, candidates)
            if best is not None and best.confidence == 1.0:
                return best
        return self._best_candidate(name, candidates)

    def _best_candidate(self, query: str, candidates: list[TeamCandidate]) -> Optional[TeamCandidate]:
        """Pick the candidate whose name (or short name) is closest to the query."""
        best = None
        for candidate in candidates:
            score = name_similarity(query, candidate.name)
            if candidate.short_name:
                score = max(score, name_similarity(query, candidate.short_name))
            candidate.confidence = score
            if best is None or score > best.confidence:
                best = candidate
        if best is not None and best.confidence <= 0:
            return None
        return best

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._owns_client:
            await self.client.aclose()


# =============================================================================
# PARSING HELPERS
# =============================================================================


def expect(payload: Any, key: str, source: str, kind: type = list) -> Any:
    """Pull `key` out of a vendor payload, enforcing its documented type."""
    if not isinstance(payload, dict):
        raise MalformedResponse(source, f"expected object with '{key}'")
    value = payload.get(key)
    if value is None:
        return kind()
    if not isinstance(value, kind):
        raise MalformedResponse(source, f"'{key}' is {type(value).__name__}, expected {kind.__name__}")
    return value


def to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_datetime(date_str: Optional[str], time_str: Optional[str] = None) -> datetime:
    """Parse ISO datetimes or separate date/time fields into an aware UTC datetime."""
    if not date_str:
        return datetime.now(timezone.utc)
    text = date_str.strip()
    if time_str and "T" not in text:
        text = f"{text}T{time_str.strip()[:8] or '00:00'}"
    text = text.replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.strptime(text[:10], "%Y-%m-%d")
        except ValueError:
            return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
