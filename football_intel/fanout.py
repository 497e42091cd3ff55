"""
Fan-Out Query Engine.

Issues the same logical query to every permitted source concurrently and
picks the answer from the highest-priority source that succeeded, whatever
order the answers arrived in. Adapter errors stop here: they are logged,
recorded into source health and turned into "no result from this source".

Usage:
    engine = FanOutEngine(adapters, governor, waiter)

    matches = await engine.query(
        "get_recent_matches",
        lambda adapter: adapter.get_recent_matches(ids[adapter.name], 5)
            if adapter.name in ids else None,
        MATCHES_PRIORITY,
    )
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional

from football_intel.exceptions import NetworkError, NotFound, RateLimitExceeded, SourceError
from football_intel.health.governor import SourceHealthGovernor
from football_intel.health.waiter import IntelligentWaiter
from football_intel.identity.normalization import normalize_team_name
from football_intel.models import MatchRecord
from football_intel.sources.base import SourceAdapter
from football_intel.telemetry.metrics import record_source_call

logger = logging.getLogger(__name__)

# Builds the coroutine for one adapter, or None when the source can't serve it
CallFactory = Callable[[SourceAdapter], Optional[Awaitable[Any]]]


@dataclass
class Attempt:
    """What happened with one source for one fan-out."""

    source: str
    outcome: str  # ok | empty | error | rate_limited | timeout | skipped | not_applicable
    result: Any = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == "ok"


def is_valid_result(result: Any) -> bool:
    if result is None:
        return False
    if isinstance(result, (list, tuple, dict, set)):
        return len(result) > 0
    return True


class FanOutEngine:
    def __init__(
        self,
        adapters: dict[str, SourceAdapter],
        governor: SourceHealthGovernor,
        waiter: Optional[IntelligentWaiter] = None,
    ):
        self.adapters = adapters
        self.governor = governor
        self.waiter = waiter

    def _ordered_sources(self, priority: Iterable[str]) -> list[str]:
        ordered = [s for s in priority if s in self.adapters]
        # Sources missing from the priority list go last, in registration order
        ordered += [s for s in self.adapters if s not in ordered]
        return ordered

    async def _attempt(
        self,
        source: str,
        capability: str,
        call: CallFactory,
        wait_timeout: Optional[float],
    ) -> Attempt:
        adapter = self.adapters[source]
        try:
            pending = call(adapter)
        except Exception as e:
            logger.error("[FANOUT] Could not build %s call for %s: %s", capability, source, e)
            return Attempt(source, "not_applicable", error=str(e))
        if pending is None:
            return Attempt(source, "not_applicable")

        acquired = self.governor.try_acquire(source)
        if not acquired and wait_timeout and self.waiter is not None:
            if await self.waiter.wait_for(source, wait_timeout):
                acquired = self.governor.try_acquire(source)
        if not acquired:
            if asyncio.iscoroutine(pending):
                pending.close()
            record_source_call(source, capability, "skipped", 0.0)
            return Attempt(source, "skipped")

        start = time.monotonic()
        try:
            result = await pending
        except NotFound as e:
            # The source is healthy, it just doesn't have this team/match
            self.governor.record_success(source)
            record_source_call(source, capability, "empty", (time.monotonic() - start) * 1000)
            logger.debug("[FANOUT] %s %s: not found (%s)", source, capability, e)
            return Attempt(source, "empty")
        except RateLimitExceeded as e:
            self.governor.record_error(source, 429)
            record_source_call(source, capability, "rate_limited", (time.monotonic() - start) * 1000)
            logger.warning("[FANOUT] %s %s rate limited", source, capability)
            return Attempt(source, "rate_limited", error=str(e))
        except NetworkError as e:
            self.governor.record_error(source, transport_failure=True)
            record_source_call(source, capability, "timeout", (time.monotonic() - start) * 1000)
            logger.warning("[FANOUT] %s %s transport failure: %s", source, capability, e)
            return Attempt(source, "timeout", error=str(e))
        except SourceError as e:
            self.governor.record_error(source, e.status_code)
            record_source_call(source, capability, "error", (time.monotonic() - start) * 1000)
            logger.warning("[FANOUT] %s %s failed: %s", source, capability, e)
            return Attempt(source, "error", error=str(e))
        except Exception as e:
            # A bug in one adapter must not take down the whole fan-out
            self.governor.record_error(source)
            record_source_call(source, capability, "error", (time.monotonic() - start) * 1000)
            logger.error("[FANOUT] %s %s unexpected %s: %s", source, capability, type(e).__name__, e)
            return Attempt(source, "error", error=f"{type(e).__name__}: {e}")

        latency_ms = (time.monotonic() - start) * 1000
        self.governor.record_success(source)
        outcome = "ok" if is_valid_result(result) else "empty"
        record_source_call(source, capability, outcome, latency_ms)
        logger.debug("[FANOUT] %s %s -> %s (%.0fms)", source, capability, outcome, latency_ms)
        return Attempt(source, outcome, result=result)

    async def attempt_all(
        self,
        capability: str,
        call: CallFactory,
        priority: Iterable[str],
        *,
        wait_timeout: Optional[float] = None,
    ) -> list[Attempt]:
        """Run the call on every source concurrently. Attempts come back in priority order."""
        sources = self._ordered_sources(priority)
        if not sources:
            return []
        return list(await asyncio.gather(
            *(self._attempt(s, capability, call, wait_timeout) for s in sources)
        ))

    async def query(
        self,
        capability: str,
        call: CallFactory,
        priority: Iterable[str],
        *,
        wait_timeout: Optional[float] = None,
    ) -> Optional[Any]:
        """
        Highest-priority successful result, or None if no source produced one.

        Args:
            capability: Capability name (for logs and metrics).
            call: Builds the adapter coroutine; may return None to skip a source.
            priority: Source names, most preferred first.
            wait_timeout: If set, gated sources are waited for up to this many seconds.
        """
        attempts = await self.attempt_all(capability, call, priority, wait_timeout=wait_timeout)
        for attempt in attempts:
            if attempt.succeeded:
                logger.debug("[FANOUT] %s answered by %s", capability, attempt.source)
                return attempt.result

        logger.info(
            "[FANOUT] %s: no source succeeded (%s)",
            capability, ", ".join(f"{a.source}={a.outcome}" for a in attempts) or "no sources",
        )
        return None

    async def query_with_source(
        self,
        capability: str,
        call: CallFactory,
        priority: Iterable[str],
        *,
        wait_timeout: Optional[float] = None,
    ) -> tuple[Optional[str], Optional[Any]]:
        """Like query(), but also says which source answered."""
        attempts = await self.attempt_all(capability, call, priority, wait_timeout=wait_timeout)
        for attempt in attempts:
            if attempt.succeeded:
                return attempt.source, attempt.result
        return None, None

    async def query_all(
        self,
        capability: str,
        call: CallFactory,
        priority: Iterable[str],
        *,
        wait_timeout: Optional[float] = None,
    ) -> dict[str, Any]:
        """Every successful result keyed by source, in priority order."""
        attempts = await self.attempt_all(capability, call, priority, wait_timeout=wait_timeout)
        return {a.source: a.result for a in attempts if a.succeeded}


def h2h_key(match: MatchRecord) -> tuple[str, str, str]:
    """Dedupe key for a meeting reported by several sources."""
    return (
        match.date.date().isoformat(),
        normalize_team_name(match.home_team_name),
        normalize_team_name(match.away_team_name),
    )


def merge_head_to_head(results: dict[str, list[MatchRecord]]) -> list[MatchRecord]:
    """
    Merge H2H lists from several sources, newest first.

    When two sources report the same meeting, the copy from the source
    that comes first in `results` (priority order) is kept.
    """
    merged: dict[tuple[str, str, str], MatchRecord] = {}
    for matches in results.values():
        for match in matches:
            merged.setdefault(h2h_key(match), match)
    return sorted(merged.values(), key=lambda m: m.date, reverse=True)
