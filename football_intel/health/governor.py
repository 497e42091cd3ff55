"""
Source Health Governor: per-source rate limiting and circuit breaking.

Every upstream call goes through the governor. Health for a source is an
immutable `SourceHealth` snapshot; the module-level functions below are the
only way to move from one snapshot to the next, so policy can be tested with
plain timestamps and no wall clock:

    health = SourceHealth()
    health = record_request(health, now=100.0)
    health = apply_outcome(health, Outcome.error(429), now=101.0)
    assert health.backoff_until == 103.0

`SourceHealthGovernor` holds the current snapshot per source and swaps it
under a lock, so concurrent callers never lose an update.

Policy per source:
    - sliding 60s window below max(1, floor(rpm * window_cap_ratio))
    - rolling 30s burst below max(1, floor(burst * burst_cap_ratio))
    - spacing between requests >= max(min_spacing, 2 * 60 / rpm)
    - circuit trips at error_count >= 2; skipped until backoff lapses
    - 429: backoff = min(2^errors, 300)s; 5xx/transport: min(10 * errors, 60)s
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Optional

from football_intel.telemetry.metrics import set_circuit_state

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0
BURST_WINDOW_SECONDS = 30.0
CIRCUIT_ERROR_THRESHOLD = 2
MAX_RATE_LIMIT_BACKOFF = 300.0
MAX_SERVER_BACKOFF = 60.0


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class SourceLimits:
    """Documented vendor limits."""

    requests_per_minute: int
    burst_limit: int
    requests_per_day: Optional[int] = None


@dataclass(frozen=True)
class SourceHealth:
    """Immutable health snapshot for one source."""

    request_times: tuple[float, ...] = ()
    last_request_at: float = 0.0
    error_count: int = 0
    backoff_until: float = 0.0

    @property
    def circuit(self) -> str:
        return "tripped" if self.error_count >= CIRCUIT_ERROR_THRESHOLD else "closed"


@dataclass(frozen=True)
class Outcome:
    """Result of one attempted call."""

    success: bool
    status_code: Optional[int] = None
    transport_failure: bool = False

    @classmethod
    def ok(cls) -> "Outcome":
        return cls(success=True)

    @classmethod
    def error(cls, status_code: Optional[int] = None, transport_failure: bool = False) -> "Outcome":
        return cls(success=False, status_code=status_code, transport_failure=transport_failure)


@dataclass(frozen=True)
class GovernorPolicy:
    min_spacing_seconds: float = 10.0
    window_cap_ratio: float = 0.5
    burst_cap_ratio: float = 0.3


# Vendor limits. SoccersAPI publishes no figure; it gets the same
# budget as apifootball.com.
DEFAULT_SOURCE_LIMITS: dict[str, SourceLimits] = {
    "football-data": SourceLimits(requests_per_minute=10, burst_limit=3, requests_per_day=100),
    "api-football": SourceLimits(requests_per_minute=100, burst_limit=10, requests_per_day=1000),
    "apifootball": SourceLimits(requests_per_minute=60, burst_limit=5, requests_per_day=1000),
    "thesportsdb": SourceLimits(requests_per_minute=200, burst_limit=20),
    "soccersapi": SourceLimits(requests_per_minute=60, burst_limit=5, requests_per_day=1000),
}


# =============================================================================
# TRANSITIONS (pure)
# =============================================================================


def prune(health: SourceHealth, now: float) -> SourceHealth:
    """Drop request timestamps older than the sliding window."""
    kept = tuple(t for t in health.request_times if now - t < WINDOW_SECONDS)
    if len(kept) == len(health.request_times):
        return health
    return replace(health, request_times=kept)


def window_cap(limits: SourceLimits, policy: GovernorPolicy) -> int:
    return max(1, int(limits.requests_per_minute * policy.window_cap_ratio))


def burst_cap(limits: SourceLimits, policy: GovernorPolicy) -> int:
    return max(1, int(limits.burst_limit * policy.burst_cap_ratio))


def min_interval(limits: SourceLimits, policy: GovernorPolicy) -> float:
    nominal = 60.0 / limits.requests_per_minute if limits.requests_per_minute else 0.0
    return max(policy.min_spacing_seconds, nominal * 2)


def admits(
    health: SourceHealth,
    limits: SourceLimits,
    policy: GovernorPolicy,
    now: float,
) -> tuple[bool, Optional[str]]:
    """
    Decide whether a request may be issued now.

    Returns:
        (allowed, reason). reason is None when allowed.
    """
    if now < health.backoff_until:
        if health.error_count >= CIRCUIT_ERROR_THRESHOLD:
            return False, "circuit_tripped"
        return False, "backoff"

    recent = [t for t in health.request_times if now - t < WINDOW_SECONDS]
    if len(recent) >= window_cap(limits, policy):
        return False, "window_cap"

    burst = sum(1 for t in recent if now - t < BURST_WINDOW_SECONDS)
    if burst >= burst_cap(limits, policy):
        return False, "burst_cap"

    if health.last_request_at and now - health.last_request_at < min_interval(limits, policy):
        return False, "spacing"

    return True, None


def record_request(health: SourceHealth, now: float) -> SourceHealth:
    """Stamp an issued request into the sliding window."""
    health = prune(health, now)
    return replace(
        health,
        request_times=health.request_times + (now,),
        last_request_at=now,
    )


def apply_outcome(health: SourceHealth, outcome: Outcome, now: float) -> SourceHealth:
    """
    Move health forward after a call finished.

    Success resets the error counter. A 429 backs off exponentially, a 5xx
    or transport failure linearly. Any other error only arms a backoff once
    the circuit trips, so a tripped source always has a cooldown to wait out.
    """
    if outcome.success:
        if health.error_count == 0:
            return health
        return replace(health, error_count=0)

    errors = health.error_count + 1
    backoff_until = health.backoff_until
    status = outcome.status_code

    if status == 429:
        backoff_until = now + min(2 ** errors, MAX_RATE_LIMIT_BACKOFF)
    elif outcome.transport_failure or (status is not None and status >= 500):
        backoff_until = now + min(10 * errors, MAX_SERVER_BACKOFF)
    elif errors >= CIRCUIT_ERROR_THRESHOLD:
        backoff_until = max(backoff_until, now + min(10 * errors, MAX_SERVER_BACKOFF))

    return replace(health, error_count=errors, backoff_until=backoff_until)


# =============================================================================
# GOVERNOR
# =============================================================================


class SourceHealthGovernor:
    """
    Process-level gate in front of every source.

    One instance is owned by the engine; tests build their own with a
    manual clock. Sources without registered limits are always allowed
    and not tracked.
    """

    def __init__(
        self,
        limits: Optional[dict[str, SourceLimits]] = None,
        policy: Optional[GovernorPolicy] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._limits = dict(DEFAULT_SOURCE_LIMITS if limits is None else limits)
        self._policy = policy or GovernorPolicy()
        self._clock = clock
        self._health: dict[str, SourceHealth] = {name: SourceHealth() for name in self._limits}
        self._lock = threading.Lock()

    @property
    def sources(self) -> list[str]:
        return list(self._limits)

    def register(self, source: str, limits: SourceLimits) -> None:
        with self._lock:
            self._limits[source] = limits
            self._health.setdefault(source, SourceHealth())

    def snapshot(self, source: str) -> Optional[SourceHealth]:
        with self._lock:
            return self._health.get(source)

    def can_request(self, source: str) -> bool:
        """Read-only check; does not consume a slot."""
        limits = self._limits.get(source)
        if limits is None:
            return True
        with self._lock:
            allowed, _ = admits(self._health[source], limits, self._policy, self._clock())
        return allowed

    def try_acquire(self, source: str) -> bool:
        """Atomically check the gate and stamp the request if allowed."""
        limits = self._limits.get(source)
        if limits is None:
            return True
        now = self._clock()
        with self._lock:
            health = self._health[source]
            allowed, reason = admits(health, limits, self._policy, now)
            if allowed:
                self._health[source] = record_request(health, now)
        if not allowed:
            logger.debug("[GOVERNOR] %s gated (%s)", source, reason)
        return allowed

    def record_success(self, source: str) -> None:
        self._apply(source, Outcome.ok())

    def record_error(
        self,
        source: str,
        status_code: Optional[int] = None,
        transport_failure: bool = False,
    ) -> None:
        self._apply(source, Outcome.error(status_code, transport_failure))

    def _apply(self, source: str, outcome: Outcome) -> None:
        if source not in self._limits:
            return
        now = self._clock()
        with self._lock:
            before = self._health[source]
            after = apply_outcome(before, outcome, now)
            self._health[source] = after

        if after.circuit != before.circuit:
            if after.circuit == "tripped":
                logger.warning(
                    "[GOVERNOR] Circuit tripped for %s (errors=%d, backoff %.0fs)",
                    source, after.error_count, max(0.0, after.backoff_until - now),
                )
            else:
                logger.info("[GOVERNOR] Circuit closed for %s", source)
            set_circuit_state(source, after.circuit == "tripped")
        elif not outcome.success:
            logger.debug(
                "[GOVERNOR] %s error status=%s errors=%d",
                source, outcome.status_code, after.error_count,
            )

    def status(self, source: str) -> dict:
        limits = self._limits.get(source)
        if limits is None:
            return {
                "available": True,
                "requests_this_window": 0,
                "backoff_until": None,
                "error_count": 0,
                "circuit": "closed",
            }
        now = self._clock()
        with self._lock:
            health = prune(self._health[source], now)
            allowed, _ = admits(health, limits, self._policy, now)
        return {
            "available": allowed,
            "requests_this_window": len(health.request_times),
            "backoff_until": health.backoff_until if health.backoff_until > now else None,
            "error_count": health.error_count,
            "circuit": health.circuit,
        }

    def status_all(self) -> dict[str, dict]:
        return {source: self.status(source) for source in self._limits}

    def reset(self, source: str) -> None:
        """Clear all state for a source (including a tripped circuit)."""
        if source not in self._limits:
            return
        with self._lock:
            self._health[source] = SourceHealth()
        set_circuit_state(source, False)
        logger.info("[GOVERNOR] Reset %s", source)

    def available_sources(self, sources: Optional[Iterable[str]] = None) -> list[str]:
        names = self._limits if sources is None else sources
        return [s for s in names if self.can_request(s)]

    def seconds_until_available(self, source: str) -> float:
        """Best estimate of how long until the gate opens for `source`."""
        limits = self._limits.get(source)
        if limits is None:
            return 0.0
        now = self._clock()
        with self._lock:
            health = prune(self._health[source], now)
        allowed, _ = admits(health, limits, self._policy, now)
        if allowed:
            return 0.0

        waits = [0.0]
        if health.backoff_until > now:
            waits.append(health.backoff_until - now)
        if health.last_request_at:
            waits.append(health.last_request_at + min_interval(limits, self._policy) - now)
        if len(health.request_times) >= window_cap(limits, self._policy):
            waits.append(health.request_times[0] + WINDOW_SECONDS - now)
        burst = [t for t in health.request_times if now - t < BURST_WINDOW_SECONDS]
        if burst and len(burst) >= burst_cap(limits, self._policy):
            waits.append(burst[0] + BURST_WINDOW_SECONDS - now)
        return max(waits)
