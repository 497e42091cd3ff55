"""TTL cache for computed TeamResearch aggregates.

Usage:
    cache = ResultCache(ttl=3600)

    research = cache.get("Arsenal")
    if research is None:
        research = await build_research("Arsenal")
        cache.set("Arsenal", research)

    # Housekeeping (reads never evict)
    removed = cache.sweep_expired()
"""

import copy
import logging
import threading
import time
from typing import Callable, Optional

from football_intel.identity.normalization import normalize_team_name
from football_intel.models import TeamResearch

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0


def cache_key(team_name: str, team_id: Optional[str] = None) -> str:
    """Key on the normalized name so "Arsenal FC" and "Arsenal" share an entry."""
    name = normalize_team_name(team_name) or team_name.strip().lower()
    if team_id:
        return f"team_{name}_{team_id}"
    return f"team_{name}"


class ResultCache:
    """
    Thread-safe TTL store keyed by (normalized team name, optional team id).

    Entries are copied in and out, so callers may mutate what they get back.
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        # key -> (stored_at, research)
        self._entries: dict[str, tuple[float, TeamResearch]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _expired(self, stored_at: float, now: float) -> bool:
        return now - stored_at >= self.ttl

    def get(self, team_name: str, team_id: Optional[str] = None) -> Optional[TeamResearch]:
        """Return a copy of the cached research, or None on miss/expiry."""
        key = cache_key(team_name, team_id)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._expired(entry[0], now):
                self._misses += 1
                return None
            self._hits += 1
            return copy.deepcopy(entry[1])

    def set(self, team_name: str, research: TeamResearch, team_id: Optional[str] = None) -> None:
        key = cache_key(team_name, team_id)
        with self._lock:
            self._entries[key] = (self._clock(), copy.deepcopy(research))
        logger.debug("[CACHE] Stored %s", key)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("[CACHE] Cleared")

    def sweep_expired(self) -> int:
        """Remove expired entries. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (stored_at, _) in self._entries.items() if self._expired(stored_at, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("[CACHE] Swept %d expired entries", len(expired))
        return len(expired)

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._entries),
                "keys": list(self._entries),
                "hits": self._hits,
                "misses": self._misses,
            }
