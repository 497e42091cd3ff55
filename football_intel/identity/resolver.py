"""
Team Identity Resolver: free-text team name -> TeamIdentity.

Resolution order:
    1. Curated table (hand-verified ids, exact/alias match)
    2. Identity store (exact normalized name, then partial match)
    3. Dynamic discovery: every source's search_team in parallel, each
       candidate scored by name similarity, overall confidence from how
       many sources agree

Discovered identities are persisted only above the persist threshold;
anything at or below it is a miss and the caller falls back to generated
data.
"""

import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from football_intel.exceptions import PersistenceError
from football_intel.fallback import tier_for
from football_intel.fanout import FanOutEngine
from football_intel.identity.curated import (
    CURATED_TEAMS,
    find_curated,
    find_curated_by_source_id,
    to_identity,
)
from football_intel.identity.normalization import (
    name_similarity,
    normalize_team_name,
    slugify_team_name,
)
from football_intel.identity.store import IdentityStore
from football_intel.models import TeamCandidate, TeamIdentity
from football_intel.sources.registry import HIGH_TRUST_SOURCES, SEARCH_PRIORITY
from football_intel.telemetry.metrics import record_resolution

logger = logging.getLogger(__name__)

SOURCES_FOR_FULL_CONFIDENCE = 4
HIGH_TRUST_BONUS = 0.1


def overall_confidence(accepted_sources: list[str]) -> float:
    """min(#accepted / 4, 1) + 0.1 per high-trust source, capped at 1."""
    confidence = min(len(accepted_sources) / SOURCES_FOR_FULL_CONFIDENCE, 1.0)
    confidence += HIGH_TRUST_BONUS * sum(1 for s in accepted_sources if s in HIGH_TRUST_SOURCES)
    return min(confidence, 1.0)


class TeamIdentityResolver:
    def __init__(
        self,
        fanout: FanOutEngine,
        store: IdentityStore,
        candidate_threshold: float = 0.6,
        persist_threshold: float = 0.7,
        search_cache_ttl: float = 3600.0,
        search_wait_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.fanout = fanout
        self.store = store
        self.candidate_threshold = candidate_threshold
        self.persist_threshold = persist_threshold
        self.search_cache_ttl = search_cache_ttl
        self.search_wait_timeout = search_wait_timeout
        self._clock = clock
        # (normalized name, source) -> (stored_at, candidate or None)
        self._search_cache: dict[tuple[str, str], tuple[float, Optional[TeamCandidate]]] = {}

    async def resolve(self, team_name: str) -> Optional[TeamIdentity]:
        """
        Resolve a team name to a cross-source identity.

        Args:
            team_name: Free-text name as the caller has it ("Real Madrid CF").

        Returns:
            The identity, or None when resolution misses.
        """
        normalized = normalize_team_name(team_name)
        if not normalized:
            record_resolution("miss")
            return None

        curated = find_curated(team_name)
        if curated is not None:
            logger.debug("[RESOLVER] Curated hit: %s -> %s", team_name, curated.universal_id)
            record_resolution("curated")
            return to_identity(curated)

        stored = await self._lookup_store(normalized)
        if stored is not None:
            record_resolution("store")
            return stored

        identity = await self.discover(team_name)
        record_resolution("discovered" if identity else "miss")
        return identity

    async def _lookup_store(self, normalized: str) -> Optional[TeamIdentity]:
        try:
            identity = await self.store.get(normalized)
            if identity is None:
                identity = await self.store.find_partial(normalized)
            if identity is None:
                return None
            await self.store.increment_usage(identity.universal_id)
        except PersistenceError as e:
            logger.warning("[RESOLVER] Store lookup failed for '%s': %s", normalized, e)
            return None

        identity.usage_count += 1
        identity.last_used_at = datetime.now(timezone.utc)
        logger.debug("[RESOLVER] Store hit: %s -> %s", normalized, identity.universal_id)
        return identity

    async def search_candidates(self, team_name: str) -> dict[str, TeamCandidate]:
        """
        Accepted candidates per source (confidence above the candidate threshold).

        Each source's answer is cached on its own, and only when the source
        actually answered: a candidate or a clean "no such team". Sources that
        were skipped or failed are asked again on the next call.
        """
        normalized = normalize_team_name(team_name)
        now = self._clock()
        answers: dict[str, Optional[TeamCandidate]] = {}
        for source in self.fanout.adapters:
            cached = self._search_cache.get((normalized, source))
            if cached is not None and now - cached[0] < self.search_cache_ttl:
                answers[source] = cached[1]

        attempts = await self.fanout.attempt_all(
            "search_team",
            lambda adapter: adapter.search_team(team_name) if adapter.name not in answers else None,
            SEARCH_PRIORITY,
            wait_timeout=self.search_wait_timeout,
        )
        for attempt in attempts:
            if attempt.outcome in ("ok", "empty"):
                candidate = attempt.result if attempt.succeeded else None
                self._search_cache[(normalized, attempt.source)] = (self._clock(), candidate)
                answers[attempt.source] = candidate

        accepted: dict[str, TeamCandidate] = {}
        for attempt in attempts:
            candidate = answers.get(attempt.source)
            if candidate is None:
                continue
            score = name_similarity(team_name, candidate.name)
            if candidate.short_name:
                score = max(score, name_similarity(team_name, candidate.short_name))
            if score > self.candidate_threshold:
                accepted[attempt.source] = replace(candidate, confidence=score)
            else:
                logger.debug(
                    "[RESOLVER] Rejected %s candidate '%s' for '%s' (%.2f)",
                    attempt.source, candidate.name, team_name, score,
                )
        return accepted

    async def discover(self, team_name: str) -> Optional[TeamIdentity]:
        """Search every source and build an identity from the candidates that agree."""
        accepted = await self.search_candidates(team_name)
        if not accepted:
            logger.info("[RESOLVER] No source recognised '%s'", team_name)
            return None

        confidence = overall_confidence(list(accepted))
        if confidence <= self.persist_threshold:
            logger.info(
                "[RESOLVER] Low confidence for '%s' (%.2f from %s), not persisting",
                team_name, confidence, sorted(accepted),
            )
            return None

        best = max(accepted.values(), key=lambda c: c.confidence)
        aliases = {team_name}
        for candidate in accepted.values():
            aliases.add(candidate.name)
            if candidate.short_name:
                aliases.add(candidate.short_name)

        now = datetime.now(timezone.utc)
        identity = TeamIdentity(
            universal_id=slugify_team_name(team_name),
            name=team_name,
            normalized_name=normalize_team_name(team_name),
            external_ids={source: c.external_id for source, c in accepted.items()},
            aliases=aliases,
            confidence=round(confidence, 3),
            country=next((c.country for c in accepted.values() if c.country), None),
            league=best.league or next((c.league for c in accepted.values() if c.league), None),
            tier=tier_for(team_name),
            usage_count=1,
            last_used_at=now,
            discovered_at=now,
        )

        try:
            await self.store.upsert(identity)
        except PersistenceError as e:
            logger.warning("[RESOLVER] Could not persist '%s': %s", identity.universal_id, e)

        logger.info(
            "[RESOLVER] Discovered %s (confidence=%.2f, sources=%s)",
            identity.universal_id, identity.confidence, sorted(identity.external_ids),
        )
        return identity

    async def find_by_source_id(self, source: str, external_id: str) -> Optional[TeamIdentity]:
        curated = find_curated_by_source_id(source, external_id)
        if curated is not None:
            return to_identity(curated)
        try:
            return await self.store.find_by_source_id(source, external_id)
        except PersistenceError as e:
            logger.warning("[RESOLVER] Store scan failed: %s", e)
            return None

    async def map_between_sources(self, external_id: str, from_source: str, to_source: str) -> Optional[str]:
        """Translate one vendor's team id into another vendor's id."""
        identity = await self.find_by_source_id(from_source, external_id)
        if identity is None:
            return None
        return identity.external_ids.get(to_source)

    async def stats(self) -> dict:
        """Coverage of stored identities per source, plus store totals."""
        try:
            store_stats = await self.store.stats()
        except PersistenceError as e:
            logger.warning("[RESOLVER] Store stats failed: %s", e)
            store_stats = {
                "total": 0,
                "recently_used": [],
                "most_popular": [],
                "source_coverage": {},
                "avg_confidence": 0.0,
            }
        return {
            **store_stats,
            "curated_teams": len(CURATED_TEAMS),
            "search_cache_entries": len(self._search_cache),
        }

    def clear_search_cache(self) -> None:
        self._search_cache.clear()
