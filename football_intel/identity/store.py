"""
Identity store: durable home of resolved TeamIdentity records.

Two implementations of the same contract:
    - InMemoryIdentityStore: process-local, used when no database is configured
    - SqlIdentityStore: `team_mappings` table via SQLModel + async SQLAlchemy

Every failure of the backing storage surfaces as PersistenceError; callers
decide whether that is fatal (the resolver treats it as a cache miss).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import JSON, Column, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, SQLModel

from football_intel.exceptions import PersistenceError
from football_intel.models import TeamIdentity, Tier

logger = logging.getLogger(__name__)

RECENT_LIMIT = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands datetimes back naive
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _coverage(identities: list[TeamIdentity]) -> dict:
    """Per-source id coverage and mean confidence."""
    coverage: dict[str, int] = {}
    for identity in identities:
        for source in identity.external_ids:
            coverage[source] = coverage.get(source, 0) + 1
    avg = sum(i.confidence for i in identities) / len(identities) if identities else 0.0
    return {"source_coverage": coverage, "avg_confidence": round(avg, 3)}


# =============================================================================
# CONTRACT
# =============================================================================


class IdentityStore(ABC):
    """Read/write contract the resolver depends on."""

    @abstractmethod
    async def get(self, normalized_name: str) -> Optional[TeamIdentity]:
        """
        Exact lookup on the normalized name.

        Args:
            normalized_name: Output of normalize_team_name().

        Returns:
            The stored identity, or None.
        """
        pass

    @abstractmethod
    async def find_partial(self, fragment: str) -> Optional[TeamIdentity]:
        """Best (highest confidence) identity whose name contains `fragment`."""
        pass

    @abstractmethod
    async def upsert(self, identity: TeamIdentity) -> TeamIdentity:
        """Insert or replace by universal id."""
        pass

    @abstractmethod
    async def increment_usage(self, universal_id: str) -> None:
        """Atomically bump usage_count and stamp last_used_at."""
        pass

    @abstractmethod
    async def find_by_source_id(self, source: str, external_id: str) -> Optional[TeamIdentity]:
        pass

    @abstractmethod
    async def stats(self) -> dict:
        """Totals, most recently used and most popular identities."""
        pass

    @abstractmethod
    async def verify(self, universal_id: str) -> bool:
        pass

    @abstractmethod
    async def cleanup_stale(self, days: int = 90) -> int:
        """Delete unverified identities unused for `days`. Returns count removed."""
        pass

    async def close(self) -> None:
        return None


# =============================================================================
# IN-MEMORY
# =============================================================================


def _copy(identity: TeamIdentity) -> TeamIdentity:
    return replace(identity, external_ids=dict(identity.external_ids), aliases=set(identity.aliases))


class InMemoryIdentityStore(IdentityStore):
    """Hands out copies, like a real database would."""

    def __init__(self):
        self._by_id: dict[str, TeamIdentity] = {}
        self._lock = asyncio.Lock()

    async def get(self, normalized_name: str) -> Optional[TeamIdentity]:
        for identity in self._by_id.values():
            if identity.normalized_name == normalized_name:
                return _copy(identity)
        return None

    async def find_partial(self, fragment: str) -> Optional[TeamIdentity]:
        if not fragment:
            return None
        fragment = fragment.lower()
        matches = [
            i for i in self._by_id.values()
            if fragment in i.normalized_name or fragment in i.name.lower()
        ]
        if not matches:
            return None
        return _copy(max(matches, key=lambda i: i.confidence))

    async def upsert(self, identity: TeamIdentity) -> TeamIdentity:
        async with self._lock:
            self._by_id[identity.universal_id] = _copy(identity)
        return identity

    async def increment_usage(self, universal_id: str) -> None:
        async with self._lock:
            identity = self._by_id.get(universal_id)
            if identity is not None:
                identity.usage_count += 1
                identity.last_used_at = _utcnow()

    async def find_by_source_id(self, source: str, external_id: str) -> Optional[TeamIdentity]:
        for identity in self._by_id.values():
            if identity.external_ids.get(source) == str(external_id):
                return _copy(identity)
        return None

    async def stats(self) -> dict:
        identities = list(self._by_id.values())
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        recent = sorted(identities, key=lambda i: i.last_used_at or epoch, reverse=True)
        popular = sorted(identities, key=lambda i: i.usage_count, reverse=True)
        return {
            "total": len(identities),
            "recently_used": [i.name for i in recent[:RECENT_LIMIT]],
            "most_popular": [i.name for i in popular[:RECENT_LIMIT]],
            **_coverage(identities),
        }

    async def verify(self, universal_id: str) -> bool:
        identity = self._by_id.get(universal_id)
        if identity is None:
            return False
        identity.verified = True
        return True

    async def cleanup_stale(self, days: int = 90) -> int:
        cutoff = _utcnow() - timedelta(days=days)
        async with self._lock:
            stale = [
                uid for uid, i in self._by_id.items()
                if not i.verified and (i.last_used_at or i.discovered_at or cutoff) < cutoff
            ]
            for uid in stale:
                del self._by_id[uid]
        return len(stale)


# =============================================================================
# SQL (SQLModel)
# =============================================================================


class TeamMapping(SQLModel, table=True):
    """Persisted cross-source team identity."""

    __tablename__ = "team_mappings"

    universal_id: str = Field(primary_key=True, max_length=120)
    universal_name: str = Field(max_length=255, description="Canonical team name")
    normalized_name: str = Field(index=True, max_length=255)
    confidence: float = Field(default=0.0)
    api_mappings: Optional[dict] = Field(
        default=None, sa_column=Column(JSON), description="source -> external id"
    )
    aliases: Optional[list] = Field(default=None, sa_column=Column(JSON))
    country: Optional[str] = Field(default=None, max_length=100)
    league: Optional[str] = Field(default=None, max_length=150)
    sport: str = Field(default="football", max_length=30)
    tier: str = Field(default=Tier.MID.value, max_length=10)
    discovered_at: datetime = Field(default_factory=_utcnow)
    last_used: Optional[datetime] = Field(default=None, index=True)
    usage_count: int = Field(default=0)
    is_verified: bool = Field(default=False)
    notes: Optional[str] = Field(default=None)


def _to_identity(row: TeamMapping) -> TeamIdentity:
    return TeamIdentity(
        universal_id=row.universal_id,
        name=row.universal_name,
        normalized_name=row.normalized_name,
        external_ids={k: str(v) for k, v in (row.api_mappings or {}).items()},
        aliases=set(row.aliases or []),
        confidence=row.confidence,
        country=row.country,
        league=row.league,
        tier=Tier(row.tier),
        usage_count=row.usage_count,
        last_used_at=_as_utc(row.last_used),
        verified=row.is_verified,
        discovered_at=_as_utc(row.discovered_at),
    )


def _apply_identity(row: TeamMapping, identity: TeamIdentity) -> TeamMapping:
    row.universal_name = identity.name
    row.normalized_name = identity.normalized_name
    row.confidence = identity.confidence
    row.api_mappings = dict(identity.external_ids)
    row.aliases = sorted(identity.aliases)
    row.country = identity.country
    row.league = identity.league
    row.tier = Tier(identity.tier).value
    row.discovered_at = identity.discovered_at or _utcnow()
    row.last_used = identity.last_used_at
    row.usage_count = identity.usage_count
    row.is_verified = identity.verified
    return row


class SqlIdentityStore(IdentityStore):
    """
    IdentityStore backed by the `team_mappings` table.

    Usage:
        engine = create_engine_for(settings.IDENTITY_DATABASE_URL)
        await init_db(engine)
        store = SqlIdentityStore(create_session_factory(engine), engine=engine)
    """

    def __init__(self, session_factory, engine=None):
        self._session_factory = session_factory
        self._engine = engine

    async def _scalar(self, statement) -> Optional[TeamMapping]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return result.scalars().first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"team_mappings read failed: {e}") from e

    async def get(self, normalized_name: str) -> Optional[TeamIdentity]:
        row = await self._scalar(
            select(TeamMapping).where(TeamMapping.normalized_name == normalized_name)
        )
        return _to_identity(row) if row else None

    async def find_partial(self, fragment: str) -> Optional[TeamIdentity]:
        if not fragment:
            return None
        pattern = f"%{fragment}%"
        row = await self._scalar(
            select(TeamMapping)
            .where(or_(
                TeamMapping.universal_name.ilike(pattern),
                TeamMapping.normalized_name.like(pattern),
            ))
            .order_by(TeamMapping.confidence.desc())
            .limit(1)
        )
        return _to_identity(row) if row else None

    async def upsert(self, identity: TeamIdentity) -> TeamIdentity:
        try:
            async with self._session_factory() as session:
                row = await session.get(TeamMapping, identity.universal_id)
                if row is None:
                    row = TeamMapping(
                        universal_id=identity.universal_id,
                        universal_name=identity.name,
                        normalized_name=identity.normalized_name,
                    )
                session.add(_apply_identity(row, identity))
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"team_mappings upsert failed for {identity.universal_id}: {e}") from e
        return identity

    async def increment_usage(self, universal_id: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    update(TeamMapping)
                    .where(TeamMapping.universal_id == universal_id)
                    .values(usage_count=TeamMapping.usage_count + 1, last_used=_utcnow())
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"usage update failed for {universal_id}: {e}") from e

    async def find_by_source_id(self, source: str, external_id: str) -> Optional[TeamIdentity]:
        # JSON operators differ per backend; the table stays small enough to scan
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(TeamMapping))
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"team_mappings scan failed: {e}") from e
        for row in rows:
            if str((row.api_mappings or {}).get(source)) == str(external_id):
                return _to_identity(row)
        return None

    async def stats(self) -> dict:
        try:
            async with self._session_factory() as session:
                total = (await session.execute(select(func.count()).select_from(TeamMapping))).scalar_one()
                recent = (await session.execute(
                    select(TeamMapping.universal_name)
                    .where(TeamMapping.last_used.is_not(None))
                    .order_by(TeamMapping.last_used.desc())
                    .limit(RECENT_LIMIT)
                )).scalars().all()
                popular = (await session.execute(
                    select(TeamMapping.universal_name)
                    .order_by(TeamMapping.usage_count.desc())
                    .limit(RECENT_LIMIT)
                )).scalars().all()
                rows = (await session.execute(select(TeamMapping))).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"team_mappings stats failed: {e}") from e
        return {
            "total": total,
            "recently_used": list(recent),
            "most_popular": list(popular),
            **_coverage([_to_identity(r) for r in rows]),
        }

    async def verify(self, universal_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(TeamMapping)
                    .where(TeamMapping.universal_id == universal_id)
                    .values(is_verified=True)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"verify failed for {universal_id}: {e}") from e
        return result.rowcount > 0

    async def cleanup_stale(self, days: int = 90) -> int:
        cutoff = _utcnow() - timedelta(days=days)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(TeamMapping)
                    .where(TeamMapping.is_verified.is_(False))
                    .where(or_(
                        TeamMapping.last_used < cutoff,
                        (TeamMapping.last_used.is_(None)) & (TeamMapping.discovered_at < cutoff),
                    ))
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"cleanup failed: {e}") from e
        removed = result.rowcount or 0
        if removed:
            logger.info("[IDENTITY_STORE] Removed %d stale unverified mappings", removed)
        return removed

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
