"""Async database connection for the identity store (supports SQLite and PostgreSQL)."""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

logger = logging.getLogger(__name__)


def get_database_url(url: str) -> str:
    """Convert database URL to async format."""
    # SQLite
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    # PostgreSQL
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return url


def create_engine_for(url: str) -> AsyncEngine:
    """Build an async engine with per-backend pool settings."""
    database_url = get_database_url(url)
    engine_kwargs = {
        "echo": False,
    }

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_pre_ping"] = True  # Verify connection before checkout
        engine_kwargs["pool_size"] = 5
        engine_kwargs["max_overflow"] = 10
        engine_kwargs["pool_recycle"] = 300
        engine_kwargs["pool_reset_on_return"] = "rollback"

    return create_async_engine(database_url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables."""
    # Register table metadata before create_all
    from football_intel.identity import store  # noqa: F401

    logger.info("Initializing identity tables...")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Identity tables ready.")
