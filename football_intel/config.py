"""Engine configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # ═══════════════════════════════════════════════════════════════
    # Source credentials (a source is enabled only when configured)
    # ═══════════════════════════════════════════════════════════════

    # football-data.org v4
    FOOTBALL_DATA_API_KEY: str = ""

    # API-Football v3 (direct api-sports.io key, or RapidAPI)
    API_FOOTBALL_KEY: str = ""
    API_FOOTBALL_USE_RAPIDAPI: bool = False
    RAPIDAPI_HOST: str = "api-football-v1.p.rapidapi.com"

    # apifootball.com v3
    APIFOOTBALL_KEY: str = ""

    # TheSportsDB ("3" is the public test key)
    THESPORTSDB_KEY: str = "3"

    # SoccersAPI v2.2
    SOCCERSAPI_USER: str = ""
    SOCCERSAPI_TOKEN: str = ""

    # HTTP
    SOURCE_TIMEOUT_SECONDS: float = 10.0

    # ═══════════════════════════════════════════════════════════════
    # Source Health Governor
    # ═══════════════════════════════════════════════════════════════

    # Floor for spacing between two requests to the same source
    SOURCE_MIN_SPACING_SECONDS: float = 10.0
    # Share of the vendor's per-minute limit we allow ourselves
    SOURCE_WINDOW_CAP_RATIO: float = 0.5
    # Share of the vendor's burst limit allowed within 30s
    SOURCE_BURST_CAP_RATIO: float = 0.3

    # Intelligent Waiter
    WAITER_POLL_SECONDS: float = 1.0
    WAITER_TIMEOUT_SECONDS: float = 30.0
    # Bounded wait applied to gated sources when fetching match lists (0 = skip)
    MATCHES_WAIT_SECONDS: float = 10.0
    # Team searches and head-to-head wait long enough to clear a 30s burst window
    SEARCH_WAIT_SECONDS: float = 35.0
    H2H_WAIT_SECONDS: float = 35.0

    # ═══════════════════════════════════════════════════════════════
    # Caching
    # ═══════════════════════════════════════════════════════════════

    RESEARCH_CACHE_TTL_SECONDS: float = 3600.0
    SEARCH_CACHE_TTL_SECONDS: float = 3600.0

    # ═══════════════════════════════════════════════════════════════
    # Team identity
    # ═══════════════════════════════════════════════════════════════

    # When unset, identities live in process memory only
    IDENTITY_DATABASE_URL: Optional[str] = None
    IDENTITY_PERSIST_THRESHOLD: float = 0.7
    IDENTITY_CANDIDATE_THRESHOLD: float = 0.6

    # Research
    RECENT_MATCHES_LIMIT: int = 5
    # Coalesce concurrent research_team() calls for the same team
    RESEARCH_SINGLE_FLIGHT: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
