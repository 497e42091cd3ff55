"""
Source names, per-capability priority orders and adapter construction.

Priority is what the fan-out engine uses to choose between several
successful answers: the highest-priority source that succeeded wins, not
the fastest one.
"""

import logging
from typing import Optional

from football_intel.config import Settings
from football_intel.sources.api_football import APIFootballAdapter
from football_intel.sources.apifootball_com import APIFootballComAdapter
from football_intel.sources.base import SourceAdapter
from football_intel.sources.football_data import FootballDataAdapter
from football_intel.sources.soccersapi import SoccersAPIAdapter
from football_intel.sources.thesportsdb import TheSportsDBAdapter

logger = logging.getLogger(__name__)

FOOTBALL_DATA = "football-data"
API_FOOTBALL = "api-football"
APIFOOTBALL = "apifootball"
THESPORTSDB = "thesportsdb"
SOCCERSAPI = "soccersapi"

# Comprehensive first, then regional, then community, then the rest
SEARCH_PRIORITY = (API_FOOTBALL, FOOTBALL_DATA, THESPORTSDB, APIFOOTBALL, SOCCERSAPI)
MATCHES_PRIORITY = (API_FOOTBALL, FOOTBALL_DATA, THESPORTSDB, APIFOOTBALL, SOCCERSAPI)
UPCOMING_PRIORITY = (API_FOOTBALL, THESPORTSDB, FOOTBALL_DATA, APIFOOTBALL, SOCCERSAPI)
H2H_PRIORITY = (API_FOOTBALL, FOOTBALL_DATA, THESPORTSDB, APIFOOTBALL, SOCCERSAPI)

# Candidates from these sources add a confidence bonus during discovery
HIGH_TRUST_SOURCES = frozenset({FOOTBALL_DATA, API_FOOTBALL})


def build_adapters(settings: Settings, client_timeout: Optional[float] = None) -> dict[str, SourceAdapter]:
    """Instantiate every source whose credentials are configured."""
    timeout = client_timeout or settings.SOURCE_TIMEOUT_SECONDS
    adapters: dict[str, SourceAdapter] = {}

    if settings.API_FOOTBALL_KEY:
        adapters[API_FOOTBALL] = APIFootballAdapter(
            settings.API_FOOTBALL_KEY,
            use_rapidapi=settings.API_FOOTBALL_USE_RAPIDAPI,
            rapidapi_host=settings.RAPIDAPI_HOST,
            timeout=timeout,
        )
    if settings.FOOTBALL_DATA_API_KEY:
        adapters[FOOTBALL_DATA] = FootballDataAdapter(settings.FOOTBALL_DATA_API_KEY, timeout=timeout)
    if settings.THESPORTSDB_KEY:
        adapters[THESPORTSDB] = TheSportsDBAdapter(settings.THESPORTSDB_KEY, timeout=timeout)
    if settings.APIFOOTBALL_KEY:
        adapters[APIFOOTBALL] = APIFootballComAdapter(settings.APIFOOTBALL_KEY, timeout=timeout)
    if settings.SOCCERSAPI_USER and settings.SOCCERSAPI_TOKEN:
        adapters[SOCCERSAPI] = SoccersAPIAdapter(
            settings.SOCCERSAPI_USER, settings.SOCCERSAPI_TOKEN, timeout=timeout,
        )

    logger.info("[SOURCES] Enabled: %s", ", ".join(adapters) or "none")
    return adapters
