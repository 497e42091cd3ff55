"""Domain types shared by every component of the engine."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class MatchStatus(str, Enum):
    """Canonical match status. Every vendor vocabulary maps into this."""

    SCHEDULED = "Scheduled"
    LIVE = "Live"
    FINISHED = "Finished"
    POSTPONED = "Postponed"
    CANCELLED = "Cancelled"
    AWARDED = "Awarded"
    WALKOVER = "Walkover"


class Tier(str, Enum):
    TOP = "top"
    MID = "mid"
    LOWER = "lower"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# =============================================================================
# SOURCE-NORMALIZED RECORDS
# =============================================================================


@dataclass
class MatchRecord:
    """A single match, normalized from a vendor payload or generated."""

    id: str
    date: datetime
    home_team_name: str
    away_team_name: str
    home_score: Optional[int]
    away_score: Optional[int]
    status: MatchStatus
    league_name: str = ""
    kickoff_time: Optional[str] = None
    home_team_id: Optional[str] = None
    away_team_id: Optional[str] = None
    source: str = ""
    is_fallback: bool = False


@dataclass
class TeamCandidate:
    """A vendor's best answer to a team search."""

    source: str
    external_id: str
    name: str
    short_name: Optional[str] = None
    country: Optional[str] = None
    league: Optional[str] = None
    confidence: float = 0.0


@dataclass
class TeamIdentity:
    """A team resolved across sources, keyed by our own universal id."""

    universal_id: str
    name: str
    normalized_name: str
    external_ids: dict[str, str] = field(default_factory=dict)
    aliases: set[str] = field(default_factory=set)
    confidence: float = 0.0
    country: Optional[str] = None
    league: Optional[str] = None
    tier: Tier = Tier.MID
    usage_count: int = 0
    last_used_at: Optional[datetime] = None
    verified: bool = False
    discovered_at: Optional[datetime] = None


# =============================================================================
# TEAM RESEARCH (the cached aggregate)
# =============================================================================


@dataclass
class SeasonStats:
    played: int
    wins: int
    draws: int
    losses: int
    goals_for: int
    goals_against: int
    goal_difference: int
    points: int


@dataclass
class RecentForm:
    last5_games: str  # e.g. "WDWLW", most recent first
    last5_performance: int  # 0-100, points taken out of 15
    recent_goals_scored: int
    recent_goals_conceded: int


@dataclass
class VenueRecord:
    played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0


@dataclass
class HomeAwayRecord:
    home: VenueRecord = field(default_factory=VenueRecord)
    away: VenueRecord = field(default_factory=VenueRecord)


@dataclass
class HeadToHeadSummary:
    """Head-to-head record seen from one team's side."""

    wins: int = 0
    draws: int = 0
    losses: int = 0
    last_meeting: Optional[MatchRecord] = None


@dataclass
class TeamResearch:
    team_name: str
    season_stats: SeasonStats
    recent_form: RecentForm
    home_away_record: HomeAwayRecord
    last_updated: datetime
    team_id: Optional[str] = None
    head_to_head: Optional[HeadToHeadSummary] = None
    player_availability: list = field(default_factory=list)
    external_ids: dict[str, str] = field(default_factory=dict)
    # Real finished matches returned upstream, before trimming/padding to 5
    real_matches: int = 0
    data_source: str = "fallback"
    is_fallback: bool = True


@dataclass
class HeadToHeadData:
    total_meetings: int = 0
    home_wins: int = 0
    away_wins: int = 0
    draws: int = 0
    last_meetings: list[MatchRecord] = field(default_factory=list)


# =============================================================================
# OUTPUT
# =============================================================================


@dataclass
class ProbabilityResult:
    home_win: int
    draw: int
    away_win: int
    both_teams_score: int
    over25_goals: int
    under25_goals: int
    confidence: int
    risk_level: RiskLevel


@dataclass
class ValueBet:
    tip: str
    confidence: int  # 1-5
    risk_level: RiskLevel
    expected_value: float


@dataclass
class MatchAnalysis:
    match_id: str
    home_team: str
    away_team: str
    date: datetime
    league: str
    home_research: TeamResearch
    away_research: TeamResearch
    head_to_head: HeadToHeadData
    probabilities: ProbabilityResult
    insights: list[str] = field(default_factory=list)
    value_bets: list[ValueBet] = field(default_factory=list)
    research_summary: str = ""
    is_fallback: bool = False

    def to_dict(self) -> dict:
        """Plain-dict view for the content layer (enums as values, dates as ISO)."""
        return _jsonable(asdict(self))


def _jsonable(value):
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value
