"""Turn match lists into TeamResearch and head-to-head aggregates."""

import logging
from datetime import datetime, timezone
from typing import Optional

from football_intel.fallback import MATCHES_PER_TEAM, FallbackDataGenerator
from football_intel.identity.normalization import normalize_team_name
from football_intel.models import (
    HeadToHeadData,
    HeadToHeadSummary,
    HomeAwayRecord,
    MatchRecord,
    MatchStatus,
    RecentForm,
    SeasonStats,
    TeamResearch,
    VenueRecord,
)
from football_intel.probability import round_half_up

logger = logging.getLogger(__name__)

MAX_LAST_MEETINGS = 10
POINTS_PER_WIN = 3
MAX_POINTS = MATCHES_PER_TEAM * POINTS_PER_WIN


def _is_counted(match: MatchRecord) -> bool:
    return match.is_fallback or match.status == MatchStatus.FINISHED


def _names_match(team_name: str, other: str) -> bool:
    a = normalize_team_name(team_name)
    b = normalize_team_name(other)
    return bool(a and b) and (a in b or b in a)


def _is_team(
    team_name: str,
    external_ids: dict[str, str],
    match: MatchRecord,
    side_name: str,
    side_id: Optional[str],
) -> bool:
    # Ids are only comparable within the source that reported the match
    own_id = external_ids.get(match.source)
    if own_id and side_id is not None:
        return side_id == own_id
    return _names_match(team_name, side_name)


def is_home_side(match: MatchRecord, team_name: str, external_ids: Optional[dict[str, str]] = None) -> bool:
    """Whether the team played at home, by source id when we have one, else by name."""
    own_id = (external_ids or {}).get(match.source)
    if own_id and match.home_team_id == own_id:
        return True
    if own_id and match.away_team_id == own_id:
        return False
    return _names_match(team_name, match.home_team_name)


def match_result(match: MatchRecord, as_home: bool) -> Optional[str]:
    """'W', 'D' or 'L' from the team's perspective, None without a score."""
    if match.home_score is None or match.away_score is None:
        return None
    scored, conceded = (
        (match.home_score, match.away_score) if as_home else (match.away_score, match.home_score)
    )
    if scored > conceded:
        return "W"
    if scored == conceded:
        return "D"
    return "L"


def select_matches(
    matches: list[MatchRecord],
    team_name: str,
    fallback: FallbackDataGenerator,
    team_id: Optional[str] = None,
) -> tuple[list[MatchRecord], int]:
    """
    Exactly five matches to aggregate: newest real finished ones, padded.

    Returns:
        (matches, real_count) where real_count is how many finished real
        matches upstream provided before trimming.
    """
    real = [
        m for m in matches
        if not m.is_fallback and _is_counted(m)
        and m.home_score is not None and m.away_score is not None
    ]
    real.sort(key=lambda m: m.date, reverse=True)
    chosen = real[:MATCHES_PER_TEAM]
    if len(chosen) < MATCHES_PER_TEAM:
        chosen = chosen + fallback.pad_matches(len(chosen), team_name, team_id)
    return chosen, len(real)


def build_research(
    team_name: str,
    matches: list[MatchRecord],
    team_id: Optional[str] = None,
    real_matches: int = 0,
    data_source: str = "fallback",
    external_ids: Optional[dict[str, str]] = None,
    now: Optional[datetime] = None,
) -> TeamResearch:
    """Aggregate exactly-five matches into a TeamResearch."""
    ids = external_ids or {}
    wins = draws = losses = goals_for = goals_against = 0
    form = []
    home = VenueRecord()
    away = VenueRecord()

    for match in matches:
        if not _is_counted(match):
            continue
        as_home = match.is_fallback or is_home_side(match, team_name, ids)
        result = match_result(match, as_home)
        if result is None:
            continue

        scored = match.home_score if as_home else match.away_score
        conceded = match.away_score if as_home else match.home_score
        goals_for += scored
        goals_against += conceded

        venue = home if as_home else away
        venue.played += 1
        if result == "W":
            wins += 1
            venue.wins += 1
        elif result == "D":
            draws += 1
            venue.draws += 1
        else:
            losses += 1
            venue.losses += 1
        form.append(result)

    points = wins * POINTS_PER_WIN + draws
    last5 = "".join(form[:MATCHES_PER_TEAM]).ljust(MATCHES_PER_TEAM, "D")

    return TeamResearch(
        team_name=team_name,
        team_id=team_id,
        last_updated=now or datetime.now(timezone.utc),
        season_stats=SeasonStats(
            played=MATCHES_PER_TEAM,
            wins=wins,
            draws=draws,
            losses=losses,
            goals_for=goals_for,
            goals_against=goals_against,
            goal_difference=goals_for - goals_against,
            points=points,
        ),
        recent_form=RecentForm(
            last5_games=last5,
            last5_performance=round_half_up(points / MAX_POINTS * 100),
            recent_goals_scored=goals_for,
            recent_goals_conceded=goals_against,
        ),
        home_away_record=HomeAwayRecord(home=home, away=away),
        external_ids=dict(external_ids or {}),
        real_matches=real_matches,
        data_source=data_source,
        is_fallback=real_matches == 0,
    )


def head_to_head_stats(
    meetings: list[MatchRecord],
    home_name: str,
    away_name: str,
    home_ids: Optional[dict[str, str]] = None,
    away_ids: Optional[dict[str, str]] = None,
) -> HeadToHeadData:
    """Count meetings from the perspective of the analysed home team."""
    home_ids = home_ids or {}
    away_ids = away_ids or {}
    data = HeadToHeadData()

    ordered = sorted(meetings, key=lambda m: m.date, reverse=True)
    for match in ordered:
        if match.status != MatchStatus.FINISHED:
            continue
        if _is_team(home_name, home_ids, match, match.home_team_name, match.home_team_id):
            home_played_home = True
            opponent = (match.away_team_name, match.away_team_id)
        elif _is_team(home_name, home_ids, match, match.away_team_name, match.away_team_id):
            home_played_home = False
            opponent = (match.home_team_name, match.home_team_id)
        else:
            continue
        if not _is_team(away_name, away_ids, match, *opponent):
            continue
        result = match_result(match, home_played_home)
        if result is None:
            continue
        data.total_meetings += 1
        if result == "W":
            data.home_wins += 1
        elif result == "L":
            data.away_wins += 1
        else:
            data.draws += 1
        data.last_meetings.append(match)

    data.last_meetings = data.last_meetings[:MAX_LAST_MEETINGS]
    return data


def summary_for(h2h: HeadToHeadData, side: str) -> HeadToHeadSummary:
    """Per-team view of a head-to-head record."""
    if side == "home":
        wins, losses = h2h.home_wins, h2h.away_wins
    else:
        wins, losses = h2h.away_wins, h2h.home_wins
    return HeadToHeadSummary(
        wins=wins,
        draws=h2h.draws,
        losses=losses,
        last_meeting=h2h.last_meetings[0] if h2h.last_meetings else None,
    )
