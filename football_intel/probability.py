"""
Probability Calculator.

Pure functions: two TeamResearch aggregates (+ optional head-to-head) in,
a ProbabilityResult out. No I/O, no clock, no randomness.

Outcome model:
    win(side)  = 0.4 * h2h_rate + 0.4 * last5_rate + 0.2 * additional_factors
    draw_raw   = clamp(0.25 + (0.5 - (home + away) / 2), 0.15, 0.35)
    normalized to integer percentages summing to exactly 100, then clamped
    to home/away in [10, 80] and draw in [10, 50].

Worked example (h2h 0.5/0.25, last5 0.8/0.4, form 80/60):
    home_raw 0.55, away_raw 0.252, draw_raw 0.349 -> 48 / 30 / 22
"""

import math
from typing import Optional

from football_intel.models import HeadToHeadData, ProbabilityResult, RiskLevel, TeamResearch

# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_RATE = 1 / 3

H2H_WEIGHT = 0.4
LAST5_WEIGHT = 0.4
ADDITIONAL_WEIGHT = 0.2

HOME_ADVANTAGE = 0.08
MATCH_IMPORTANCE = 0.05
FATIGUE = -0.03
AWAY_DISADVANTAGE = -0.03

DRAW_BASE = 0.25
DRAW_MIN = 0.15
DRAW_MAX = 0.35

WIN_BOUNDS = (10, 80)
DRAW_BOUNDS = (10, 50)
NAN_REPLACEMENT = 33

GOALS_THRESHOLD = 2.3
BTTS_ATTACK_THRESHOLD = 1.6

CONFIDENCE_BASE = 50
CONFIDENCE_CAP = 95


def round_half_up(value: float) -> int:
    """Round .5 away from zero on the positive side (1.5 -> 2, 2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# =============================================================================
# 1X2
# =============================================================================


def h2h_win_rate(h2h: Optional[HeadToHeadData], side: str) -> float:
    """Share of past meetings won by `side` ("home" or "away")."""
    if h2h is None or h2h.total_meetings <= 0:
        return DEFAULT_RATE
    wins = h2h.home_wins if side == "home" else h2h.away_wins
    return wins / h2h.total_meetings


def last5_win_rate(research: TeamResearch) -> float:
    played = research.season_stats.played
    wins = research.season_stats.wins
    if played >= 5:
        return wins / min(played, 5)
    if played > 0:
        return wins / played
    return DEFAULT_RATE


def form_bonus(performance: float) -> float:
    if performance >= 80:
        return 0.05
    if performance >= 60:
        return 0.02
    if performance >= 40:
        return 0.0
    return -0.03


def additional_factors(performance: float, is_home: bool) -> float:
    if is_home:
        return HOME_ADVANTAGE + MATCH_IMPORTANCE + FATIGUE + form_bonus(performance)
    return AWAY_DISADVANTAGE + FATIGUE + form_bonus(performance)


def win_chance(h2h_rate: float, last5_rate: float, additional: float) -> float:
    return H2H_WEIGHT * h2h_rate + LAST5_WEIGHT * last5_rate + ADDITIONAL_WEIGHT * additional


def draw_chance(home_raw: float, away_raw: float) -> float:
    return _clamp(DRAW_BASE + (0.5 - (home_raw + away_raw) / 2), DRAW_MIN, DRAW_MAX)


def normalize_outcomes(home_raw: float, draw_raw: float, away_raw: float) -> tuple[int, int, int]:
    """Scale to percentages; draw takes the rounding remainder so the sum is 100."""
    total = home_raw + draw_raw + away_raw
    if not total or math.isnan(total):
        return NAN_REPLACEMENT, 100 - 2 * NAN_REPLACEMENT, NAN_REPLACEMENT
    home = round_half_up(home_raw / total * 100)
    away = round_half_up(away_raw / total * 100)
    return home, 100 - home - away, away


def validate_probabilities(home_win: float, draw: float, away_win: float) -> tuple[int, int, int]:
    """
    Bring a 1X2 triple inside its bounds with an exact total of 100.

    NaN becomes 33; home/away are clamped to [10, 80], draw to [10, 50];
    the result is rescaled to 100 (re-clamping until stable) and rounded by
    largest remainder without leaving the bounds. Idempotent.

    Returns:
        (home_win, draw, away_win) as ints.
    """
    bounds = (WIN_BOUNDS, DRAW_BOUNDS, WIN_BOUNDS)
    values = [
        NAN_REPLACEMENT if (v is None or math.isnan(v)) else float(v)
        for v in (home_win, draw, away_win)
    ]
    values = [_clamp(v, lo, hi) for v, (lo, hi) in zip(values, bounds)]

    for _ in range(100):
        total = sum(values)
        scaled = [v * 100 / total for v in values]
        clamped = [_clamp(v, lo, hi) for v, (lo, hi) in zip(scaled, bounds)]
        values = clamped
        if all(abs(a - b) < 1e-9 for a, b in zip(scaled, clamped)):
            break

    floors = [int(math.floor(v + 1e-9)) for v in values]
    remainder = 100 - sum(floors)
    order = sorted(range(3), key=lambda i: values[i] - floors[i], reverse=True)
    while remainder != 0:
        step = 1 if remainder > 0 else -1
        for i in order:
            lo, hi = bounds[i]
            if lo <= floors[i] + step <= hi:
                floors[i] += step
                remainder -= step
                break
        else:
            break
    return floors[0], floors[1], floors[2]


# =============================================================================
# GOAL MARKETS
# =============================================================================


def _attack_defense(research: TeamResearch) -> tuple[float, float]:
    played = max(research.season_stats.played, 1)
    return research.season_stats.goals_for / played, research.season_stats.goals_against / played


def goal_markets(home: TeamResearch, away: TeamResearch) -> tuple[int, int, int]:
    """
    Both-teams-score and over/under 2.5 from per-game attack/defense ratios.

    Returns:
        (both_teams_score, over25_goals, under25_goals) as percentages.
    """
    home_attack, home_defense = _attack_defense(home)
    away_attack, away_defense = _attack_defense(away)

    expected_home = home_attack * (2 - min(away_defense / 1.5, 1))
    expected_away = away_attack * (2 - min(home_defense / 1.5, 1))
    total = expected_home + expected_away

    if total > GOALS_THRESHOLD:
        over = min(0.8, 0.4 + (total - GOALS_THRESHOLD) * 0.15)
    else:
        over = max(0.25, 0.4 - (GOALS_THRESHOLD - total) * 0.1)

    combined = home_attack + away_attack
    if home_attack > 0.8 and away_attack > 0.8:
        btts = min(0.85, 0.5 + (combined - BTTS_ATTACK_THRESHOLD) * 0.2)
    else:
        btts = max(0.35, 0.5 - abs(BTTS_ATTACK_THRESHOLD - combined) * 0.1)

    over_pct = round_half_up(over * 100)
    return round_half_up(btts * 100), over_pct, 100 - over_pct


# =============================================================================
# CONFIDENCE / RISK
# =============================================================================


def _form_known(research: TeamResearch) -> bool:
    form = research.recent_form.last5_games or ""
    return len(form) == 5 and set(form) <= {"W", "D", "L"}


def confidence_score(home: TeamResearch, away: TeamResearch, h2h: Optional[HeadToHeadData]) -> int:
    confidence = CONFIDENCE_BASE
    if home.real_matches > 10:
        confidence += 10
    if away.real_matches > 10:
        confidence += 10
    if home.team_id and away.team_id:
        confidence += 20
    if _form_known(home):
        confidence += 10
    if h2h is not None and h2h.total_meetings > 3:
        confidence += 15
    return min(confidence, CONFIDENCE_CAP)


def risk_level(home_win: int, draw: int, away_win: int) -> RiskLevel:
    top = max(home_win, draw, away_win)
    if top > 60:
        return RiskLevel.LOW
    if top > 45:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


# =============================================================================
# ENTRY POINT
# =============================================================================


def calculate(
    home: TeamResearch,
    away: TeamResearch,
    h2h: Optional[HeadToHeadData] = None,
) -> ProbabilityResult:
    """Full probability set for home vs away."""
    home_raw = win_chance(
        h2h_win_rate(h2h, "home"),
        last5_win_rate(home),
        additional_factors(home.recent_form.last5_performance, is_home=True),
    )
    away_raw = win_chance(
        h2h_win_rate(h2h, "away"),
        last5_win_rate(away),
        additional_factors(away.recent_form.last5_performance, is_home=False),
    )
    draw_raw = draw_chance(home_raw, away_raw)

    home_win, draw, away_win = validate_probabilities(*normalize_outcomes(home_raw, draw_raw, away_raw))
    btts, over25, under25 = goal_markets(home, away)

    return ProbabilityResult(
        home_win=home_win,
        draw=draw,
        away_win=away_win,
        both_teams_score=btts,
        over25_goals=over25,
        under25_goals=under25,
        confidence=confidence_score(home, away, h2h),
        risk_level=risk_level(home_win, draw, away_win),
    )
