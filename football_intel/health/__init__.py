"""Source health: rate limiting, circuit breaking and bounded waiting."""

from football_intel.health.governor import (
    DEFAULT_SOURCE_LIMITS,
    GovernorPolicy,
    Outcome,
    SourceHealth,
    SourceHealthGovernor,
    SourceLimits,
    apply_outcome,
)
from football_intel.health.waiter import IntelligentWaiter

__all__ = [
    "DEFAULT_SOURCE_LIMITS",
    "GovernorPolicy",
    "IntelligentWaiter",
    "Outcome",
    "SourceHealth",
    "SourceHealthGovernor",
    "SourceLimits",
    "apply_outcome",
]
