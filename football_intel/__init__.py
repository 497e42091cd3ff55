"""Football data-intelligence engine: multi-source team research and match probabilities."""

from football_intel.engine import FootballIntelligenceEngine
from football_intel.models import MatchAnalysis, ProbabilityResult, TeamResearch

__all__ = [
    "FootballIntelligenceEngine",
    "MatchAnalysis",
    "ProbabilityResult",
    "TeamResearch",
]

__version__ = "1.0.0"
