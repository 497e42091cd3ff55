"""
Prometheus metrics for the intelligence engine.

Design principles:
- Low cardinality (controlled labels)
- Best-effort (never block main flow)

ALLOWED LABELS (bounded sets):
- source:      "football-data", "api-football", "apifootball", "thesportsdb", "soccersapi"
- capability:  "search_team", "get_recent_matches", "get_upcoming_matches",
               "get_head_to_head", "health_check"
- outcome:     "ok", "empty", "error", "rate_limited", "timeout", "skipped"
- result:      "hit", "miss"
- reason:      "no_sources", "unresolved", "no_matches", "error"
- path:        "curated", "store", "discovered", "miss"

Team names, match ids and URLs are NEVER labels; log them instead.
"""

import logging

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

# =============================================================================
# SOURCE METRICS
# =============================================================================

fi_source_requests_total = Counter(
    "fi_source_requests_total",
    "Upstream source calls by outcome",
    ["source", "capability", "outcome"],
)

fi_source_latency_ms = Histogram(
    "fi_source_latency_ms",
    "Upstream source call latency in milliseconds",
    ["source", "capability"],
    buckets=[50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

fi_source_circuit_tripped = Gauge(
    "fi_source_circuit_tripped",
    "1 when the source circuit breaker is tripped",
    ["source"],
)

# =============================================================================
# ENGINE METRICS
# =============================================================================

fi_research_cache_total = Counter(
    "fi_research_cache_total",
    "Team research cache lookups",
    ["result"],
)

fi_research_fallback_total = Counter(
    "fi_research_fallback_total",
    "Team research served from generated fallback data",
    ["reason"],
)

fi_identity_resolutions_total = Counter(
    "fi_identity_resolutions_total",
    "Team identity resolutions by path",
    ["path"],
)


# =============================================================================
# HELPERS
# =============================================================================


def record_source_call(source: str, capability: str, outcome: str, latency_ms: float) -> None:
    """Record one upstream call with its latency."""
    try:
        fi_source_requests_total.labels(
            source=source, capability=capability, outcome=outcome,
        ).inc()
        if outcome != "skipped":
            fi_source_latency_ms.labels(source=source, capability=capability).observe(latency_ms)
    except Exception as e:
        logger.warning(f"Failed to record source call metric: {e}")


def set_circuit_state(source: str, tripped: bool) -> None:
    try:
        fi_source_circuit_tripped.labels(source=source).set(1 if tripped else 0)
    except Exception as e:
        logger.warning(f"Failed to record circuit metric: {e}")


def record_cache_lookup(hit: bool) -> None:
    try:
        fi_research_cache_total.labels(result="hit" if hit else "miss").inc()
    except Exception as e:
        logger.warning(f"Failed to record cache metric: {e}")


def record_fallback(reason: str) -> None:
    try:
        fi_research_fallback_total.labels(reason=reason).inc()
    except Exception as e:
        logger.warning(f"Failed to record fallback metric: {e}")


def record_resolution(path: str) -> None:
    try:
        fi_identity_resolutions_total.labels(path=path).inc()
    except Exception as e:
        logger.warning(f"Failed to record resolution metric: {e}")


def get_metrics_text() -> tuple[bytes, str]:
    """Exposition payload and content type for a /metrics handler."""
    return generate_latest(), CONTENT_TYPE_LATEST
