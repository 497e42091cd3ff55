"""
Telemetry Module

Prometheus metrics for source calls, circuit state, research cache and
identity resolution. All helpers are best-effort.
"""

from football_intel.telemetry.metrics import (
    fi_identity_resolutions_total,
    fi_research_cache_total,
    fi_research_fallback_total,
    fi_source_circuit_tripped,
    fi_source_latency_ms,
    fi_source_requests_total,
    get_metrics_text,
    record_cache_lookup,
    record_fallback,
    record_resolution,
    record_source_call,
    set_circuit_state,
)

__all__ = [
    "fi_source_requests_total",
    "fi_source_latency_ms",
    "fi_source_circuit_tripped",
    "fi_research_cache_total",
    "fi_research_fallback_total",
    "fi_identity_resolutions_total",
    "record_source_call",
    "set_circuit_state",
    "record_cache_lookup",
    "record_fallback",
    "record_resolution",
    "get_metrics_text",
]
