"""Tests for the source health governor: transitions, gating and circuit breaking."""

import pytest

from football_intel.health.governor import (
    GovernorPolicy,
    Outcome,
    SourceHealth,
    SourceHealthGovernor,
    SourceLimits,
    admits,
    apply_outcome,
    record_request,
)

NOW = 10_000.0


# ---------------------------------------------------------------------------
# Pure transitions
# ---------------------------------------------------------------------------

class TestApplyOutcome:
    """Snapshot -> snapshot transitions with explicit timestamps."""

    def test_rate_limit_backoff_is_exponential(self):
        health = SourceHealth(error_count=2)
        after = apply_outcome(health, Outcome.error(429), NOW)
        assert after.error_count == 3
        assert after.backoff_until - NOW == pytest.approx(8)

    def test_rate_limit_backoff_is_capped(self):
        after = apply_outcome(SourceHealth(error_count=20), Outcome.error(429), NOW)
        assert after.backoff_until - NOW == 300

    def test_server_error_backoff_is_linear(self):
        after = apply_outcome(SourceHealth(error_count=1), Outcome.error(503), NOW)
        assert after.backoff_until - NOW == 20
        capped = apply_outcome(SourceHealth(error_count=9), Outcome.error(500), NOW)
        assert capped.backoff_until - NOW == 60

    def test_transport_failure_counts_as_server_error(self):
        after = apply_outcome(SourceHealth(), Outcome.error(transport_failure=True), NOW)
        assert after.backoff_until - NOW == 10

    def test_single_client_error_sets_no_backoff(self):
        after = apply_outcome(SourceHealth(), Outcome.error(400), NOW)
        assert after.error_count == 1
        assert after.backoff_until == 0.0

    def test_second_client_error_arms_backoff(self):
        after = apply_outcome(SourceHealth(error_count=1), Outcome.error(400), NOW)
        assert after.circuit == "tripped"
        assert after.backoff_until > NOW

    def test_success_resets_errors(self):
        health = SourceHealth(error_count=3, backoff_until=NOW - 1)
        after = apply_outcome(health, Outcome.ok(), NOW)
        assert after.error_count == 0
        assert after.circuit == "closed"

    def test_snapshots_are_immutable(self):
        health = SourceHealth()
        apply_outcome(health, Outcome.error(500), NOW)
        assert health.error_count == 0


class TestAdmits:
    """Window, burst and spacing gates."""

    def test_window_cap(self):
        limits = SourceLimits(requests_per_minute=10, burst_limit=100)
        health = SourceHealth(
            request_times=(NOW - 50, NOW - 45, NOW - 40, NOW - 35, NOW - 31),
            last_request_at=NOW - 31,
        )
        assert admits(health, limits, GovernorPolicy(min_spacing_seconds=0), NOW) == (False, "window_cap")

    def test_burst_cap(self):
        limits = SourceLimits(requests_per_minute=100, burst_limit=10)
        health = SourceHealth(request_times=(NOW - 20, NOW - 10, NOW - 5), last_request_at=NOW - 5)
        assert admits(health, limits, GovernorPolicy(min_spacing_seconds=0), NOW) == (False, "burst_cap")

    def test_spacing(self):
        limits = SourceLimits(requests_per_minute=100, burst_limit=10)
        health = record_request(SourceHealth(), NOW - 5)
        assert admits(health, limits, GovernorPolicy(), NOW) == (False, "spacing")
        assert admits(health, limits, GovernorPolicy(), NOW + 5)[0]

    def test_old_requests_leave_the_window(self):
        limits = SourceLimits(requests_per_minute=10, burst_limit=100)
        health = SourceHealth(request_times=tuple(NOW - 61 - i for i in range(5)), last_request_at=NOW - 61)
        assert admits(health, limits, GovernorPolicy(min_spacing_seconds=0), NOW) == (True, None)

    def test_tripped_circuit_reason(self):
        limits = SourceLimits(requests_per_minute=100, burst_limit=10)
        health = SourceHealth(error_count=2, backoff_until=NOW + 5)
        assert admits(health, limits, GovernorPolicy(), NOW) == (False, "circuit_tripped")


# ---------------------------------------------------------------------------
# Governor
# ---------------------------------------------------------------------------

@pytest.fixture
def governor(clock):
    return SourceHealthGovernor(
        limits={"alpha": SourceLimits(requests_per_minute=600, burst_limit=100)},
        policy=GovernorPolicy(min_spacing_seconds=0),
        clock=clock,
    )


class TestGovernor:
    """Lock-protected governor over the pure transitions."""

    def test_circuit_trips_after_two_errors(self, governor, clock):
        governor.record_error("alpha", 500)
        governor.record_error("alpha", 500)
        assert not governor.can_request("alpha")
        assert governor.status("alpha")["circuit"] == "tripped"

        clock.advance(21)
        assert governor.can_request("alpha")
        governor.record_success("alpha")
        assert governor.status("alpha")["error_count"] == 0
        assert governor.status("alpha")["circuit"] == "closed"

    def test_429_at_third_error_backs_off_eight_seconds(self, governor, clock):
        governor.record_error("alpha", 500)
        governor.record_error("alpha", 500)
        governor.record_error("alpha", 429)
        status = governor.status("alpha")
        assert status["error_count"] == 3
        assert status["backoff_until"] - clock.now == pytest.approx(8)

    def test_try_acquire_stamps_requests(self, clock):
        governor = SourceHealthGovernor(
            limits={"alpha": SourceLimits(requests_per_minute=100, burst_limit=10)},
            clock=clock,
        )
        assert governor.try_acquire("alpha")
        assert not governor.try_acquire("alpha")
        assert governor.status("alpha")["requests_this_window"] == 1
        clock.advance(10)
        assert governor.try_acquire("alpha")

    def test_can_request_does_not_consume(self, governor):
        for _ in range(5):
            assert governor.can_request("alpha")
        assert governor.status("alpha")["requests_this_window"] == 0

    def test_unknown_source_is_always_allowed(self, governor):
        assert governor.can_request("mystery")
        assert governor.try_acquire("mystery")
        governor.record_error("mystery", 500)
        assert governor.status("mystery")["available"]

    def test_status_hides_lapsed_backoff(self, governor, clock):
        governor.record_error("alpha", 503)
        assert governor.status("alpha")["backoff_until"] is not None
        clock.advance(11)
        assert governor.status("alpha")["backoff_until"] is None

    def test_reset_clears_tripped_circuit(self, governor):
        governor.record_error("alpha", 500)
        governor.record_error("alpha", 500)
        governor.reset("alpha")
        assert governor.can_request("alpha")
        assert governor.status("alpha")["error_count"] == 0

    def test_available_sources_and_wait_estimate(self, governor, clock):
        governor.register("beta", SourceLimits(requests_per_minute=600, burst_limit=100))
        governor.record_error("beta", 500)
        assert governor.available_sources() == ["alpha"]
        assert governor.seconds_until_available("beta") == pytest.approx(10)
        assert governor.seconds_until_available("alpha") == 0.0

    def test_status_all_covers_registered_sources(self):
        governor = SourceHealthGovernor()
        assert set(governor.status_all()) == {
            "football-data", "api-football", "apifootball", "thesportsdb", "soccersapi",
        }
