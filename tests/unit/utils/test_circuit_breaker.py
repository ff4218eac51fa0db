"""Unit tests for the per-provider circuit breaker."""

import pytest

from litrank.models.config import CircuitBreakerConfig
from litrank.utils.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)
from litrank.utils.exceptions import CircuitOpen


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def circuit_config():
    """Create test circuit breaker configuration."""
    return CircuitBreakerConfig(
        enabled=True,
        failure_threshold=3,
        success_threshold=2,
        cooldown_seconds=10.0,
    )


@pytest.fixture
def breaker(circuit_config, clock):
    return CircuitBreaker("openalex", circuit_config, clock)


def trip(breaker: CircuitBreaker, times: int = 3) -> None:
    for _ in range(times):
        breaker.record_failure()


class TestStateTransitions:
    """Tests for circuit state transitions."""

    def test_initial_state_is_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow_request()

    def test_stays_closed_below_threshold(self, breaker):
        trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 2

    def test_closed_to_open_after_threshold(self, breaker):
        """Test CLOSED -> OPEN after failure threshold."""
        trip(breaker)
        assert breaker.state == CircuitState.OPEN
        assert not breaker.allow_request()

    def test_success_resets_failure_streak(self, breaker):
        trip(breaker, 2)
        breaker.record_success()
        trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

    def test_open_to_half_open_after_cooldown(self, breaker, clock):
        """Test OPEN -> HALF_OPEN after cooldown."""
        trip(breaker)
        clock.advance(9.9)
        assert breaker.state == CircuitState.OPEN
        clock.advance(0.2)
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request()

    def test_half_open_to_closed_after_successes(self, breaker, clock):
        """Test HALF_OPEN -> CLOSED after success_threshold successes."""
        trip(breaker)
        clock.advance(11)
        assert breaker.state == CircuitState.HALF_OPEN
        breaker.record_success()
        assert breaker.state == CircuitState.HALF_OPEN
        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_failure_reopens(self, breaker, clock):
        """Test HALF_OPEN -> OPEN on any failure."""
        trip(breaker)
        clock.advance(11)
        assert breaker.state == CircuitState.HALF_OPEN
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN

    def test_reset(self, breaker):
        trip(breaker)
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 0


class TestCheckOrRaise:
    """Tests for fail-fast behavior."""

    def test_closed_does_not_raise(self, breaker):
        breaker.check_or_raise()

    def test_open_raises_with_remaining_cooldown(self, breaker, clock):
        trip(breaker)
        clock.advance(4)
        with pytest.raises(CircuitOpen) as exc_info:
            breaker.check_or_raise()
        assert exc_info.value.provider == "openalex"
        assert exc_info.value.remaining_seconds == pytest.approx(6.0)
        assert breaker.get_stats()["rejected"] == 1

    def test_half_open_admits_single_probe(self, breaker, clock):
        trip(breaker)
        clock.advance(11)
        assert breaker.check_or_raise() is True
        assert not breaker.allow_request()
        for _ in range(4):
            with pytest.raises(CircuitOpen, match="probe in flight"):
                breaker.check_or_raise()
        assert breaker.get_stats()["rejected"] == 4

    def test_probe_slot_freed_after_release(self, breaker, clock):
        trip(breaker)
        clock.advance(11)
        assert breaker.check_or_raise()
        breaker.record_success()
        breaker.release_probe()
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.check_or_raise()

    def test_closed_callers_do_not_hold_probe(self, breaker):
        assert breaker.check_or_raise() is False
        assert breaker.check_or_raise() is False

    def test_disabled_breaker_never_blocks(self, clock):
        cb = CircuitBreaker(
            "arxiv", CircuitBreakerConfig(enabled=False, failure_threshold=1), clock
        )
        cb.record_failure()
        cb.check_or_raise()
        assert cb.allow_request()


class TestStats:
    def test_stats_report_state_string(self, breaker):
        trip(breaker)
        stats = breaker.get_stats()
        assert stats["state"] == "open"
        assert stats["total_failures"] == 3
        assert stats["cooldown_remaining"] == pytest.approx(10.0)


class TestRegistry:
    """Tests for CircuitBreakerRegistry."""

    def test_get_or_create_returns_same_instance(self, circuit_config, clock):
        registry = CircuitBreakerRegistry(circuit_config, clock)
        assert registry.get_or_create("a") is registry.get_or_create("a")
        assert registry.get("missing") is None

    def test_registries_do_not_share_state(self, circuit_config, clock):
        first = CircuitBreakerRegistry(circuit_config, clock)
        second = CircuitBreakerRegistry(circuit_config, clock)
        trip(first.get_or_create("a"))
        assert second.get_or_create("a").state == CircuitState.CLOSED

    def test_reset_all_and_stats(self, circuit_config, clock):
        registry = CircuitBreakerRegistry(circuit_config, clock)
        trip(registry.get_or_create("a"))
        registry.get_or_create("b")
        stats = registry.get_all_stats()
        assert stats["a"]["state"] == "open"
        assert stats["b"]["state"] == "closed"
        registry.reset_all()
        assert registry.get_all_stats()["a"]["state"] == "closed"
