"""Per-provider circuit breaker.

States:
- CLOSED: Normal operation, calls allowed
- OPEN: After failure_threshold consecutive failures, calls fail fast
- HALF_OPEN: After cooldown, a single probe call at a time decides

State Transitions:
- CLOSED -> OPEN: After failure_threshold consecutive failures
- OPEN -> HALF_OPEN: After cooldown_seconds
- HALF_OPEN -> CLOSED: After success_threshold consecutive successes
- HALF_OPEN -> OPEN: On any failure
"""

import threading
import time
from enum import Enum
from typing import Callable, Dict, Optional

import structlog

from litrank.models.config import CircuitBreakerConfig
from litrank.utils.exceptions import CircuitOpen

logger = structlog.get_logger()


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Thread-safe circuit breaker for one provider."""

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            name: Provider id guarded by this breaker
            config: Circuit breaker configuration
            clock: Monotonic time source, replaceable in tests
        """
        self.name = name
        self.config = config
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._total_successes = 0
        self._total_failures = 0
        self._rejected = 0
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._lock = threading.RLock()

    @property
    def state(self) -> CircuitState:
        """Current state, auto-transitioning OPEN to HALF_OPEN after cooldown."""
        with self._lock:
            if self._state == CircuitState.OPEN and self._cooldown_remaining() <= 0:
                self._state = CircuitState.HALF_OPEN
                self._consecutive_successes = 0
                logger.info("circuit_half_open", provider=self.name)
            return self._state

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    def _cooldown_remaining(self) -> float:
        if self._opened_at is None:
            return 0.0
        elapsed = self._clock() - self._opened_at
        return max(0.0, self.config.cooldown_seconds - elapsed)

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.warning(
            "circuit_opened",
            provider=self.name,
            consecutive_failures=self._consecutive_failures,
            cooldown_seconds=self.config.cooldown_seconds,
        )

    def record_success(self) -> None:
        """Record a successful call."""
        with self._lock:
            self._total_successes += 1
            self._consecutive_successes += 1
            self._consecutive_failures = 0

            if self._state == CircuitState.HALF_OPEN:
                if self._consecutive_successes >= self.config.success_threshold:
                    self._state = CircuitState.CLOSED
                    self._opened_at = None
                    logger.info("circuit_closed", provider=self.name)

    def record_failure(self) -> None:
        """Record a failed call."""
        with self._lock:
            self._total_failures += 1
            self._consecutive_failures += 1
            self._consecutive_successes = 0

            if self._state == CircuitState.HALF_OPEN:
                self._open()
            elif self._state == CircuitState.CLOSED:
                if self._consecutive_failures >= self.config.failure_threshold:
                    self._open()

    def allow_request(self) -> bool:
        """Whether a call would be admitted now, without admitting it."""
        if not self.config.enabled:
            return True
        with self._lock:
            state = self.state
            if state == CircuitState.HALF_OPEN:
                return not self._probe_in_flight
            return state == CircuitState.CLOSED

    def check_or_raise(self) -> bool:
        """Admit a call or raise CircuitOpen without touching any other budget.

        In HALF_OPEN exactly one caller is admitted as the probe; the rest
        are rejected until that caller calls release_probe().

        Returns:
            True if the caller holds the probe slot and must release it.

        Raises:
            CircuitOpen: If the circuit is OPEN, or HALF_OPEN with a probe
                already in flight
        """
        if not self.config.enabled:
            return False
        with self._lock:
            state = self.state
            if state == CircuitState.CLOSED:
                return False
            if state == CircuitState.HALF_OPEN and not self._probe_in_flight:
                self._probe_in_flight = True
                logger.info("circuit_probe_admitted", provider=self.name)
                return True
            self._rejected += 1
            remaining = self._cooldown_remaining() if state == CircuitState.OPEN else 0.0
        if state == CircuitState.OPEN:
            message = f"Circuit breaker '{self.name}' is OPEN - retry in {remaining:.1f}s"
        else:
            message = f"Circuit breaker '{self.name}' is HALF_OPEN - probe in flight"
        raise CircuitOpen(self.name, message, remaining_seconds=remaining)

    def release_probe(self) -> None:
        """Free the HALF_OPEN probe slot once the probe call has ended."""
        with self._lock:
            self._probe_in_flight = False

    def reset(self) -> None:
        """Manually reset circuit breaker to CLOSED state."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
            self._consecutive_successes = 0
            self._opened_at = None
            self._probe_in_flight = False

    def get_stats(self) -> Dict:
        with self._lock:
            state = self.state
            return {
                "name": self.name,
                "state": state.value,
                "consecutive_failures": self._consecutive_failures,
                "consecutive_successes": self._consecutive_successes,
                "total_successes": self._total_successes,
                "total_failures": self._total_failures,
                "rejected": self._rejected,
                "probe_in_flight": self._probe_in_flight,
                "cooldown_remaining": self._cooldown_remaining()
                if state == CircuitState.OPEN
                else 0.0,
            }


class CircuitBreakerRegistry:
    """Circuit breakers keyed by provider id.

    Owned by a ResilienceGovernor rather than being a process-wide
    singleton, so separate services never share breaker state.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._registry_lock = threading.RLock()

    def get_or_create(self, name: str) -> CircuitBreaker:
        with self._registry_lock:
            if name not in self._breakers:
                self._breakers[name] = CircuitBreaker(name, self.config, self._clock)
            return self._breakers[name]

    def get(self, name: str) -> Optional[CircuitBreaker]:
        with self._registry_lock:
            return self._breakers.get(name)

    def get_all_stats(self) -> Dict[str, Dict]:
        with self._registry_lock:
            return {name: cb.get_stats() for name, cb in self._breakers.items()}

    def reset_all(self) -> None:
        with self._registry_lock:
            for cb in self._breakers.values():
                cb.reset()
