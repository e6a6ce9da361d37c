"""Circuit breaker used to track delivery channel health."""

import enum
import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class CircuitState(enum.Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Tracks consecutive failures of one delivery channel.

    Opens after ``failure_threshold`` consecutive failures. Once
    ``recovery_timeout`` seconds have passed it turns half-open and lets a
    single attempt through; success closes it again, failure re-opens it.

    Args:
        service_name: Identifier for the protected channel (used in logs).
        failure_threshold: Number of consecutive failures before opening.
        recovery_timeout: Seconds to wait before half-opening.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        service_name: str,
        failure_threshold: int = 3,
        recovery_timeout: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self._failure_count: int = 0
        self._opened_at: float = 0.0
        self._state: CircuitState = CircuitState.CLOSED
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Current circuit state, accounting for recovery timeout."""
        with self._lock:
            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - self._opened_at
                if elapsed >= self.recovery_timeout:
                    self._state = CircuitState.HALF_OPEN
                    logger.info(
                        "Channel %s half-open, allowing a recovery attempt",
                        self.service_name,
                    )
            return self._state

    @property
    def is_healthy(self) -> bool:
        """True unless the circuit is open."""
        return self.state != CircuitState.OPEN

    def record_success(self) -> None:
        """Record a successful send. Resets failure count and closes circuit."""
        with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.info("Channel %s recovered", self.service_name)
            self._failure_count = 0
            self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        """Record a failed send. Opens circuit after threshold reached."""
        with self._lock:
            self._failure_count += 1
            if self._state == CircuitState.HALF_OPEN or (
                self._failure_count >= self.failure_threshold
            ):
                if self._state != CircuitState.OPEN:
                    logger.warning(
                        "Channel %s marked unhealthy after %d consecutive failures",
                        self.service_name,
                        self._failure_count,
                    )
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()


class CircuitBreakerRegistry:
    """Lazily creates one breaker per channel key."""

    def __init__(
        self,
        failure_threshold: int = 3,
        recovery_timeout: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CircuitBreaker:
        """Return the breaker for ``key``, creating it on first use."""
        with self._lock:
            breaker = self._breakers.get(key)
            if breaker is None:
                breaker = CircuitBreaker(
                    key,
                    failure_threshold=self._failure_threshold,
                    recovery_timeout=self._recovery_timeout,
                    clock=self._clock,
                )
                self._breakers[key] = breaker
            return breaker
