# This project was developed with assistance from AI tools.
"""Consecutive-failure circuit breakers for job-creation paths.

A breaker opens after ``failure_threshold`` consecutive failures and rejects
calls for ``cooldown_seconds``. After the cooldown exactly one trial call is
admitted (half-open): success closes the breaker, failure reopens it.

State is per process and not persisted. Updates are not locked; under
concurrent load a failure or success may be lost, which only shifts when a
breaker trips.
"""

import enum
import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

OCR_JOB_CREATION = "ocr_job_creation"
BANKING_JOB_CREATION = "banking_job_creation"
CREDIT_SUMMARY_GENERATION = "credit_summary_generation"


class BreakerState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int = 3,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._failures = 0
        self._opened_at: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> BreakerState:
        if self._opened_at is None:
            return BreakerState.CLOSED
        if self._clock() - self._opened_at >= self.cooldown_seconds:
            return BreakerState.HALF_OPEN
        return BreakerState.OPEN

    @property
    def failure_count(self) -> int:
        return self._failures

    def can_request(self) -> bool:
        """Return whether a call may proceed; admits one trial call when half-open."""
        state = self.state
        if state is BreakerState.CLOSED:
            return True
        if state is BreakerState.OPEN:
            return False
        if self._trial_in_flight:
            return False
        self._trial_in_flight = True
        return True

    def record_success(self) -> None:
        if self._opened_at is not None:
            logger.info("Circuit breaker %s closed", self.name)
        self._failures = 0
        self._opened_at = None
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self._failures += 1
        if self._trial_in_flight or self._failures >= self.failure_threshold:
            if self._opened_at is None or self._trial_in_flight:
                logger.warning(
                    "Circuit breaker %s opened after %d consecutive failures",
                    self.name,
                    self._failures,
                )
            self._opened_at = self._clock()
            self._trial_in_flight = False

    def reset(self) -> None:
        self._failures = 0
        self._opened_at = None
        self._trial_in_flight = False


class CircuitBreakerRegistry:
    """Owns one breaker per operation name, created lazily with shared defaults."""

    def __init__(
        self,
        *,
        failure_threshold: int = 3,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._failure_threshold = failure_threshold
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                name,
                failure_threshold=self._failure_threshold,
                cooldown_seconds=self._cooldown_seconds,
                clock=self._clock,
            )
            self._breakers[name] = breaker
        return breaker

    def snapshot(self) -> dict[str, str]:
        """Current state of every breaker created so far."""
        return {name: b.state.value for name, b in self._breakers.items()}
