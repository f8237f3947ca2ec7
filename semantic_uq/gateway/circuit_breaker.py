"""Circuit breaker guarding the gateway's provider endpoint.

One gateway talks to one provider, so one breaker holds one circuit:
  - CLOSED: calls pass through
  - OPEN: ``failure_threshold`` consecutive failures; calls are refused until
    ``recovery_timeout`` has elapsed
  - HALF_OPEN: exactly one probe call is admitted; its outcome closes or
    re-opens the circuit

Retry delays use exponential backoff with jitter:
  delay = min(base * 2^attempt + uniform(0, base / 2), max_delay)
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from enum import Enum

from semantic_uq.gateway.types import ProviderConfig

logger = logging.getLogger(__name__)

FAILURE_THRESHOLD = 5
RECOVERY_TIMEOUT = 30.0  # seconds


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Failure detection and retry pacing for a single provider.

    Usage:
        breaker = CircuitBreaker(config)
        if not breaker.allow():
            ...  # refuse with CIRCUIT_OPEN

        breaker.on_success()
        delay = breaker.on_failure(attempt)  # None once retries are spent
    """

    def __init__(
        self,
        config: ProviderConfig,
        failure_threshold: int = FAILURE_THRESHOLD,
        recovery_timeout: float = RECOVERY_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.total_failures = 0
        self.total_successes = 0
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def name(self) -> str:
        return self.config.provider.value

    def allow(self) -> bool:
        """Whether a call may be sent now. Claims the probe slot when half-open."""
        if self.state == CircuitState.OPEN:
            if self._clock() - self._opened_at < self.recovery_timeout:
                return False
            self.state = CircuitState.HALF_OPEN
            logger.info("Circuit for %s half-open, sending probe", self.name)

        if self.state == CircuitState.HALF_OPEN:
            if self._probe_in_flight:
                return False
            self._probe_in_flight = True

        return True

    def on_success(self) -> None:
        self.total_successes += 1
        self.consecutive_failures = 0
        self._probe_in_flight = False
        if self.state != CircuitState.CLOSED:
            logger.info("Circuit for %s closed", self.name)
            self.state = CircuitState.CLOSED

    def on_failure(self, attempt: int) -> float | None:
        """Record a failed call made on ``attempt`` (0-based).

        Returns the delay before the next attempt, or None when the retry
        allowance in ``config.max_retries`` is used up.
        """
        self.total_failures += 1
        self.consecutive_failures += 1

        if self.state == CircuitState.HALF_OPEN:
            self._trip("probe failed")
        elif self.state == CircuitState.CLOSED and self.consecutive_failures >= self.failure_threshold:
            self._trip(f"{self.consecutive_failures} consecutive failures")

        if attempt >= self.config.max_retries:
            return None
        return self.backoff(attempt)

    def backoff(self, attempt: int) -> float:
        base = self.config.base_retry_delay
        delay = base * (2**attempt) + random.uniform(0, base * 0.5)
        return min(delay, self.config.max_retry_delay)

    def release_probe(self) -> None:
        """Give back the half-open probe slot without an outcome (cancelled call)."""
        self._probe_in_flight = False

    def _trip(self, reason: str) -> None:
        self.state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._probe_in_flight = False
        logger.warning("Circuit for %s opened: %s", self.name, reason)

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self._probe_in_flight = False

    def snapshot(self) -> dict:
        return {
            "provider": self.name,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "total_failures": self.total_failures,
            "total_successes": self.total_successes,
        }
