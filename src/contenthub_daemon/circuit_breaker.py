"""Circuit breaker for AI provider quota exhaustion."""

import logging
import time
from datetime import datetime
from enum import Enum

from .observability import log as obs_log

logger = logging.getLogger(__name__)

# Substrings of provider errors that mean "stop calling for a while"
QUOTA_PATTERNS = (
    "quota",
    "insufficient_quota",
    "billing",
    "payment_required",
    "402",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "429",
    "too many requests",
)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Provider is refusing us, keywords stay pending
    HALF_OPEN = "half_open"  # One keyword may try the provider again


class CircuitBreaker:
    """Stops spending keywords on a provider that keeps rate limiting us.

    Only quota and rate-limit errors count toward opening. Timeouts, auth
    errors and unusable payloads fail their keyword but leave the breaker
    alone. While open, the orchestrator defers remaining candidates: they
    keep their pending status and get no generation task, so the next
    scheduled run picks them up again.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        recovery_timeout_seconds: int = 3600,
    ):
        """Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive quota errors that open the circuit
            recovery_timeout_seconds: How long to defer keywords before
                letting one through as a recovery attempt
        """
        self.state = CircuitState.CLOSED
        self.failure_threshold = failure_threshold
        self.recovery_timeout_seconds = recovery_timeout_seconds

        self.failure_count = 0
        self.opened_at: float | None = None
        self.last_failure_time: float | None = None

    def is_quota_error(self, error: Exception) -> bool:
        """Tell provider quota exhaustion apart from other provider failures.

        Args:
            error: The GenerationError (or any exception) from a provider call

        Returns:
            True if the message looks like a quota, billing or rate limit refusal
        """
        message = str(error).lower()
        return any(pattern in message for pattern in QUOTA_PATTERNS)

    def check_can_proceed(self) -> bool:
        """Check whether the next keyword may call the provider.

        An open circuit turns half-open once the recovery timeout has passed.

        Returns:
            True if the keyword should be claimed and generated, False if it
            should be deferred
        """
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if self.opened_at is None:
                return True

            elapsed = time.time() - self.opened_at
            if elapsed < self.recovery_timeout_seconds:
                return False

            self.state = CircuitState.HALF_OPEN
            obs_log(
                "circuit_breaker.state",
                state="half_open",
                elapsed_seconds=int(elapsed),
            )
            logger.info("Circuit breaker HALF_OPEN: letting one keyword through")

        return True

    def record_failure(self, error: Exception) -> None:
        """Record a failed provider call.

        Errors that are not quota related are ignored. A quota error while
        half-open reopens the circuit immediately.

        Args:
            error: The provider failure for the keyword that just failed
        """
        if not self.is_quota_error(error):
            return

        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == CircuitState.HALF_OPEN:
            self._open(reason="half_open_failure")
            logger.warning("Circuit breaker OPEN: provider still refusing after recovery wait")
            return

        if self.failure_count >= self.failure_threshold:
            self._open(reason="threshold_exceeded", threshold=self.failure_threshold)
            logger.warning(
                f"Circuit breaker OPEN: {self.failure_count} quota errors "
                f"(threshold: {self.failure_threshold}), deferring remaining keywords"
            )

    def record_success(self) -> None:
        """Record a generated article; closes the circuit and clears the count."""
        if self.state == CircuitState.HALF_OPEN:
            obs_log("circuit_breaker.state", state="closed", reason="recovery_success")
            logger.info("Circuit breaker CLOSED: provider recovered")
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at = None

    def get_status(self) -> dict:
        """Current breaker state for health reporting.

        Returns:
            Dict with state and failure counts, plus opened_at and
            recovery_in_seconds while the circuit has been opened
        """
        status = {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
        }

        if self.opened_at is not None:
            remaining = max(0, self.recovery_timeout_seconds - (time.time() - self.opened_at))
            status["opened_at"] = datetime.fromtimestamp(self.opened_at).isoformat()
            status["recovery_in_seconds"] = int(remaining)

        return status

    def _open(self, reason: str, **metadata) -> None:
        self.state = CircuitState.OPEN
        self.opened_at = time.time()
        obs_log(
            "circuit_breaker.state",
            state="open",
            reason=reason,
            failure_count=self.failure_count,
            **metadata,
        )


_breaker: CircuitBreaker | None = None


def get_circuit_breaker() -> CircuitBreaker:
    """Get the process-wide circuit breaker shared by every orchestrator.

    Returns:
        The singleton CircuitBreaker, created on first use
    """
    global _breaker
    if _breaker is None:
        _breaker = CircuitBreaker()
    return _breaker


def reset_circuit_breaker() -> None:
    """Drop the shared breaker so the next run starts closed (used by tests)."""
    global _breaker
    _breaker = None
