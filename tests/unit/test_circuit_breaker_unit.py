"""Unit tests for the provider circuit breaker."""

from unittest.mock import patch

from contenthub_daemon.circuit_breaker import CircuitBreaker, CircuitState
from contenthub_daemon.errors import GenerationProviderError


def test_opens_after_repeated_quota_errors() -> None:
    breaker = CircuitBreaker(failure_threshold=2)
    error = GenerationProviderError("AI provider error: 429 Too Many Requests")

    breaker.record_failure(error)
    assert breaker.check_can_proceed()

    breaker.record_failure(error)
    assert breaker.state == CircuitState.OPEN
    assert not breaker.check_can_proceed()


def test_ignores_non_quota_errors() -> None:
    breaker = CircuitBreaker(failure_threshold=1)

    breaker.record_failure(GenerationProviderError("AI provider error: 401 Unauthorized"))

    assert breaker.state == CircuitState.CLOSED


def test_half_open_after_recovery_timeout_then_closes_on_success() -> None:
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout_seconds=60)

    with patch("contenthub_daemon.circuit_breaker.time.time", return_value=1000.0):
        breaker.record_failure(Exception("insufficient_quota"))
    assert breaker.state == CircuitState.OPEN

    with patch("contenthub_daemon.circuit_breaker.time.time", return_value=1061.0):
        assert breaker.check_can_proceed()
    assert breaker.state == CircuitState.HALF_OPEN

    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED
    assert breaker.get_status()["failure_count"] == 0


def test_half_open_failure_reopens() -> None:
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout_seconds=0)
    breaker.record_failure(Exception("rate limit exceeded"))
    assert breaker.check_can_proceed()
    assert breaker.state == CircuitState.HALF_OPEN

    breaker.record_failure(Exception("rate limit exceeded"))

    assert breaker.state == CircuitState.OPEN


def test_status_reports_recovery_countdown_while_open() -> None:
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout_seconds=600)

    with patch("contenthub_daemon.circuit_breaker.time.time", return_value=1000.0):
        breaker.record_failure(Exception("402 payment_required"))
    with patch("contenthub_daemon.circuit_breaker.time.time", return_value=1100.0):
        status = breaker.get_status()

    assert status["state"] == "open"
    assert status["recovery_in_seconds"] == 500
    assert "opened_at" in status
