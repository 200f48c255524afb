"""Tests for provider error classification and backoff delays."""

import pytest

from notigen.domain.errors import LLMErrorCode, ProviderError
from notigen.domain.services.retry_policy import (
    backoff_delay,
    classify_error,
    error_code,
    expected_delay,
)


@pytest.mark.parametrize(
    ("status", "code"),
    [
        (429, LLMErrorCode.RATE_LIMIT),
        (500, LLMErrorCode.SERVER_ERROR),
        (503, LLMErrorCode.SERVER_ERROR),
        (401, LLMErrorCode.AUTH_ERROR),
        (403, LLMErrorCode.AUTH_ERROR),
        (400, LLMErrorCode.INVALID_REQUEST),
        (408, LLMErrorCode.TIMEOUT),
    ],
)
def test_status_code_wins(status: int, code: LLMErrorCode):
    assert error_code(ProviderError("boom", status_code=status)) is code


def test_exception_types():
    assert error_code(TimeoutError()) is LLMErrorCode.TIMEOUT
    assert error_code(ConnectionRefusedError()) is LLMErrorCode.NETWORK_ERROR


def test_message_markers():
    assert error_code(RuntimeError("Too Many Requests")) is LLMErrorCode.RATE_LIMIT
    assert error_code(RuntimeError("request timed out")) is LLMErrorCode.TIMEOUT
    assert error_code(RuntimeError("ECONNREFUSED 127.0.0.1")) is LLMErrorCode.NETWORK_ERROR
    assert error_code(RuntimeError("Invalid API key")) is LLMErrorCode.AUTH_ERROR
    assert error_code(RuntimeError("something odd")) is LLMErrorCode.UNKNOWN


def test_retryable_and_fatal_classes():
    assert classify_error(ProviderError("x", 429), attempt=3).retryable
    assert classify_error(ProviderError("x", 502), attempt=1).retryable
    assert not classify_error(ProviderError("x", 401), attempt=1).retryable
    assert not classify_error(ProviderError("x", 400), attempt=1).retryable


def test_unknown_is_retried_only_on_first_attempt():
    """An unclassified failure gets one more chance, not more."""
    assert classify_error(RuntimeError("weird"), attempt=1).retryable
    assert not classify_error(RuntimeError("weird"), attempt=2).retryable


def test_classified_error_carries_code_and_attempt():
    err = classify_error(ProviderError("slow down", 429), attempt=2)
    assert err.code == "RATE_LIMIT"
    assert err.message == "slow down"
    assert err.attempt == 2


def test_expected_delay_doubles_and_never_decreases():
    delays = [expected_delay(n, base_delay=1.0) for n in range(1, 6)]
    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0]
    assert all(a <= b for a, b in zip(delays, delays[1:]))


def test_backoff_jitter_bounds():
    """rng 0 / 0.5 / 1 map to -25%, 0 and +25% of the expected delay."""
    assert backoff_delay(2, 1.0, 0.25, rng=lambda: 0.0) == pytest.approx(1.5)
    assert backoff_delay(2, 1.0, 0.25, rng=lambda: 0.5) == pytest.approx(2.0)
    assert backoff_delay(2, 1.0, 0.25, rng=lambda: 1.0) == pytest.approx(2.5)


def test_backoff_is_never_negative():
    assert backoff_delay(1, 1.0, jitter_ratio=2.0, rng=lambda: 0.0) == 0.0
