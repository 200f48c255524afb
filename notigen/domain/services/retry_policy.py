"""Retry policy for provider calls: error classification and backoff delays.

Classification looks at an exposed status code first, then at the exception
type, then at the message text. AUTH_ERROR and INVALID_REQUEST are never
retried; UNKNOWN is retried only after the first attempt.
"""

from __future__ import annotations

import random
from collections.abc import Callable

from notigen.domain.errors import LLMErrorCode
from notigen.domain.models import ClassifiedError

RETRYABLE_CODES = frozenset(
    {
        LLMErrorCode.RATE_LIMIT,
        LLMErrorCode.SERVER_ERROR,
        LLMErrorCode.TIMEOUT,
        LLMErrorCode.NETWORK_ERROR,
    }
)
FATAL_CODES = frozenset({LLMErrorCode.AUTH_ERROR, LLMErrorCode.INVALID_REQUEST})

_MESSAGE_MARKERS: tuple[tuple[LLMErrorCode, tuple[str, ...]], ...] = (
    (LLMErrorCode.RATE_LIMIT, ("rate_limit", "rate limit", "too many requests")),
    (LLMErrorCode.TIMEOUT, ("timeout", "timed out", "etimedout")),
    (LLMErrorCode.NETWORK_ERROR, ("network", "econnrefused", "enotfound", "connection")),
    (LLMErrorCode.AUTH_ERROR, ("authentication", "unauthorized", "invalid api key")),
    (LLMErrorCode.INVALID_REQUEST, ("invalid_request", "bad request")),
)


def _status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def _code_from_status(status: int) -> LLMErrorCode | None:
    if status == 429:
        return LLMErrorCode.RATE_LIMIT
    if status >= 500:
        return LLMErrorCode.SERVER_ERROR
    if status in (401, 403):
        return LLMErrorCode.AUTH_ERROR
    if status == 400:
        return LLMErrorCode.INVALID_REQUEST
    if status == 408:
        return LLMErrorCode.TIMEOUT
    return None


def error_code(exc: BaseException) -> LLMErrorCode:
    status = _status_code(exc)
    if status is not None:
        code = _code_from_status(status)
        if code is not None:
            return code
    if isinstance(exc, TimeoutError):
        return LLMErrorCode.TIMEOUT
    if isinstance(exc, ConnectionError):
        return LLMErrorCode.NETWORK_ERROR
    message = str(exc).lower()
    for code, markers in _MESSAGE_MARKERS:
        if any(m in message for m in markers):
            return code
    return LLMErrorCode.UNKNOWN


def classify_error(exc: BaseException, attempt: int) -> ClassifiedError:
    code = error_code(exc)
    if code in RETRYABLE_CODES:
        retryable = True
    elif code in FATAL_CODES:
        retryable = False
    else:
        retryable = attempt < 2
    return ClassifiedError(code=code.value, message=str(exc), retryable=retryable, attempt=attempt)


def expected_delay(attempt: int, base_delay: float) -> float:
    """Backoff without jitter: base * 2^(attempt-1)."""
    return base_delay * (2 ** (attempt - 1))


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    jitter_ratio: float = 0.25,
    rng: Callable[[], float] = random.random,
) -> float:
    """Exponential backoff with symmetric jitter of ``±jitter_ratio``."""
    delay = expected_delay(attempt, base_delay)
    jitter = delay * jitter_ratio * (2.0 * rng() - 1.0)
    return max(0.0, delay + jitter)
