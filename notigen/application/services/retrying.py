"""Bounded exponential retry for non-LLM provider calls (embeddings)."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from notigen.domain.services.retry_policy import backoff_delay

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


async def retry_async(
    call: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    jitter_ratio: float = 0.1,
    sleep: Sleep = asyncio.sleep,
    rng: Callable[[], float] = random.random,
    label: str = "call",
) -> T:
    """Run ``call`` up to ``attempts`` times; the last exception propagates."""
    attempt = 1
    while True:
        try:
            return await call()
        except Exception as ex:
            if attempt >= attempts:
                raise
            delay = backoff_delay(attempt, base_delay, jitter_ratio, rng)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                label,
                attempt,
                attempts,
                ex,
                delay,
            )
            await sleep(delay)
        attempt += 1
