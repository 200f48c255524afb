"""Completion calls with classified-error retry and token cost accounting.

Per call: attempt 1..max_retries. Retryable failures (rate limit, 5xx,
timeout, network; unknown on the first attempt only) sleep
``base * 2^(attempt-1) ± 25%`` and try again. Fatal failures and exhausted
retries raise ``LLMError`` carrying the classification code.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass

from notigen.application.ports.llm_port import (
    ChatMessage,
    CompletionParams,
    TextCompletionPort,
)
from notigen.application.services.retrying import Sleep
from notigen.domain.errors import LLMError, LLMErrorCode
from notigen.domain.models import ClassifiedError, CompletionResult, TokenUsage
from notigen.domain.services.retry_policy import backoff_delay, classify_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamDelta:
    """Incremental output. ``approx_tokens`` counts chunks until real usage arrives."""

    content: str
    approx_tokens: int
    usage: TokenUsage | None = None


class LLMInvoker:
    def __init__(
        self,
        provider: TextCompletionPort,
        max_retries: int = 3,
        base_delay_s: float = 1.0,
        jitter_ratio: float = 0.25,
        price_input_per_m: float = 3.0,
        price_output_per_m: float = 15.0,
        sleep: Sleep = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.provider = provider
        self.max_retries = max(1, max_retries)
        self.base_delay_s = base_delay_s
        self.jitter_ratio = jitter_ratio
        self.price_input_per_m = price_input_per_m
        self.price_output_per_m = price_output_per_m
        self._sleep = sleep
        self._rng = rng

    @property
    def model(self) -> str:
        return self.provider.model

    @staticmethod
    def build_messages(prompt: str, system_prompt: str | None = None) -> list[ChatMessage]:
        messages: list[ChatMessage] = []
        if system_prompt:
            messages.append(ChatMessage(role="system", content=system_prompt))
        messages.append(ChatMessage(role="user", content=prompt))
        return messages

    def calculate_cost(self, usage: TokenUsage) -> float:
        return (
            usage.input_tokens / 1_000_000 * self.price_input_per_m
            + usage.output_tokens / 1_000_000 * self.price_output_per_m
        )

    async def complete(
        self,
        prompt: str,
        params: CompletionParams | None = None,
        system_prompt: str | None = None,
    ) -> CompletionResult:
        params = params or CompletionParams()
        messages = self.build_messages(prompt, system_prompt)
        errors: list[ClassifiedError] = []

        attempt = 0
        while True:
            attempt += 1
            start = time.perf_counter()
            try:
                response = await self.provider.complete(messages, params)
            except Exception as ex:
                classified = classify_error(ex, attempt)
                errors.append(classified)
                await self._after_failure(classified, ex)
                continue

            latency_ms = (time.perf_counter() - start) * 1000
            cost = self.calculate_cost(response.usage)
            logger.debug(
                "Completion ok: %d tokens, $%.6f, %.0fms (attempt %d)",
                response.usage.total_tokens,
                cost,
                latency_ms,
                attempt,
            )
            return CompletionResult(
                content=response.content,
                usage=response.usage,
                cost=cost,
                model=response.model or self.model,
                finish_reason=response.finish_reason,
                latency_ms=latency_ms,
                retry_count=attempt - 1,
                errors=tuple(errors),
            )

    async def stream(
        self,
        prompt: str,
        params: CompletionParams | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamDelta]:
        """Yield deltas as they arrive.

        Retries apply only until the first chunk; after that a failure is
        raised as-is since the caller has already seen partial output.
        Closing this generator closes the provider stream.
        """
        params = params or CompletionParams()
        messages = self.build_messages(prompt, system_prompt)
        attempt = 0
        while True:
            attempt += 1
            chunks_seen = 0
            try:
                async with aclosing(self.provider.stream(messages, params)) as chunks:
                    async for chunk in chunks:
                        if chunk.content:
                            chunks_seen += 1
                        yield StreamDelta(
                            content=chunk.content,
                            approx_tokens=chunks_seen,
                            usage=chunk.usage,
                        )
                return
            except LLMError:
                raise
            except Exception as ex:
                classified = classify_error(ex, attempt)
                if chunks_seen:
                    raise self._to_llm_error(classified, attempt, retryable=False) from ex
                await self._after_failure(classified, ex)

    async def test_connection(self) -> bool:
        try:
            await self.provider.complete(
                self.build_messages("ping"), CompletionParams(max_tokens=5, temperature=0.0)
            )
        except Exception as ex:
            logger.warning("LLM connection test failed: %s", ex)
            return False
        return True

    # ----- internals -----

    async def _after_failure(self, classified: ClassifiedError, ex: Exception) -> None:
        attempt = classified.attempt
        if not classified.retryable or attempt >= self.max_retries:
            logger.error(
                "LLM call failed after %d attempt(s) [%s]: %s",
                attempt,
                classified.code,
                classified.message,
            )
            raise self._to_llm_error(classified, attempt) from ex
        delay = backoff_delay(attempt, self.base_delay_s, self.jitter_ratio, self._rng)
        logger.warning(
            "LLM call failed [%s], retrying in %.2fs (attempt %d/%d)",
            classified.code,
            delay,
            attempt,
            self.max_retries,
        )
        await self._sleep(delay)

    @staticmethod
    def _to_llm_error(
        classified: ClassifiedError, attempt: int, retryable: bool | None = None
    ) -> LLMError:
        return LLMError(
            message=classified.message,
            code=LLMErrorCode(classified.code),
            retryable=classified.retryable if retryable is None else retryable,
            attempts=attempt,
        )
