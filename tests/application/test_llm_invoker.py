"""Tests for LLMInvoker retry classification, cost and streaming."""

import asyncio
from collections.abc import Sequence

import pytest

from notigen.application.ports.llm_port import (
    ChatMessage,
    CompletionParams,
    CompletionResponse,
    StreamChunk,
)
from notigen.application.services.llm_invoker import LLMInvoker
from notigen.domain.errors import LLMError, LLMErrorCode, ProviderError
from notigen.domain.models import TokenUsage


class ScriptedLLM:
    """Raises the scripted exceptions in order, then answers."""

    model = "fake-llm"

    def __init__(self, failures: Sequence[Exception] = (), chunks: Sequence[str] = ("Hel", "lo")):
        self.failures = list(failures)
        self.chunks = list(chunks)
        self.calls: list[list[ChatMessage]] = []
        self.closed = 0

    async def complete(self, messages, params: CompletionParams) -> CompletionResponse:
        self.calls.append(list(messages))
        if self.failures:
            raise self.failures.pop(0)
        return CompletionResponse(
            content="Hello", usage=TokenUsage(input_tokens=1000, output_tokens=200)
        )

    async def stream(self, messages, params: CompletionParams):
        self.calls.append(list(messages))
        try:
            if self.failures:
                raise self.failures.pop(0)
            for c in self.chunks:
                yield StreamChunk(content=c)
            yield StreamChunk(content="", usage=TokenUsage(input_tokens=10, output_tokens=2))
        finally:
            self.closed += 1


class MidStreamFailure(ScriptedLLM):
    async def stream(self, messages, params: CompletionParams):
        self.calls.append(list(messages))
        yield StreamChunk(content="partial")
        raise ProviderError("upstream reset", status_code=502)


class Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make(llm: ScriptedLLM, **kw) -> tuple[LLMInvoker, Sleeps]:
    sleeps = Sleeps()
    return LLMInvoker(llm, sleep=sleeps, rng=lambda: 0.5, **kw), sleeps


async def collect(agen):
    return [d async for d in agen]


class TestComplete:
    def test_success_reports_cost_and_usage(self) -> None:
        invoker, sleeps = make(ScriptedLLM())
        result = asyncio.run(invoker.complete("hi", system_prompt="sys"))
        assert result.content == "Hello"
        assert result.usage.total_tokens == 1200
        assert result.cost == pytest.approx(1000 / 1e6 * 3.0 + 200 / 1e6 * 15.0)
        assert result.retry_count == 0
        assert result.errors == ()
        assert result.model == "fake-llm"
        assert sleeps.delays == []

    def test_rate_limited_twice_then_success(self) -> None:
        """Two 429s are retried with growing delays, then the call succeeds."""
        llm = ScriptedLLM(failures=[ProviderError("slow", 429), ProviderError("slow", 429)])
        invoker, sleeps = make(llm)
        result = asyncio.run(invoker.complete("hi"))
        assert result.retry_count == 2
        assert [e.code for e in result.errors] == ["RATE_LIMIT", "RATE_LIMIT"]
        assert all(e.retryable for e in result.errors)
        assert sleeps.delays == pytest.approx([1.0, 2.0])

    def test_auth_error_is_not_retried(self) -> None:
        llm = ScriptedLLM(failures=[ProviderError("bad key", 401)])
        invoker, sleeps = make(llm)
        with pytest.raises(LLMError) as info:
            asyncio.run(invoker.complete("hi"))
        assert info.value.code is LLMErrorCode.AUTH_ERROR
        assert info.value.attempts == 1
        assert len(llm.calls) == 1
        assert sleeps.delays == []

    def test_retries_exhausted(self) -> None:
        llm = ScriptedLLM(failures=[ProviderError("down", 503)] * 5)
        invoker, _ = make(llm, max_retries=3)
        with pytest.raises(LLMError) as info:
            asyncio.run(invoker.complete("hi"))
        assert info.value.code is LLMErrorCode.SERVER_ERROR
        assert info.value.retryable is True
        assert len(llm.calls) == 3

    def test_single_attempt_raises_without_sleeping(self) -> None:
        llm = ScriptedLLM(failures=[ProviderError("down", 503)])
        invoker, sleeps = make(llm, max_retries=1)
        with pytest.raises(LLMError) as info:
            asyncio.run(invoker.complete("hi"))
        assert info.value.attempts == 1
        assert len(llm.calls) == 1
        assert sleeps.delays == []

    def test_unknown_error_gets_one_retry(self) -> None:
        llm = ScriptedLLM(failures=[RuntimeError("weird"), RuntimeError("weird")])
        invoker, _ = make(llm, max_retries=5)
        with pytest.raises(LLMError) as info:
            asyncio.run(invoker.complete("hi"))
        assert info.value.code is LLMErrorCode.UNKNOWN
        assert len(llm.calls) == 2

    def test_messages_include_system_prompt(self) -> None:
        messages = LLMInvoker.build_messages("user text", "system text")
        assert [m.role for m in messages] == ["system", "user"]
        assert [m.role for m in LLMInvoker.build_messages("user text")] == ["user"]


class TestStream:
    def test_yields_deltas_and_final_usage(self) -> None:
        llm = ScriptedLLM()
        invoker, _ = make(llm)
        deltas = asyncio.run(collect(invoker.stream("hi")))
        assert "".join(d.content for d in deltas) == "Hello"
        assert deltas[-1].usage == TokenUsage(input_tokens=10, output_tokens=2)
        assert [d.approx_tokens for d in deltas] == [1, 2, 2]
        assert llm.closed == 1

    def test_retries_before_first_chunk(self) -> None:
        llm = ScriptedLLM(failures=[ProviderError("slow", 429)])
        invoker, sleeps = make(llm)
        deltas = asyncio.run(collect(invoker.stream("hi")))
        assert "".join(d.content for d in deltas) == "Hello"
        assert len(llm.calls) == 2
        assert sleeps.delays == pytest.approx([1.0])

    def test_failure_after_partial_output_is_not_retried(self) -> None:
        llm = MidStreamFailure()
        invoker, sleeps = make(llm)
        with pytest.raises(LLMError) as info:
            asyncio.run(collect(invoker.stream("hi")))
        assert info.value.code is LLMErrorCode.SERVER_ERROR
        assert info.value.retryable is False
        assert len(llm.calls) == 1
        assert sleeps.delays == []

    def test_early_close_releases_provider_stream(self) -> None:
        llm = ScriptedLLM(chunks=["a", "b", "c"])
        invoker, _ = make(llm)

        async def first_only():
            agen = invoker.stream("hi")
            first = await agen.__anext__()
            await agen.aclose()
            return first

        assert asyncio.run(first_only()).content == "a"
        assert llm.closed == 1


def test_test_connection_reports_reachability():
    invoker, _ = make(ScriptedLLM())
    assert asyncio.run(invoker.test_connection()) is True
    broken, _ = make(ScriptedLLM(failures=[ProviderError("bad key", 401)]))
    assert asyncio.run(broken.test_connection()) is False
