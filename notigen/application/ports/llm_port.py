from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Protocol

from notigen.domain.models import TokenUsage


@dataclass(frozen=True)
class ChatMessage:
    role: str  # "system" | "user" | "assistant"
    content: str


@dataclass(frozen=True)
class CompletionParams:
    temperature: float = 0.7
    max_tokens: int = 1000
    top_p: float = 1.0


@dataclass(frozen=True)
class CompletionResponse:
    content: str
    usage: TokenUsage
    finish_reason: str = "stop"
    model: str = ""


@dataclass(frozen=True)
class StreamChunk:
    """One streamed delta. ``usage`` is only set on the provider's final report."""

    content: str
    usage: TokenUsage | None = None


class TextCompletionPort(Protocol):
    model: str

    async def complete(
        self, messages: Sequence[ChatMessage], params: CompletionParams
    ) -> CompletionResponse: ...

    def stream(
        self, messages: Sequence[ChatMessage], params: CompletionParams
    ) -> AsyncIterator[StreamChunk]:
        """Async generator of deltas; closing it must release the transport."""
        ...
