from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from importlib import import_module
from typing import Any, cast

from notigen.application.ports.llm_port import (
    ChatMessage,
    CompletionParams,
    CompletionResponse,
    StreamChunk,
    TextCompletionPort,
)
from notigen.domain.errors import ProviderError
from notigen.domain.models import TokenUsage


def _provider_error(ex: Exception) -> ProviderError:
    """Keep the HTTP status (if any) so the retry policy can classify it."""
    status = getattr(ex, "status_code", None)
    return ProviderError(str(ex), status_code=status if isinstance(status, int) else None)


def _usage(raw: Any) -> TokenUsage:
    if raw is None:
        return TokenUsage()
    return TokenUsage(
        input_tokens=int(getattr(raw, "prompt_tokens", 0) or 0),
        output_tokens=int(getattr(raw, "completion_tokens", 0) or 0),
    )


@dataclass
class OpenAICompletionAdapter(TextCompletionPort):
    """Chat completions over any OpenAI-compatible endpoint (OpenAI, vLLM, ...)."""

    base_url: str | None = None  # None -> api.openai.com
    api_key: str = "EMPTY"
    model: str = "gpt-4o-mini"
    timeout_s: float = 60.0
    client: Any | None = field(default=None, repr=False)

    def _ensure_client(self) -> Any:
        # Deferred import keeps openai optional for tests
        if self.client is None:
            module = import_module("openai")
            self.client = module.AsyncOpenAI(
                base_url=self.base_url,
                api_key=self.api_key,
                timeout=self.timeout_s,
                max_retries=0,  # retries belong to LLMInvoker
            )
        return self.client

    @staticmethod
    def _payload(messages: Sequence[ChatMessage]) -> Any:
        return cast(Any, [{"role": m.role, "content": m.content} for m in messages])

    async def complete(
        self, messages: Sequence[ChatMessage], params: CompletionParams
    ) -> CompletionResponse:
        try:
            client = self._ensure_client()
            resp: Any = await client.chat.completions.create(
                model=self.model,
                messages=self._payload(messages),
                temperature=params.temperature,
                max_tokens=params.max_tokens,
                top_p=params.top_p,
            )
        except Exception as ex:  # noqa: BLE001
            raise _provider_error(ex) from ex
        choice = resp.choices[0]
        return CompletionResponse(
            content=choice.message.content or "",
            usage=_usage(resp.usage),
            finish_reason=choice.finish_reason or "stop",
            model=resp.model or self.model,
        )

    async def stream(
        self, messages: Sequence[ChatMessage], params: CompletionParams
    ) -> AsyncIterator[StreamChunk]:
        try:
            client = self._ensure_client()
            stream: Any = await client.chat.completions.create(
                model=self.model,
                messages=self._payload(messages),
                temperature=params.temperature,
                max_tokens=params.max_tokens,
                top_p=params.top_p,
                stream=True,
                stream_options={"include_usage": True},
            )
        except Exception as ex:  # noqa: BLE001
            raise _provider_error(ex) from ex

        try:
            async for chunk in stream:
                content = ""
                if chunk.choices:
                    content = chunk.choices[0].delta.content or ""
                usage = _usage(chunk.usage) if getattr(chunk, "usage", None) else None
                if content or usage is not None:
                    yield StreamChunk(content=content, usage=usage)
        except Exception as ex:  # noqa: BLE001
            raise _provider_error(ex) from ex
        finally:
            await stream.close()
