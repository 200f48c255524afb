"""Application ports package.

Re-exports the capability interfaces the engine depends on.
"""

from notigen.application.ports.clock_port import ClockPort
from notigen.application.ports.embedding_port import EmbeddingProviderPort
from notigen.application.ports.kv_store_port import KeyValueStorePort
from notigen.application.ports.llm_port import (
    ChatMessage,
    CompletionParams,
    CompletionResponse,
    StreamChunk,
    TextCompletionPort,
)
from notigen.application.ports.telemetry_port import TelemetryPort
from notigen.application.ports.vector_index_port import SearchResult, VectorIndexPort

__all__ = [
    "ClockPort",
    "EmbeddingProviderPort",
    "KeyValueStorePort",
    "ChatMessage",
    "CompletionParams",
    "CompletionResponse",
    "StreamChunk",
    "TextCompletionPort",
    "TelemetryPort",
    "SearchResult",
    "VectorIndexPort",
]
