# notigen/domain/models.py
# Domain models must be pure (no I/O, no external libs)
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SearchFilter:
    """Facet filter applied by the vector index (exact match, tags match any)."""

    channel: str | None = None
    category: str | None = None
    tone: str | None = None
    language: str | None = None
    tags: tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not self.to_dict()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key in ("channel", "category", "tone", "language"):
            value = getattr(self, key)
            if value:
                out[key] = value
        if self.tags:
            out["tags"] = list(self.tags)
        return out

    def matches(self, payload: TemplatePayload) -> bool:
        for key in ("channel", "category", "tone", "language"):
            wanted = getattr(self, key)
            if wanted and getattr(payload, key) != wanted:
                return False
        if self.tags and not set(self.tags) & set(payload.tags):
            return False
        return True


@dataclass(frozen=True)
class TemplatePayload:
    """Content and facet metadata of one exemplar notification template."""

    template_id: str
    content: str
    channel: str = ""
    category: str = ""
    tone: str = ""
    language: str = ""
    tags: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "template_id": self.template_id,
            "content": self.content,
            "channel": self.channel,
            "category": self.category,
            "tone": self.tone,
            "language": self.language,
            "tags": list(self.tags),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TemplatePayload:
        return cls(
            template_id=str(data.get("template_id", "")),
            content=str(data.get("content", "")),
            channel=str(data.get("channel") or ""),
            category=str(data.get("category") or ""),
            tone=str(data.get("tone") or ""),
            language=str(data.get("language") or ""),
            tags=tuple(data.get("tags") or ()),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class SearchResult:
    """One scored hit. ``score`` is normalized per result set, not across queries."""

    id: str
    score: float
    payload: TemplatePayload

    def rescored(self, score: float, **metadata: Any) -> SearchResult:
        """Copy with a new score; extra keyword args are merged into payload metadata."""
        payload = self.payload
        if metadata:
            payload = replace(payload, metadata={**payload.metadata, **metadata})
        return replace(self, score=score, payload=payload)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "score": self.score, "payload": self.payload.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SearchResult:
        return cls(
            id=str(data["id"]),
            score=float(data["score"]),
            payload=TemplatePayload.from_dict(data.get("payload") or {}),
        )


@dataclass(frozen=True)
class SearchMetadata:
    query: str
    total_results: int
    search_time_ms: float
    cached: bool
    top_k: int
    score_threshold: float
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchResponse:
    results: list[SearchResult]
    metadata: SearchMetadata


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmbeddingVector:
    text_hash: str
    model: str
    dimensions: int
    values: tuple[float, ...]
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "text_hash": self.text_hash,
            "model": self.model,
            "dimensions": self.dimensions,
            "values": list(self.values),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], cached: bool = False) -> EmbeddingVector:
        values = tuple(float(v) for v in data["values"])
        return cls(
            text_hash=str(data["text_hash"]),
            model=str(data["model"]),
            dimensions=int(data.get("dimensions", len(values))),
            values=values,
            cached=cached,
        )


@dataclass(frozen=True)
class BatchEmbeddingResult:
    embeddings: list[EmbeddingVector]
    cache_hits: int
    cache_misses: int
    processing_time_ms: float


# ---------------------------------------------------------------------------
# Context assembly
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssemblyMetadata:
    total_results: int
    relevant_results: int
    deduplicated_results: int
    selected_results: int
    total_tokens: int
    max_tokens: int
    utilization_percent: float
    assembly_time_ms: float
    compressed: bool


@dataclass(frozen=True)
class AssembledContext:
    prompt: str
    selected_results: list[SearchResult]
    metadata: AssemblyMetadata


@dataclass(frozen=True)
class ContextCoverage:
    channels: int
    categories: int
    tones: int
    languages: int
    unique_tags: int
    total_templates: int


# ---------------------------------------------------------------------------
# LLM invocation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TokenUsage:
        return cls(
            input_tokens=int(data.get("input_tokens", 0)),
            output_tokens=int(data.get("output_tokens", 0)),
        )


@dataclass(frozen=True)
class ClassifiedError:
    """A provider failure after classification by the retry policy."""

    code: str
    message: str
    retryable: bool
    attempt: int


@dataclass(frozen=True)
class CompletionResult:
    content: str
    usage: TokenUsage
    cost: float
    model: str
    finish_reason: str
    latency_ms: float
    retry_count: int = 0
    errors: tuple[ClassifiedError, ...] = ()


@dataclass(frozen=True)
class CachedResponse:
    key: str
    prompt: str
    response: str
    usage: TokenUsage
    cost: float
    model: str
    latency_ms: float
    cached_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "prompt": self.prompt,
            "response": self.response,
            "usage": self.usage.to_dict(),
            "cost": self.cost,
            "model": self.model,
            "latency_ms": self.latency_ms,
            "cached_at": self.cached_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CachedResponse:
        return cls(
            key=str(data.get("key", "")),
            prompt=str(data.get("prompt", "")),
            response=str(data["response"]),
            usage=TokenUsage.from_dict(data.get("usage") or {}),
            cost=float(data.get("cost", 0.0)),
            model=str(data.get("model", "")),
            latency_ms=float(data.get("latency_ms", 0.0)),
            cached_at=str(data.get("cached_at", "")),
        )


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TurnSource:
    id: str
    channel: str
    category: str
    score: float


@dataclass(frozen=True)
class ConversationTurn:
    """One user query / assistant response pair. Never mutated after append."""

    user_query: str
    assistant_response: str | None = None
    sources: tuple[TurnSource, ...] = ()
    tokens_used: int = 0
    timestamp: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_query": self.user_query,
            "assistant_response": self.assistant_response,
            "sources": [vars(s).copy() for s in self.sources],
            "tokens_used": self.tokens_used,
            "timestamp": self.timestamp,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ConversationTurn:
        return cls(
            user_query=str(data["user_query"]),
            assistant_response=data.get("assistant_response"),
            sources=tuple(
                TurnSource(
                    id=str(s["id"]),
                    channel=str(s.get("channel", "")),
                    category=str(s.get("category", "")),
                    score=float(s.get("score", 0.0)),
                )
                for s in data.get("sources") or ()
            ),
            tokens_used=int(data.get("tokens_used", 0)),
            timestamp=str(data.get("timestamp", "")),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class ConversationMetadata:
    created_at: str
    last_activity_at: str
    total_turns: int = 0
    title: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass
class ConversationHistory:
    """Aggregate owned by ConversationMemory; mutated only by append + prune."""

    conversation_id: str
    user_id: str
    turns: list[ConversationTurn]
    total_tokens: int
    metadata: ConversationMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "user_id": self.user_id,
            "turns": [t.to_dict() for t in self.turns],
            "total_tokens": self.total_tokens,
            "metadata": {
                "created_at": self.metadata.created_at,
                "last_activity_at": self.metadata.last_activity_at,
                "total_turns": self.metadata.total_turns,
                "title": self.metadata.title,
                "tags": list(self.metadata.tags),
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ConversationHistory:
        meta = data.get("metadata") or {}
        return cls(
            conversation_id=str(data["conversation_id"]),
            user_id=str(data["user_id"]),
            turns=[ConversationTurn.from_dict(t) for t in data.get("turns") or ()],
            total_tokens=int(data.get("total_tokens", 0)),
            metadata=ConversationMetadata(
                created_at=str(meta.get("created_at", "")),
                last_activity_at=str(meta.get("last_activity_at", "")),
                total_turns=int(meta.get("total_turns", 0)),
                title=meta.get("title"),
                tags=list(meta.get("tags") or ()),
            ),
        )


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceCitation:
    id: str
    channel: str
    category: str
    score: float
    rank: int  # 1-based position in the assembled context
    excerpt: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "channel": self.channel,
            "category": self.category,
            "score": self.score,
            "rank": self.rank,
            "excerpt": self.excerpt,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class GenerationMetadata:
    total_time_ms: float
    retrieval_time_ms: float
    assembly_time_ms: float
    generation_time_ms: float
    retrieved_count: int
    context_count: int
    tokens_used: int
    input_tokens: int
    output_tokens: int
    cost: float
    context_tokens: int
    context_utilization: float
    model: str
    temperature: float
    top_k: int
    score_threshold: float
    cached: bool = False
    retry_count: int = 0
    prompt: str = ""


@dataclass(frozen=True)
class ConversationInfo:
    conversation_id: str
    turn_number: int
    total_turns: int
    history_included: bool
    history_turns: int
    total_time_ms: float


@dataclass(frozen=True)
class GenerationResult:
    content: str
    sources: list[SourceCitation]
    metadata: GenerationMetadata
    conversation: ConversationInfo | None = None


STREAM_EVENT_TYPES = (
    "conversation",
    "retrieval",
    "assembly",
    "content",
    "sources",
    "complete",
    "error",
)


@dataclass(frozen=True)
class StreamEvent:
    type: str
    data: Mapping[str, Any]

    def __post_init__(self) -> None:
        if self.type not in STREAM_EVENT_TYPES:
            raise ValueError(f"unknown stream event type: {self.type}")


def sources_to_dicts(sources: Sequence[SourceCitation]) -> list[dict[str, Any]]:
    return [s.to_dict() for s in sources]
