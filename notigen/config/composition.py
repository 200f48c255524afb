"""Composition root: chooses adapters from AppSettings and wires the engine.

Backend selection happens here at construction time; nothing downstream
inspects which concrete adapter it received.
"""

from dataclasses import dataclass

from notigen.application.dto.generation_dto import AssemblyOptions
from notigen.application.ports.clock_port import ClockPort
from notigen.application.ports.embedding_port import EmbeddingProviderPort
from notigen.application.ports.kv_store_port import KeyValueStorePort
from notigen.application.ports.llm_port import TextCompletionPort
from notigen.application.ports.telemetry_port import TelemetryPort
from notigen.application.ports.vector_index_port import VectorIndexPort
from notigen.application.services.context_assembler import ContextAssembler
from notigen.application.services.conversation_memory import ConversationMemory
from notigen.application.services.embedding_cache import EmbeddingCache
from notigen.application.services.llm_invoker import LLMInvoker
from notigen.application.services.response_cache import ResponseCache
from notigen.application.services.retrieval_engine import RetrievalEngine
from notigen.application.use_cases.conversational_generation import ConversationalGeneration
from notigen.application.use_cases.generate_notification import GenerateNotification
from notigen.config.settings import AppSettings
from notigen.domain.errors import ValidationError
from notigen.infrastructure.embeddings.openai_embedding_adapter import OpenAIEmbeddingAdapter
from notigen.infrastructure.embeddings.sentence_transformers_adapter import (
    SentenceTransformersEmbeddingAdapter,
)
from notigen.infrastructure.kvstore.in_memory_kv_store import InMemoryKeyValueStore
from notigen.infrastructure.kvstore.redis_kv_store import RedisConfig, RedisKeyValueStore
from notigen.infrastructure.llm.openai_completion_adapter import OpenAICompletionAdapter
from notigen.infrastructure.telemetry.otel_adapter import OpenTelemetryAdapter, OtelConfig
from notigen.infrastructure.time.system_clock import SystemClock
from notigen.infrastructure.vectorstore.in_memory_vector_index import InMemoryVectorIndex
from notigen.infrastructure.vectorstore.qdrant_vector_index import QdrantConfig, QdrantVectorIndex


def build_kv_store(settings: AppSettings) -> KeyValueStorePort:
    if settings.kv_backend == "redis":
        return RedisKeyValueStore(
            RedisConfig(url=settings.redis_url, retry_after_s=settings.redis_retry_after_s)
        )
    if settings.kv_backend == "memory":
        return InMemoryKeyValueStore()
    raise ValidationError(f"unknown KV_BACKEND: {settings.kv_backend}")


def build_vector_index(settings: AppSettings) -> VectorIndexPort:
    if settings.vector_backend == "qdrant":
        return QdrantVectorIndex(
            QdrantConfig(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key or None,
                collection=settings.collection,
                timeout_s=settings.qdrant_timeout_s,
            )
        )
    if settings.vector_backend == "memory":
        return InMemoryVectorIndex()
    raise ValidationError(f"unknown VECTOR_BACKEND: {settings.vector_backend}")


def build_embedding_provider(settings: AppSettings) -> EmbeddingProviderPort:
    if settings.embedding_backend == "sentence-transformers":
        return SentenceTransformersEmbeddingAdapter(
            model=settings.embedding_model, device=settings.embedding_device
        )
    if settings.embedding_backend == "openai":
        return OpenAIEmbeddingAdapter(
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url or None,
        )
    raise ValidationError(f"unknown EMBEDDING_BACKEND: {settings.embedding_backend}")


def build_completion_provider(settings: AppSettings) -> TextCompletionPort:
    return OpenAICompletionAdapter(
        base_url=settings.llm_base_url or None,
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        timeout_s=settings.llm_timeout_s,
    )


def build_clock() -> ClockPort:
    """Real UTC clock; tests inject their own ClockPort."""
    return SystemClock()


def build_telemetry(settings: AppSettings) -> TelemetryPort | None:
    """OpenTelemetry adapter when enabled, otherwise None (the orchestrator skips it)."""
    if not settings.telemetry_enabled:
        return None
    return OpenTelemetryAdapter(
        OtelConfig(
            otlp_endpoint=settings.otlp_endpoint or None,
            environment=settings.telemetry_environment,
        )
    )


def build_llm_invoker(settings: AppSettings) -> LLMInvoker:
    return LLMInvoker(
        build_completion_provider(settings),
        max_retries=settings.llm_max_retries,
        base_delay_s=settings.llm_retry_base_delay_s,
        price_input_per_m=settings.llm_price_input_per_m,
        price_output_per_m=settings.llm_price_output_per_m,
    )


@dataclass
class Engine:
    """Wired engine sharing one key-value store across caches and memory."""

    store: KeyValueStorePort
    index: VectorIndexPort
    embeddings: EmbeddingCache
    retrieval: RetrievalEngine
    generator: GenerateNotification
    conversations: ConversationalGeneration


def build_engine(
    settings: AppSettings | None = None,
    *,
    store: KeyValueStorePort | None = None,
    index: VectorIndexPort | None = None,
    embedding_provider: EmbeddingProviderPort | None = None,
    llm: LLMInvoker | None = None,
    clock: ClockPort | None = None,
) -> Engine:
    """Build the full engine; any adapter can be overridden (tests, embedding apps)."""
    settings = settings if settings is not None else AppSettings()
    store = store if store is not None else build_kv_store(settings)
    index = index if index is not None else build_vector_index(settings)
    clock = clock if clock is not None else build_clock()

    if embedding_provider is None:
        embedding_provider = build_embedding_provider(settings)
    if llm is None:
        llm = build_llm_invoker(settings)

    embeddings = EmbeddingCache(
        embedding_provider,
        store,
        batch_size=settings.embedding_batch_size,
    )
    retrieval = RetrievalEngine(
        embeddings,
        index,
        store,
        cache_ttl_s=settings.retrieval_cache_ttl_s,
        max_cached_results=settings.retrieval_cache_max_results,
        normalization=settings.score_normalization,
    )
    response_cache = ResponseCache(
        store,
        clock,
        ttl_seconds=settings.response_cache_ttl_s,
        enabled=settings.response_cache_enabled,
    )
    generator = GenerateNotification(
        retrieval,
        ContextAssembler(AssemblyOptions()),
        llm,
        response_cache=response_cache,
        telemetry=build_telemetry(settings),
    )
    memory = ConversationMemory(
        store,
        clock,
        ttl_seconds=settings.conversation_ttl_s,
        max_turns=settings.conversation_max_turns,
        max_tokens=settings.conversation_max_tokens,
    )
    return Engine(
        store=store,
        index=index,
        embeddings=embeddings,
        retrieval=retrieval,
        generator=generator,
        conversations=ConversationalGeneration(generator, memory),
    )
