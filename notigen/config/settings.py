"""Application settings with environment-driven configuration.

The only place environment variables are read; every other layer receives
values through the composition root.
"""

import os
from dataclasses import dataclass, field


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from environment variables.

    Backend switches:
    - kv_backend: "redis" | "memory" (process-local map)
    - vector_backend: "qdrant" | "memory"
    - embedding_backend: "openai" | "sentence-transformers"
    - score_normalization: "minmax" (per result set) | "fixed" (cosine range)
    """

    # ===== Key-value store =====
    kv_backend: str = field(default_factory=lambda: os.getenv("KV_BACKEND", "memory").lower())
    redis_url: str = field(
        default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379/0")
    )
    redis_retry_after_s: float = field(
        default_factory=lambda: float(os.getenv("REDIS_RETRY_AFTER_S", "30"))
    )

    # ===== Vector index =====
    vector_backend: str = field(
        default_factory=lambda: os.getenv("VECTOR_BACKEND", "memory").lower()
    )
    qdrant_url: str = field(
        default_factory=lambda: os.getenv("QDRANT_URL", "http://localhost:6333")
    )
    qdrant_api_key: str = field(default_factory=lambda: os.getenv("QDRANT_API_KEY", ""))
    qdrant_timeout_s: int = field(default_factory=lambda: int(os.getenv("QDRANT_TIMEOUT_S", "30")))
    collection: str = field(
        default_factory=lambda: os.getenv("VECTOR_COLLECTION", "notification_templates")
    )

    # ===== Embeddings =====
    embedding_backend: str = field(
        default_factory=lambda: os.getenv("EMBEDDING_BACKEND", "openai").lower()
    )
    embedding_model: str = field(
        default_factory=lambda: os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    )
    embedding_dimensions: int = field(
        default_factory=lambda: int(os.getenv("EMBEDDING_DIMENSIONS", "512"))
    )
    embedding_batch_size: int = field(
        default_factory=lambda: int(os.getenv("EMBEDDING_BATCH_SIZE", "100"))
    )
    embedding_device: str = field(default_factory=lambda: os.getenv("EMBEDDING_DEVICE", "cpu"))

    # ===== LLM =====
    llm_base_url: str = field(default_factory=lambda: os.getenv("LLM_BASE_URL", ""))
    llm_api_key: str = field(default_factory=lambda: os.getenv("LLM_API_KEY", "EMPTY"))
    llm_model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o-mini"))
    llm_timeout_s: float = field(
        default_factory=lambda: float(os.getenv("LLM_TIMEOUT_S", "60"))
    )
    llm_max_retries: int = field(default_factory=lambda: int(os.getenv("LLM_MAX_RETRIES", "3")))
    llm_retry_base_delay_s: float = field(
        default_factory=lambda: float(os.getenv("LLM_RETRY_BASE_DELAY_S", "1.0"))
    )
    llm_price_input_per_m: float = field(
        default_factory=lambda: float(os.getenv("LLM_PRICE_INPUT_PER_M", "3.0"))
    )
    llm_price_output_per_m: float = field(
        default_factory=lambda: float(os.getenv("LLM_PRICE_OUTPUT_PER_M", "15.0"))
    )

    # ===== Caches =====
    response_cache_enabled: bool = field(
        default_factory=lambda: _flag("RESPONSE_CACHE_ENABLED", "true")
    )
    response_cache_ttl_s: int = field(
        default_factory=lambda: int(os.getenv("RESPONSE_CACHE_TTL_S", "86400"))
    )
    retrieval_cache_ttl_s: int = field(
        default_factory=lambda: int(os.getenv("RETRIEVAL_CACHE_TTL_S", "3600"))
    )
    retrieval_cache_max_results: int = field(
        default_factory=lambda: int(os.getenv("RETRIEVAL_CACHE_MAX_RESULTS", "50"))
    )
    score_normalization: str = field(
        default_factory=lambda: os.getenv("RETRIEVAL_SCORE_NORMALIZATION", "minmax").lower()
    )

    # ===== Conversations =====
    conversation_ttl_s: int = field(
        default_factory=lambda: int(os.getenv("CONVERSATION_TTL_S", "3600"))
    )
    conversation_max_turns: int = field(
        default_factory=lambda: int(os.getenv("CONVERSATION_MAX_TURNS", "20"))
    )
    conversation_max_tokens: int = field(
        default_factory=lambda: int(os.getenv("CONVERSATION_MAX_TOKENS", "8000"))
    )

    # ===== Observability =====
    telemetry_enabled: bool = field(default_factory=lambda: _flag("TELEMETRY_ENABLED", "false"))
    otlp_endpoint: str = field(default_factory=lambda: os.getenv("OTLP_ENDPOINT", ""))
    telemetry_environment: str = field(
        default_factory=lambda: os.getenv("TELEMETRY_ENVIRONMENT", "production")
    )
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
