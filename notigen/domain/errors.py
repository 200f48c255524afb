"""Domain errors (typed) for the RAG engine.

Unified error family for the application layer, without infra leaks.
Adapters map third-party exceptions onto these with ``raise ... from ex``.
"""

from enum import Enum


class DomainError(Exception):
    """Base class for domain-specific errors."""


class ValidationError(DomainError):
    """Invalid input/domain state."""


class EmbeddingError(DomainError):
    """Embedding backend failed or is misconfigured."""


class VectorStoreError(DomainError):
    """Vector index backend failed or is misconfigured."""


class KeyValueStoreError(DomainError):
    """Key-value store operation failed."""


class DocumentNotFoundError(DomainError):
    """Requested template does not exist in the vector index."""


class ProviderError(DomainError):
    """Raw failure reported by a completion provider.

    ``status_code`` is the HTTP-ish status if the provider exposed one;
    the retry policy classifies on it before falling back to the message.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LLMErrorCode(str, Enum):
    RATE_LIMIT = "RATE_LIMIT"
    SERVER_ERROR = "SERVER_ERROR"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    UNKNOWN = "UNKNOWN"


class LLMError(DomainError):
    """LLM call failed permanently (fatal class or retries exhausted)."""

    def __init__(
        self,
        message: str,
        code: LLMErrorCode = LLMErrorCode.UNKNOWN,
        retryable: bool = False,
        attempts: int = 1,
    ) -> None:
        super().__init__(f"[{code.value}] {message}")
        self.message = message
        self.code = code
        self.retryable = retryable
        self.attempts = attempts


class ConversationNotFoundError(DomainError):
    """Conversation id is unknown or expired."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id
