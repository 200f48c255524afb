# notigen/application/dto/generation_dto.py
from __future__ import annotations

from dataclasses import dataclass, field

from notigen.domain.models import SearchFilter


@dataclass(frozen=True)
class SearchQuery:
    """
    DTO for one retrieval request.

    - query_text: natural-language query (non-empty)
    - top_k: maximum number of results
    - score_threshold: minimum raw similarity passed to the vector index
    - filter: optional facet filter (channel/category/tone/language/tags)
    """

    query_text: str
    top_k: int = 10
    score_threshold: float = 0.7
    filter: SearchFilter | None = None


@dataclass(frozen=True)
class AssemblyOptions:
    max_tokens: int = 8000
    max_prompt_tokens: int = 1000
    max_completion_tokens: int = 1000
    min_score: float = 0.5
    diversity_weight: float = 0.3
    similarity_threshold: float = 0.95
    tokens_per_char: float = 0.25
    system_prompt: str | None = None


@dataclass(frozen=True)
class GenerationOptions:
    """
    DTO for ``generate`` / ``generate_stream``.

    Retrieval, assembly and sampling knobs in one place; ``use_cache`` gates
    the response cache for this call only.
    """

    top_k: int = 5
    score_threshold: float = 0.65
    filter: SearchFilter | None = None
    max_context_tokens: int = 4000
    min_relevance_score: float = 0.5
    diversity_weight: float = 0.3
    temperature: float = 0.4
    max_output_tokens: int = 500
    top_p: float = 0.9
    system_prompt: str | None = None
    use_cache: bool = True


@dataclass(frozen=True)
class ConversationOptions:
    include_history: bool = True
    max_history_turns: int = 3
    generation: GenerationOptions = field(default_factory=GenerationOptions)
