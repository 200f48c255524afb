"""Conversation history pruning (pure).

Two bounds: a turn cap and a token cap. Once either is exceeded, oldest
turns go first until the turn cap holds, then more oldest turns go until
the running total is at most half the token cap or one turn is left.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from notigen.domain.models import ConversationTurn


@dataclass(frozen=True)
class PruneOutcome:
    turns: list[ConversationTurn]
    total_tokens: int
    dropped: int


def needs_pruning(turn_count: int, total_tokens: int, max_turns: int, max_tokens: int) -> bool:
    return turn_count > max_turns or total_tokens > max_tokens


def prune_history(
    turns: Sequence[ConversationTurn],
    max_turns: int = 20,
    max_tokens: int = 8000,
    target_ratio: float = 0.5,
) -> PruneOutcome:
    kept = list(turns)
    total = sum(t.tokens_used for t in kept)
    if not needs_pruning(len(kept), total, max_turns, max_tokens):
        return PruneOutcome(turns=kept, total_tokens=total, dropped=0)

    start = 0
    while len(kept) - start > max_turns:
        total -= kept[start].tokens_used
        start += 1
    target = max_tokens * target_ratio
    while total > target and len(kept) - start > 1:
        total -= kept[start].tokens_used
        start += 1
    return PruneOutcome(turns=kept[start:], total_tokens=total, dropped=start)
