"""Multi-turn conversation history with TTL and bounded size.

Lifecycle: created -> active (N turns) -> pruned (over limit) ->
expired (TTL) | deleted (explicit). Unlike the caches, storage errors
propagate here: conversation state that silently vanishes is worse than a
failed request.
"""

from __future__ import annotations

import json
import logging
import secrets
from dataclasses import replace

from notigen.application.ports.clock_port import ClockPort
from notigen.application.ports.kv_store_port import KeyValueStorePort
from notigen.domain.errors import ConversationNotFoundError, ValidationError
from notigen.domain.models import ConversationHistory, ConversationMetadata, ConversationTurn
from notigen.domain.services.history import prune_history
from notigen.domain.services.prompting import format_transcript

logger = logging.getLogger(__name__)

CONVERSATION_PREFIX = "conversation:"


class ConversationMemory:
    def __init__(
        self,
        store: KeyValueStorePort,
        clock: ClockPort,
        ttl_seconds: int = 3600,
        max_turns: int = 20,
        max_tokens: int = 8000,
    ) -> None:
        self.store = store
        self.clock = clock
        self.ttl_seconds = ttl_seconds
        self.max_turns = max_turns
        self.max_tokens = max_tokens

    @staticmethod
    def _key(conversation_id: str) -> str:
        return f"{CONVERSATION_PREFIX}{conversation_id}"

    def _new_id(self) -> str:
        millis = int(self.clock.now().timestamp() * 1000)
        return f"conv_{millis}_{secrets.token_hex(4)}"

    async def create_conversation(
        self,
        user_id: str,
        title: str | None = None,
        tags: list[str] | None = None,
    ) -> str:
        if not user_id:
            raise ValidationError("user_id must not be empty")
        now = self.clock.now_iso()
        history = ConversationHistory(
            conversation_id=self._new_id(),
            user_id=user_id,
            turns=[],
            total_tokens=0,
            metadata=ConversationMetadata(
                created_at=now,
                last_activity_at=now,
                total_turns=0,
                title=title,
                tags=list(tags or []),
            ),
        )
        await self._save(history)
        logger.info("Conversation created: %s (user %s)", history.conversation_id, user_id)
        return history.conversation_id

    async def get_conversation(self, conversation_id: str) -> ConversationHistory | None:
        raw = (await self.store.get(self._key(conversation_id))).unwrap()
        if raw is None:
            return None
        return ConversationHistory.from_dict(json.loads(raw))

    async def add_turn(self, conversation_id: str, turn: ConversationTurn) -> ConversationHistory:
        """Append with a server timestamp, then prune to the turn/token bounds and save."""
        history = await self.get_conversation(conversation_id)
        if history is None:
            raise ConversationNotFoundError(conversation_id)

        now = self.clock.now_iso()
        history.turns.append(replace(turn, timestamp=now))
        history.total_tokens += turn.tokens_used
        history.metadata.last_activity_at = now
        history.metadata.total_turns += 1

        outcome = prune_history(history.turns, self.max_turns, self.max_tokens)
        if outcome.dropped:
            logger.debug(
                "Pruned %d turn(s) from %s: %d turns, %d tokens remain",
                outcome.dropped,
                conversation_id,
                len(outcome.turns),
                outcome.total_tokens,
            )
        history.turns = outcome.turns
        history.total_tokens = outcome.total_tokens

        await self._save(history)
        return history

    async def get_recent_context(self, conversation_id: str, max_turns: int = 3) -> str:
        history = await self.get_conversation(conversation_id)
        if history is None or not history.turns or max_turns <= 0:
            return ""
        recent = history.turns[-max_turns:]
        first = len(history.turns) - len(recent) + 1
        return format_transcript(recent, first_turn_number=first)

    async def list_conversations(self, user_id: str) -> list[ConversationHistory]:
        keys = (await self.store.keys(f"{CONVERSATION_PREFIX}*")).unwrap() or []
        found: list[ConversationHistory] = []
        for key in keys:
            raw = (await self.store.get(key)).unwrap()
            if raw is None:
                continue  # expired between keys() and get()
            history = ConversationHistory.from_dict(json.loads(raw))
            if history.user_id == user_id:
                found.append(history)
        found.sort(key=lambda h: h.metadata.last_activity_at, reverse=True)
        return found

    async def delete_conversation(self, conversation_id: str) -> bool:
        removed = (await self.store.delete(self._key(conversation_id))).unwrap() or 0
        if removed:
            logger.info("Conversation deleted: %s", conversation_id)
        return removed > 0

    async def clear_user_conversations(self, user_id: str) -> int:
        count = 0
        for history in await self.list_conversations(user_id):
            if await self.delete_conversation(history.conversation_id):
                count += 1
        logger.info("Cleared %d conversation(s) for user %s", count, user_id)
        return count

    def get_health(self) -> dict[str, object]:
        return {
            "storage": self.store.backend_name,
            "available": self.store.is_available(),
            "ttl_seconds": self.ttl_seconds,
            "max_turns": self.max_turns,
            "max_tokens": self.max_tokens,
        }

    async def _save(self, history: ConversationHistory) -> None:
        payload = json.dumps(history.to_dict())
        (await self.store.set(self._key(history.conversation_id), payload, self.ttl_seconds)).unwrap()
