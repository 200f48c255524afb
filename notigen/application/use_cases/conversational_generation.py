# notigen/application/use_cases/conversational_generation.py
from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import replace
from typing import Any

from notigen.application.dto.generation_dto import ConversationOptions
from notigen.application.services.conversation_memory import ConversationMemory
from notigen.application.use_cases.generate_notification import (
    GenerateNotification,
    error_code_for,
)
from notigen.domain.errors import ConversationNotFoundError
from notigen.domain.models import (
    ConversationHistory,
    ConversationInfo,
    ConversationTurn,
    GenerationResult,
    StreamEvent,
    TurnSource,
)
from notigen.domain.services.prompting import build_contextual_query

logger = logging.getLogger(__name__)


class ConversationalGeneration:
    """
    Multi-turn generation: prior turns are folded into the query before
    retrieval, and each completed generation is appended as a new turn.
    Also the CRUD surface over conversations.
    """

    def __init__(self, generator: GenerateNotification, memory: ConversationMemory) -> None:
        self.generator = generator
        self.memory = memory

    async def start_conversation(
        self, user_id: str, title: str | None = None, tags: list[str] | None = None
    ) -> str:
        return await self.memory.create_conversation(user_id, title=title, tags=tags)

    async def generate_in_conversation(
        self,
        conversation_id: str,
        query: str,
        options: ConversationOptions | None = None,
    ) -> GenerationResult:
        opts = options or ConversationOptions()
        start = time.perf_counter()
        contextual_query, history_turns = await self._contextual_query(
            conversation_id, query, opts
        )

        result = await self.generator.generate(contextual_query, opts.generation)

        updated = await self.memory.add_turn(
            conversation_id,
            ConversationTurn(
                user_query=query,
                assistant_response=result.content,
                sources=tuple(
                    TurnSource(id=s.id, channel=s.channel, category=s.category, score=s.score)
                    for s in result.sources
                ),
                tokens_used=result.metadata.tokens_used,
                metadata={
                    "retrieved_count": result.metadata.retrieved_count,
                    "generation_time_ms": result.metadata.generation_time_ms,
                    "model": result.metadata.model,
                },
            ),
        )
        total_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Conversation %s turn %d complete in %.0fms",
            conversation_id,
            updated.metadata.total_turns,
            total_ms,
        )
        return replace(
            result,
            conversation=ConversationInfo(
                conversation_id=conversation_id,
                turn_number=updated.metadata.total_turns,
                total_turns=len(updated.turns),
                history_included=history_turns > 0,
                history_turns=history_turns,
                total_time_ms=total_ms,
            ),
        )

    async def generate_in_conversation_stream(
        self,
        conversation_id: str,
        query: str,
        options: ConversationOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream variant: a ``conversation`` event, then the generation events.

        The turn is appended before ``complete`` is passed on, so ``complete``
        is only seen once the turn is stored. Any failure, including an
        unknown conversation or a storage error, ends the stream with one
        ``error`` event and is re-raised. A failed or abandoned stream leaves
        the conversation untouched.
        """
        opts = options or ConversationOptions()
        error_emitted = False
        try:
            contextual_query, history_turns = await self._contextual_query(
                conversation_id, query, opts
            )
            yield StreamEvent(
                "conversation",
                {"conversation_id": conversation_id, "history_turns": history_turns},
            )

            parts: list[str] = []
            complete: dict[str, Any] | None = None
            async with aclosing(
                self.generator.generate_stream(contextual_query, opts.generation)
            ) as events:
                async for event in events:
                    if event.type == "complete":
                        complete = dict(event.data)
                        continue
                    if event.type == "content":
                        parts.append(event.data["chunk"])
                    elif event.type == "error":
                        error_emitted = True
                    yield event

            if complete is not None:
                updated = await self.memory.add_turn(
                    conversation_id,
                    ConversationTurn(
                        user_query=query,
                        assistant_response="".join(parts),
                        sources=tuple(
                            TurnSource(
                                id=s["id"],
                                channel=s["channel"],
                                category=s["category"],
                                score=s["score"],
                            )
                            for s in complete.get("sources", [])
                        ),
                        tokens_used=int(complete.get("tokens_used", 0)),
                        metadata={
                            "generation_time_ms": complete["timings"]["generation_ms"],
                        },
                    ),
                )
                complete["turn_number"] = updated.metadata.total_turns
                yield StreamEvent("complete", complete)
        except Exception as ex:
            if not error_emitted:
                logger.warning("Conversation stream %s failed: %s", conversation_id, ex)
                yield StreamEvent("error", {"message": str(ex), "code": error_code_for(ex)})
            raise

    async def get_conversation(self, conversation_id: str) -> ConversationHistory | None:
        return await self.memory.get_conversation(conversation_id)

    async def list_conversations(self, user_id: str) -> list[ConversationHistory]:
        return await self.memory.list_conversations(user_id)

    async def delete_conversation(self, conversation_id: str) -> bool:
        return await self.memory.delete_conversation(conversation_id)

    async def clear_user_conversations(self, user_id: str) -> int:
        return await self.memory.clear_user_conversations(user_id)

    def get_health(self) -> dict[str, object]:
        return self.memory.get_health()

    async def _contextual_query(
        self, conversation_id: str, query: str, opts: ConversationOptions
    ) -> tuple[str, int]:
        conversation = await self.memory.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        if not opts.include_history or not conversation.turns:
            return query, 0
        history = await self.memory.get_recent_context(conversation_id, opts.max_history_turns)
        turns = min(opts.max_history_turns, len(conversation.turns))
        return build_contextual_query(history, query), turns
