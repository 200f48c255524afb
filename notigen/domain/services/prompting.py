# notigen/domain/services/prompting.py
# Prompt/transcript formatting. Pure string building, no I/O.
from __future__ import annotations

from collections.abc import Sequence

from notigen.domain.models import ConversationTurn, SearchResult

DEFAULT_ASSEMBLY_SYSTEM_PROMPT = (
    "You are a helpful notification generation assistant. Use the provided template "
    "examples to generate a notification that matches the user's requirements."
)

DEFAULT_GENERATION_SYSTEM_PROMPT = """You are an expert notification writer. Your task is to generate high-quality, personalized notifications based on the provided template examples.

Guidelines:
1. Match the tone and style of the example templates
2. Keep content concise and clear
3. Include personalization variables ({{variable_name}})
4. Follow channel-specific best practices (email: subject + body, SMS: <160 chars, push: title + body)
5. Include clear call-to-action when appropriate
6. Use professional language appropriate for the notification type

Output ONLY the notification content, without explanations or meta-commentary."""

FOLLOW_UP_NOTE = (
    "Note: Consider the conversation history when generating the response. If the current "
    "request is a follow-up question, use context from previous turns."
)


def format_template_example(index: int, result: SearchResult) -> list[str]:
    p = result.payload
    lines = [
        f"## Template {index} (Score: {result.score:.2f})",
        f"**Channel:** {p.channel}",
        f"**Category:** {p.category}",
        f"**Tone:** {p.tone}",
        f"**Language:** {p.language}",
    ]
    if p.tags:
        lines.append(f"**Tags:** {', '.join(p.tags)}")
    lines.extend(["**Content:**", p.content, "", "---", ""])
    return lines


def build_context_prompt(
    results: Sequence[SearchResult],
    user_query: str,
    system_prompt: str | None = None,
) -> str:
    """System instruction, then "Template Examples" (if any), then "User Request"."""
    parts: list[str] = [system_prompt or DEFAULT_ASSEMBLY_SYSTEM_PROMPT, ""]
    if results:
        parts.extend(
            [
                "# Template Examples",
                "",
                "Here are some relevant notification templates to guide your response:",
                "",
            ]
        )
        for i, r in enumerate(results, start=1):
            parts.extend(format_template_example(i, r))
    parts.extend(["# User Request", "", user_query])
    return "\n".join(parts)


def format_transcript(turns: Sequence[ConversationTurn], first_turn_number: int = 1) -> str:
    """Render turns as "## Turn k" / "**User:**" / "**Assistant:**" blocks."""
    blocks: list[str] = []
    for offset, turn in enumerate(turns):
        lines = [f"## Turn {first_turn_number + offset}", "", "**User:**", turn.user_query, ""]
        if turn.assistant_response:
            lines.extend(["**Assistant:**", turn.assistant_response, ""])
        blocks.append("\n".join(lines))
    return "\n".join(blocks)


def build_contextual_query(history: str, query: str) -> str:
    if not history:
        return query
    return "\n".join(
        [
            "# Conversation History",
            "",
            history,
            "---",
            "",
            "# Current Request",
            "",
            query,
            "",
            FOLLOW_UP_NOTE,
        ]
    )


def make_excerpt(content: str, limit: int = 200) -> str:
    if len(content) <= limit:
        return content
    return content[: limit - 3] + "..."
