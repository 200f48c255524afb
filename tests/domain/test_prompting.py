"""Tests for prompt and transcript formatting."""

from notigen.domain.models import ConversationTurn, SearchResult, TemplatePayload
from notigen.domain.services.prompting import (
    DEFAULT_ASSEMBLY_SYSTEM_PROMPT,
    build_context_prompt,
    build_contextual_query,
    format_transcript,
    make_excerpt,
)


def test_prompt_without_results_has_no_examples_section():
    prompt = build_context_prompt([], "Order shipped email")
    assert prompt == f"{DEFAULT_ASSEMBLY_SYSTEM_PROMPT}\n\n# User Request\n\nOrder shipped email"
    assert "# Template Examples" not in prompt


def test_prompt_with_results_lists_templates_in_order():
    results = [
        SearchResult(
            id="t1",
            score=0.91,
            payload=TemplatePayload(
                template_id="t1",
                content="Your order {{order_id}} shipped.",
                channel="email",
                category="order",
                tone="friendly",
                language="en",
                tags=("shipping", "order"),
            ),
        ),
        SearchResult(id="t2", score=0.5, payload=TemplatePayload(template_id="t2", content="B")),
    ]
    prompt = build_context_prompt(results, "Order shipped", system_prompt="SYSTEM")
    assert prompt.startswith("SYSTEM\n\n# Template Examples\n")
    assert "## Template 1 (Score: 0.91)" in prompt
    assert "**Tags:** shipping, order" in prompt
    assert prompt.index("## Template 1") < prompt.index("## Template 2")
    assert prompt.index("## Template 2") < prompt.index("# User Request")
    assert prompt.endswith("# User Request\n\nOrder shipped")


def test_transcript_numbers_turns_from_offset():
    text = format_transcript(
        [
            ConversationTurn(user_query="first", assistant_response="answer"),
            ConversationTurn(user_query="second"),
        ],
        first_turn_number=4,
    )
    assert "## Turn 4" in text
    assert "## Turn 5" in text
    assert "**Assistant:**\nanswer" in text
    assert text.count("**Assistant:**") == 1


def test_contextual_query_without_history_is_the_query():
    assert build_contextual_query("", "Make it shorter") == "Make it shorter"


def test_contextual_query_wraps_history():
    q = build_contextual_query("## Turn 1\n\n**User:**\nhi\n", "Make it shorter")
    assert q.startswith("# Conversation History")
    assert "# Current Request\n\nMake it shorter" in q
    assert "follow-up" in q


def test_make_excerpt():
    assert make_excerpt("short") == "short"
    long = "x" * 250
    excerpt = make_excerpt(long)
    assert len(excerpt) == 200
    assert excerpt.endswith("...")
