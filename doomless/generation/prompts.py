"""
LLM prompts for fact, quiz, and preference generation.

Small on-device models tend to leak reasoning and numbering into their
output, so every system prompt repeats the output constraints.
"""
from __future__ import annotations

from doomless.models import CompletionMessage, CompletionOptions

# =============================================================================
# Fact Extraction
# =============================================================================

FACT_SYSTEM_PROMPT = (
    "You are an assistant that extracts short, standalone facts from text. "
    "Respond ONLY with the final facts, one per line. Do NOT include <think> tags, "
    "internal thoughts, or explanations. No numbering, no extra commentary."
)

FACT_PROMPT_TEMPLATE = """You extract concise, standalone facts from text.

Rules:
- Only output the final facts.
- Each fact MUST be on its own line.
- Each fact MUST be {max_length} characters or less.
- Do NOT include any <think> tags or internal thoughts.
- Do NOT explain your reasoning.
- Do NOT add introductions or conclusions.
- Do NOT number the facts (no "1.", "2.", "-", etc.).
- Just output one fact per line.

Text:
{chunk}

Facts:"""

FACT_OPTIONS = CompletionOptions(
    temperature=0.45,
    max_tokens=256,
    stop_sequences=["\n\n\n"],
)

# =============================================================================
# Related Facts
# =============================================================================

RELATED_SYSTEM_PROMPT = (
    "You generate related standalone facts. "
    "Respond ONLY with the final facts, each on its own line. "
    "Do NOT include <think> tags, internal reasoning, or commentary."
)

RELATED_PROMPT_TEMPLATE = """Based on this fact about {topic}:
"{fact}"

Generate {count} related, interesting facts about {topic}. Each fact should be {max_length} characters or less. Format each fact on a new line.

Related facts:"""

RELATED_OPTIONS = CompletionOptions(temperature=0.7, max_tokens=512)

# =============================================================================
# Quiz Generation
# =============================================================================

QUIZ_SYSTEM_PROMPT = (
    "You generate multiple-choice quiz questions. "
    "Respond ONLY with the final JSON array described by the user. "
    "Do NOT include <think> tags, explanations, or commentary."
)

QUIZ_PROMPT_TEMPLATE = """You are creating quiz questions for the topic "{topic}". Use the numbered facts below to generate one multiple-choice question per fact. Each question must test understanding of the fact directly.

Facts:
{facts}

Return a JSON array where each element is of the form:
{{
  "question": "Question text?",
  "options": ["Option A", "Option B", "Option C", "Option D"],
  "correct_answer": 0
}}

Rules:
- Provide exactly {count} quiz objects in the same order as the facts above.
- Use double quotes around all keys and string values.
- Each options array must contain four concise answers (<80 characters).
- Set correct_answer to the zero-based index of the correct option.
- Reply with JSON only."""

QUIZ_OPTIONS = CompletionOptions(
    temperature=0.35,
    max_tokens=512,
    stop_sequences=["```"],
)

# =============================================================================
# Preference Analysis
# =============================================================================

PREFERENCE_SYSTEM_PROMPT = (
    "You analyze interaction summaries and return JSON. "
    "Respond ONLY with the final JSON payload. Do NOT include <think> tags, reasoning, or commentary."
)

PREFERENCE_PROMPT_TEMPLATE = """Based on the following user interactions, analyze their preferences:
- Right swipes (interested): {right}
- Left swipes (not interested): {left}
- Total interactions: {total}

Analyze the pattern and provide a JSON response with:
{{
  "preferred_topics": ["topic1", "topic2"],
  "disliked_topics": ["topic3"],
  "neutral_topics": ["topic4"],
  "overall_scores": {{"topic1": 0.8, "topic2": 0.6, "topic3": -0.5}}
}}

Only respond with valid JSON."""

PREFERENCE_OPTIONS = CompletionOptions(
    temperature=0.6,
    max_tokens=400,
    stop_sequences=["```"],
)


# =============================================================================
# Builders
# =============================================================================


def _messages(system: str, user: str) -> list[CompletionMessage]:
    return [
        CompletionMessage(role="system", content=system),
        CompletionMessage(role="user", content=user.strip()),
    ]


def build_fact_messages(chunk: str, max_length: int = 200) -> list[CompletionMessage]:
    return _messages(
        FACT_SYSTEM_PROMPT,
        FACT_PROMPT_TEMPLATE.format(chunk=chunk, max_length=max_length),
    )


def build_related_messages(
    topic: str,
    fact: str,
    count: int = 3,
    max_length: int = 200,
) -> list[CompletionMessage]:
    return _messages(
        RELATED_SYSTEM_PROMPT,
        RELATED_PROMPT_TEMPLATE.format(topic=topic, fact=fact, count=count, max_length=max_length),
    )


def build_quiz_messages(topic: str, fact_contents: list[str]) -> list[CompletionMessage]:
    """Number the facts 1..n and ask for one question per fact."""
    numbered = "\n".join(f"{index}. {content}" for index, content in enumerate(fact_contents, 1))
    return _messages(
        QUIZ_SYSTEM_PROMPT,
        QUIZ_PROMPT_TEMPLATE.format(topic=topic, facts=numbered, count=len(fact_contents)),
    )


def build_preference_messages(right: int, left: int, total: int) -> list[CompletionMessage]:
    return _messages(
        PREFERENCE_SYSTEM_PROMPT,
        PREFERENCE_PROMPT_TEMPLATE.format(right=right, left=left, total=total),
    )
