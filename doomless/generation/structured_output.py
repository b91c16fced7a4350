"""
Tolerant parsing of near-JSON model output.

Small on-device models rarely emit clean JSON: keys come unquoted,
strings single-quoted, arrays end in trailing commas, and the payload is
wrapped in prose. The parser extracts the outermost bracketed span, builds
a list of candidates from the raw span to the most repaired variant, and
accepts the first candidate that parses into the expected shape.

Nothing here raises on bad input. "No usable output" is an empty list
(quiz batches) or None (preference analysis).
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Iterator, Literal

from loguru import logger
from pydantic import ValidationError

from doomless.models import PreferenceAnalysis, QuizQuestion

QUIZ_OPTION_COUNT = 4

ARRAY_SPAN_PATTERN = re.compile(r"\[[\s\S]*\]")
OBJECT_SPAN_PATTERN = re.compile(r"\{[\s\S]*\}")
BARE_KEY_PATTERN = re.compile(r"([{,]\s*)([A-Za-z0-9_]+)\s*:")
SINGLE_QUOTED_PATTERN = re.compile(r"'([^']*)'")
TRAILING_COMMA_PATTERN = re.compile(r",\s*([}\]])")


# =============================================================================
# Span Extraction & Repair
# =============================================================================


def extract_span(raw: str, kind: Literal["array", "object"]) -> str | None:
    """Greedy match from the first opening to the last closing bracket of a kind."""
    if not raw:
        return None
    pattern = ARRAY_SPAN_PATTERN if kind == "array" else OBJECT_SPAN_PATTERN
    match = pattern.search(raw)
    return match.group(0).strip() if match else None


def _double_quote(match: re.Match) -> str:
    value = match.group(1).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{value}"'


def repair_candidates(span: str) -> list[str]:
    """
    Build parse candidates, least repaired first.

    Repairs are cumulative: quote bare keys, then convert single-quoted
    strings, then drop trailing commas.
    """
    base = span.strip()
    quoted_keys = BARE_KEY_PATTERN.sub(r'\1"\2":', base)
    quoted_values = SINGLE_QUOTED_PATTERN.sub(_double_quote, quoted_keys)
    no_trailing = TRAILING_COMMA_PATTERN.sub(r"\1", quoted_values)

    candidates: list[str] = []
    for candidate in (base, quoted_keys, quoted_values, no_trailing):
        if candidate not in candidates:
            candidates.append(candidate)
    return candidates


def iter_parsed_candidates(span: str) -> Iterator[Any]:
    """Yield each candidate that strict JSON parsing accepts."""
    for candidate in repair_candidates(span):
        try:
            yield json.loads(candidate)
        except (ValueError, RecursionError):
            # JSONDecodeError, oversized int literals, or nesting too deep
            continue


# =============================================================================
# Quiz Batches
# =============================================================================


def _clamp_answer(value: Any, option_count: int) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, float):
        if not math.isfinite(value):
            return 0
        value = math.floor(value)
    if not isinstance(value, int):
        return 0
    # Compared as int; huge literals overflow float
    return max(0, min(option_count - 1, value))


def coerce_quiz_question(item: Any) -> QuizQuestion | None:
    """Validate one parsed item; None unless it has a question and exactly 4 options."""
    if not isinstance(item, dict):
        return None

    question = item.get("question")
    question = question.strip() if isinstance(question, str) else ""

    raw_options = item.get("options")
    options = []
    if isinstance(raw_options, list):
        options = [
            option.strip()
            for option in raw_options
            if isinstance(option, str) and option.strip()
        ]

    if not question or len(options) != QUIZ_OPTION_COUNT:
        return None

    return QuizQuestion(
        question=question,
        options=options,
        correct_answer=_clamp_answer(item.get("correct_answer"), len(options)),
    )


def parse_quiz_batch(raw: str, expected: int = 0) -> list[QuizQuestion]:
    """
    Parse a model response into quiz questions.

    The array span is tried first; a lone object span is accepted as a
    one-item batch. The first candidate yielding at least one valid
    question wins.

    Args:
        raw: Model response text
        expected: Maximum number of questions to return (0 = no cap)

    Returns:
        Valid questions, possibly empty
    """
    spans = [extract_span(raw, "array"), extract_span(raw, "object")]

    for span in spans:
        if span is None:
            continue
        for parsed in iter_parsed_candidates(span):
            if isinstance(parsed, dict):
                items = [parsed]
            elif isinstance(parsed, list):
                items = parsed
            else:
                continue

            questions = [q for q in (coerce_quiz_question(item) for item in items) if q]
            if questions:
                return questions[:expected] if expected > 0 else questions

    logger.debug("No usable quiz items in model response")
    return []


# =============================================================================
# Preference Analysis
# =============================================================================


def parse_preference_analysis(raw: str) -> PreferenceAnalysis | None:
    """Return the first candidate object matching the PreferenceAnalysis shape."""
    span = extract_span(raw, "object")
    if span is None:
        return None

    for parsed in iter_parsed_candidates(span):
        if not isinstance(parsed, dict):
            continue
        try:
            return PreferenceAnalysis.model_validate(parsed)
        except ValidationError as e:
            logger.debug(f"Preference candidate rejected: {e.error_count()} errors")

    return None
