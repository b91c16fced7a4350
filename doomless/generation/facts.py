"""
Fact extraction pipeline.

Turns imported document text into short standalone facts:

1. Trim input; empty text yields no facts and no events
2. Split into fixed-size chunks (chunk edges may cut sentences)
3. Ask the model for one fact per line, chunk by chunk, in order
4. Clean each line (numbering, bullets, length) and deduplicate

When the lifecycle is in heuristic mode, a deterministic sentence
splitter produces the facts instead, reported through the same
parse-start/chunk-start/chunk-complete/complete event sequence as a
single-chunk model run.
"""

from __future__ import annotations

import re
from datetime import datetime

from loguru import logger

from doomless.ai.lifecycle import LifecycleState, ModelLifecycle
from doomless.config import Settings, get_settings
from doomless.errors import CompletionFailedError, PipelineFatalError
from doomless.events import (
    ParseChunkCompleted,
    ParseChunkStarted,
    ParseCompleted,
    ParseFailed,
    ParseStarted,
    ProgressBus,
)
from doomless.generation.prompts import (
    FACT_OPTIONS,
    RELATED_OPTIONS,
    build_fact_messages,
    build_related_messages,
)
from doomless.models import DEFAULT_FACT_SOURCE, Fact, utc_now

NUMBERING_PATTERN = re.compile(r"^\d+\s*[.)\-:]\s*")
LINE_BULLET_PATTERN = re.compile(r"^[-•*]\s*")
SENTENCE_PATTERN = re.compile(r"[^.!?]+[.!?]?")
SENTENCE_BULLET_PATTERN = re.compile(r"^[*-]\s*")
WHITESPACE_PATTERN = re.compile(r"\s+")


# =============================================================================
# Text Helpers
# =============================================================================


def chunk_text(text: str, chunk_size: int) -> list[str]:
    """Partition text into consecutive slices of at most chunk_size characters."""
    size = max(chunk_size, 1)
    if len(text) <= size:
        return [text]
    return [text[start : start + size] for start in range(0, len(text), size)]


def clean_fact_line(line: str) -> str:
    """Strip numbering and bullet prefixes from one model output line."""
    line = NUMBERING_PATTERN.sub("", line.strip())
    line = LINE_BULLET_PATTERN.sub("", line)
    return line.strip()


def parse_fact_lines(response: str, max_length: int = 200) -> list[str]:
    """Split a model response into usable fact lines; over-length lines are dropped."""
    lines = []
    for raw_line in response.splitlines():
        line = clean_fact_line(raw_line)
        if 0 < len(line) <= max_length:
            lines.append(line)
    return lines


def split_sentences(text: str) -> list[str]:
    """
    Split text into sentences, keeping the terminating punctuation.

    Works line by line; leading "*" / "-" bullets are stripped and inner
    whitespace collapsed. A line with no sentence body is kept whole.
    """
    sentences: list[str] = []
    for raw_line in text.replace("\r\n", "\n").split("\n"):
        line = raw_line.strip()
        if not line:
            continue

        fragments = SENTENCE_PATTERN.findall(line)
        if not fragments:
            sentences.append(WHITESPACE_PATTERN.sub(" ", line))
            continue

        for fragment in fragments:
            cleaned = SENTENCE_BULLET_PATTERN.sub("", fragment)
            cleaned = WHITESPACE_PATTERN.sub(" ", cleaned).strip()
            if cleaned:
                sentences.append(cleaned)

    return sentences


class _FactCollector:
    """Accumulates facts for one run, dropping case-insensitive duplicates."""

    def __init__(self, topic: str, max_length: int, created_at: datetime):
        self.topic = topic
        self.max_length = max_length
        self.created_at = created_at
        self.facts: list[Fact] = []
        self._seen: set[str] = set()

    def add(self, content: str) -> bool:
        bounded = content.strip()[: self.max_length].rstrip()
        if not bounded:
            return False

        key = bounded.lower()
        if key in self._seen:
            return False
        self._seen.add(key)

        self.facts.append(
            Fact(
                content=bounded,
                topic=self.topic,
                source=DEFAULT_FACT_SOURCE,
                created_at=self.created_at,
            )
        )
        return True


def heuristic_facts(
    text: str,
    topic: str,
    max_length: int = 200,
    max_facts: int = 120,
) -> list[Fact]:
    """Deterministic sentence-based fact extraction used without a model."""
    collector = _FactCollector(topic, max_length, utc_now())
    for sentence in split_sentences(text):
        collector.add(sentence)
        if len(collector.facts) >= max_facts:
            break
    return collector.facts


# =============================================================================
# Extractor
# =============================================================================


class FactExtractor:
    """
    Extract facts from text through the model, or heuristically without one.

    Per-chunk completion failures are logged and skipped. Any other
    failure during a model run emits parse-error and is raised as
    PipelineFatalError.
    """

    def __init__(
        self,
        lifecycle: ModelLifecycle,
        bus: ProgressBus,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.lifecycle = lifecycle
        self.bus = bus
        self.chunk_size = settings.fact_chunk_size
        self.max_length = settings.fact_max_length
        self.max_fallback_facts = settings.fallback_max_facts
        self.related_fact_count = settings.related_fact_count

    async def extract(self, text: str, topic: str) -> list[Fact]:
        """
        Extract facts from raw text.

        Args:
            text: Document text
            topic: Topic label attached to every fact

        Returns:
            Facts in source order, deduplicated case-insensitively

        Raises:
            PipelineFatalError: On a failure outside a single chunk's completion
        """
        normalized = (text or "").strip()
        if not normalized:
            return []

        state = await self.lifecycle.initialize()
        if state is not LifecycleState.READY:
            return self._extract_with_heuristics(normalized, topic)

        return await self._extract_with_model(normalized, topic)

    def _extract_with_heuristics(self, text: str, topic: str) -> list[Fact]:
        facts = heuristic_facts(text, topic, self.max_length, self.max_fallback_facts)

        total_chunks = 1
        self.bus.emit(ParseStarted(topic=topic, total_chunks=total_chunks))
        self.bus.emit(ParseChunkStarted(topic=topic, chunk_index=1, total_chunks=total_chunks))
        self.bus.emit(
            ParseChunkCompleted(
                topic=topic,
                chunk_index=1,
                total_chunks=total_chunks,
                facts_generated=len(facts),
            )
        )
        self.bus.emit(ParseCompleted(topic=topic, total_chunks=total_chunks, facts_generated=len(facts)))

        logger.info(f"Heuristic extraction produced {len(facts)} facts for '{topic}'")
        return facts

    async def _extract_with_model(self, text: str, topic: str) -> list[Fact]:
        try:
            chunks = chunk_text(text, self.chunk_size)
            total = len(chunks)
            collector = _FactCollector(topic, self.max_length, utc_now())

            self.bus.emit(ParseStarted(topic=topic, total_chunks=total))

            for index, chunk in enumerate(chunks, 1):
                self.bus.emit(ParseChunkStarted(topic=topic, chunk_index=index, total_chunks=total))

                try:
                    response = await self.lifecycle.run_completion(
                        build_fact_messages(chunk, self.max_length),
                        FACT_OPTIONS,
                    )
                except CompletionFailedError as e:
                    logger.warning(f"Skipping chunk {index}/{total} for '{topic}': {e}")
                    response = ""

                added = sum(1 for line in parse_fact_lines(response, self.max_length) if collector.add(line))
                logger.debug(f"Chunk {index}/{total} for '{topic}': {added} facts")

                self.bus.emit(
                    ParseChunkCompleted(
                        topic=topic,
                        chunk_index=index,
                        total_chunks=total,
                        facts_generated=added,
                    )
                )

            facts = collector.facts
            self.bus.emit(ParseCompleted(topic=topic, total_chunks=total, facts_generated=len(facts)))
            logger.info(f"Extracted {len(facts)} facts for '{topic}' from {total} chunks")
            return facts

        except Exception as e:
            message = str(e) or "Unknown parsing error"
            logger.error(f"Error parsing text to facts for '{topic}': {message}")
            self.bus.emit(ParseFailed(topic=topic, message=message))
            raise PipelineFatalError(message) from e

    async def generate_related_facts(self, topic: str, current_fact: str) -> list[str]:
        """
        Ask the model for facts related to one the user liked.

        Returns:
            Up to related_fact_count fact strings; empty without a model
        """
        state = await self.lifecycle.initialize()
        if state is not LifecycleState.READY:
            return []

        try:
            response = await self.lifecycle.run_completion(
                build_related_messages(topic, current_fact, self.related_fact_count, self.max_length),
                RELATED_OPTIONS,
            )
        except CompletionFailedError as e:
            logger.warning(f"Related fact generation failed for '{topic}': {e}")
            return []

        return parse_fact_lines(response, self.max_length)[: self.related_fact_count]
