"""
Domain models shared across the pipeline.

Facts and quiz questions are transient values: the pipeline creates them
and hands them to the caller, it never stores or caches them.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

DEFAULT_FACT_SOURCE = "default"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Fact:
    """A short, self-contained claim extracted from source text."""

    content: str
    topic: str
    source: str = DEFAULT_FACT_SOURCE
    created_at: datetime = field(default_factory=utc_now)
    id: int = 0  # Assigned by storage once persisted

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return {
            "id": self.id,
            "content": self.content,
            "topic": self.topic,
            "source": self.source,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class QuizQuestion:
    """A multiple-choice question with exactly four options."""

    question: str
    options: list[str]
    correct_answer: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Interaction:
    """A single swipe on a fact card. Owned by the caller, read-only here."""

    direction: str  # "left", "right", or another directional tag
    fact_id: int | None = None
    topic: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Interaction:
        return cls(
            direction=str(data.get("direction", "")),
            fact_id=data.get("fact_id"),
            topic=data.get("topic"),
        )


class PreferenceAnalysis(BaseModel):
    """Coarse topic preference summary derived from interactions."""

    model_config = ConfigDict(extra="ignore")

    preferred_topics: list[str]
    disliked_topics: list[str]
    neutral_topics: list[str]
    overall_scores: dict[str, float]

    @classmethod
    def empty(cls) -> PreferenceAnalysis:
        return cls(preferred_topics=[], disliked_topics=[], neutral_topics=[], overall_scores={})


# =============================================================================
# Completion Contract
# =============================================================================


@dataclass
class CompletionMessage:
    """One chat message sent to the model backend."""

    role: Literal["system", "user", "assistant"]
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class CompletionOptions:
    """Sampling options for a completion request. None means backend default."""

    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    max_tokens: int | None = None
    stop_sequences: list[str] | None = None


@dataclass
class CompletionResult:
    """Raw result returned by a model backend."""

    success: bool
    response: str = ""
