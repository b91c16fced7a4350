"""
Multiple-choice quiz generation from extracted facts.

There is no heuristic fallback for quizzes: without a model, or when the
model output is unusable, the generator returns an empty list and the
caller shows facts only.
"""

from __future__ import annotations

from typing import Sequence

from loguru import logger

from doomless.ai.lifecycle import LifecycleState, ModelLifecycle
from doomless.config import Settings, get_settings
from doomless.errors import CompletionFailedError
from doomless.events import ProgressBus, QuizCompleted, QuizProgress, QuizStarted
from doomless.generation.prompts import QUIZ_OPTIONS, build_quiz_messages
from doomless.generation.structured_output import parse_quiz_batch
from doomless.models import Fact, QuizQuestion


class QuizGenerator:
    """Generate one quiz question per fact, a bounded batch at a time."""

    def __init__(
        self,
        lifecycle: ModelLifecycle,
        bus: ProgressBus,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.lifecycle = lifecycle
        self.bus = bus
        self.batch_size = max(settings.quiz_batch_size, 1)

    async def generate(self, topic: str, fact_contents: Sequence[str]) -> list[QuizQuestion]:
        """
        Generate questions for at most batch_size facts.

        Partial results are normal: the model may return fewer valid
        questions than facts.

        Returns:
            Valid questions, possibly empty
        """
        if not fact_contents:
            return []

        state = await self.lifecycle.initialize()
        if state is not LifecycleState.READY:
            return []

        limited = list(fact_contents[: self.batch_size])

        try:
            response = await self.lifecycle.run_completion(
                build_quiz_messages(topic, limited),
                QUIZ_OPTIONS,
            )
        except CompletionFailedError as e:
            logger.warning(f"Quiz generation failed for '{topic}'. Skipping quizzes: {e}")
            return []

        questions = parse_quiz_batch(response, len(limited))
        if not questions:
            logger.warning(f"Quiz generation returned no valid items for '{topic}'")
        return questions

    async def generate_for_facts(
        self,
        topic: str,
        facts: Sequence[Fact | str],
    ) -> list[QuizQuestion]:
        """
        Generate questions for an arbitrary number of facts, batch by batch.

        Emits quiz-start with the fact count, quiz-progress after every
        batch, and quiz-complete with the number of questions produced.
        """
        contents = [fact.content if isinstance(fact, Fact) else fact for fact in facts]
        total = len(contents)
        self.bus.emit(QuizStarted(topic=topic, total=total))

        questions: list[QuizQuestion] = []
        for start in range(0, total, self.batch_size):
            batch = contents[start : start + self.batch_size]
            questions.extend(await self.generate(topic, batch))
            self.bus.emit(QuizProgress(topic=topic, current=start + len(batch), total=total))

        self.bus.emit(QuizCompleted(topic=topic, total=len(questions)))
        logger.info(f"Generated {len(questions)} quiz questions for '{topic}' from {total} facts")
        return questions
