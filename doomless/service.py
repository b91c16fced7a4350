"""
Content service facade.

Bundles one progress bus, one model lifecycle, and the generators that
share them. The application shell creates a service, holds the
reference, and closes it on shutdown; there is no global instance.
"""

from __future__ import annotations

from typing import Callable, Sequence

from doomless.ai.backend import BackendProber
from doomless.ai.lifecycle import LifecycleState, ModelLifecycle
from doomless.config import Settings, get_settings
from doomless.events import ProgressBus, ProgressListener
from doomless.generation.facts import FactExtractor
from doomless.generation.preferences import PreferenceAnalyzer
from doomless.generation.quiz import QuizGenerator
from doomless.models import Fact, Interaction, PreferenceAnalysis, QuizQuestion


class ContentService:
    """
    Entry point for fact, quiz, and preference generation.

    Usage:
        async with create_content_service() as service:
            service.subscribe(print)
            facts = await service.extract_facts(text, "science")
            quizzes = await service.generate_quizzes("science", facts)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        probe: BackendProber | None = None,
        bus: ProgressBus | None = None,
    ):
        self.settings = settings or get_settings()
        self.bus = bus or ProgressBus()
        self.lifecycle = ModelLifecycle(self.bus, probe=probe, settings=self.settings)
        self.facts = FactExtractor(self.lifecycle, self.bus, self.settings)
        self.quizzes = QuizGenerator(self.lifecycle, self.bus, self.settings)
        self.preferences = PreferenceAnalyzer(self.lifecycle)

    async def __aenter__(self) -> ContentService:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        return self.bus.subscribe(listener)

    async def initialize(self) -> LifecycleState:
        return await self.lifecycle.initialize()

    async def extract_facts(self, text: str, topic: str) -> list[Fact]:
        return await self.facts.extract(text, topic)

    async def generate_related_facts(self, topic: str, current_fact: str) -> list[str]:
        return await self.facts.generate_related_facts(topic, current_fact)

    async def generate_quiz(self, topic: str, fact_contents: Sequence[str]) -> list[QuizQuestion]:
        return await self.quizzes.generate(topic, fact_contents)

    async def generate_quizzes(self, topic: str, facts: Sequence[Fact | str]) -> list[QuizQuestion]:
        return await self.quizzes.generate_for_facts(topic, facts)

    async def analyze_preferences(self, interactions: Sequence[Interaction]) -> PreferenceAnalysis:
        return await self.preferences.analyze(interactions)

    async def close(self) -> None:
        await self.lifecycle.destroy()


def create_content_service(
    settings: Settings | None = None,
    probe: BackendProber | None = None,
) -> ContentService:
    """Convenience function to build a service with default wiring."""
    return ContentService(settings=settings, probe=probe)
