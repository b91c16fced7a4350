"""
Topic preference analysis from swipe interactions.

A ratio-based baseline is always computed. The model is consulted only
when it is ready and there is history to summarize; any failure on that
path returns the baseline instead of an error.
"""

from __future__ import annotations

from typing import Sequence

from loguru import logger

from doomless.ai.lifecycle import LifecycleState, ModelLifecycle
from doomless.generation.prompts import PREFERENCE_OPTIONS, build_preference_messages
from doomless.generation.structured_output import parse_preference_analysis
from doomless.models import Interaction, PreferenceAnalysis

GENERIC_TOPIC = "general"
PREFERRED_RATIO = 0.6
DISLIKED_RATIO = 0.4


def count_directions(interactions: Sequence[Interaction]) -> tuple[int, int]:
    """Return (right, left) swipe counts; other directions are ignored."""
    right = sum(1 for interaction in interactions if interaction.direction == "right")
    left = sum(1 for interaction in interactions if interaction.direction == "left")
    return right, left


def baseline_preferences(interactions: Sequence[Interaction]) -> PreferenceAnalysis:
    """Ratio heuristic over right/left swipes, scored in [-1, 1]."""
    if not interactions:
        return PreferenceAnalysis.empty()

    right, left = count_directions(interactions)
    ratio = right / ((right + left) or 1)

    return PreferenceAnalysis(
        preferred_topics=[GENERIC_TOPIC] if ratio > PREFERRED_RATIO else [],
        disliked_topics=[GENERIC_TOPIC] if ratio < DISLIKED_RATIO else [],
        neutral_topics=[],
        overall_scores={GENERIC_TOPIC: round((ratio - 0.5) * 2, 2)},
    )


class PreferenceAnalyzer:
    """Derive a PreferenceAnalysis via the model, falling back to the baseline."""

    def __init__(self, lifecycle: ModelLifecycle):
        self.lifecycle = lifecycle

    async def analyze(self, interactions: Sequence[Interaction]) -> PreferenceAnalysis:
        baseline = baseline_preferences(interactions)
        if not interactions:
            return baseline

        state = await self.lifecycle.initialize()
        if state is not LifecycleState.READY:
            return baseline

        right, left = count_directions(interactions)
        try:
            response = await self.lifecycle.run_completion(
                build_preference_messages(right, left, len(interactions)),
                PREFERENCE_OPTIONS,
            )
            analysis = parse_preference_analysis(response)
        except Exception as e:
            logger.warning(f"Preference analysis failed, using baseline: {e}")
            return baseline

        if analysis is None:
            logger.warning("Preference analysis returned no usable JSON, using baseline")
            return baseline

        return analysis
