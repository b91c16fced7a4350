"""LLM-backed content generation with deterministic fallbacks.

Pipeline:
1. FactExtractor splits imported text into short standalone facts
2. QuizGenerator turns batches of facts into multiple-choice questions
3. PreferenceAnalyzer summarizes swipe history into topic preferences

Usage:
    from doomless.generation import FactExtractor

    facts = await FactExtractor(lifecycle, bus).extract(text, topic="science")
"""
from doomless.generation.facts import FactExtractor, heuristic_facts, split_sentences
from doomless.generation.preferences import PreferenceAnalyzer, baseline_preferences
from doomless.generation.quiz import QuizGenerator
from doomless.generation.structured_output import parse_preference_analysis, parse_quiz_batch

__all__ = [
    "FactExtractor",
    "heuristic_facts",
    "split_sentences",
    "PreferenceAnalyzer",
    "baseline_preferences",
    "QuizGenerator",
    "parse_preference_analysis",
    "parse_quiz_batch",
]
