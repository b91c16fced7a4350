"""
Doomless: learning content from imported documents.

Subpackages:
- ai/: Model backend adapters and the model lifecycle
- generation/: Fact extraction, quiz generation, preference analysis

Core modules:
- events: Progress events and the progress bus
- models: Facts, quiz questions, interactions, completion contract
- errors: Pipeline error taxonomy
- service: ContentService facade wiring everything together
"""

from .ai import LifecycleState, ModelLifecycle
from .errors import (
    CompletionFailedError,
    DownloadFailedError,
    ModelNotInitializedError,
    PipelineError,
    PipelineFatalError,
)
from .events import ProgressBus, ProgressEvent
from .models import Fact, Interaction, PreferenceAnalysis, QuizQuestion
from .service import ContentService, create_content_service

__version__ = "0.1.0"

__all__ = [
    # Lifecycle
    "LifecycleState",
    "ModelLifecycle",
    # Errors
    "PipelineError",
    "ModelNotInitializedError",
    "DownloadFailedError",
    "CompletionFailedError",
    "PipelineFatalError",
    # Events
    "ProgressBus",
    "ProgressEvent",
    # Models
    "Fact",
    "Interaction",
    "PreferenceAnalysis",
    "QuizQuestion",
    # Service
    "ContentService",
    "create_content_service",
]
