"""
Error taxonomy for the content-generation pipeline.

Only PipelineFatalError is meant to reach callers of the generators.
Everything else is recovered inside the unit of work that raised it:
a failed completion skips one chunk, a failed download drops the
lifecycle into heuristic mode.

Backend absence and malformed model output are deliberately not
exceptions. They surface as BackendProbe(available=False) and as
empty/None parser results.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline errors."""
    pass


class ModelNotInitializedError(PipelineError):
    """Raised when a completion is requested before the model is ready."""
    pass


class DownloadFailedError(PipelineError):
    """Raised when the model download/setup step fails during initialization."""
    pass


class CompletionFailedError(PipelineError):
    """Raised when a single completion call fails, times out, or reports no success."""
    pass


class PipelineFatalError(PipelineError):
    """Raised when an extraction run fails outside any per-chunk boundary."""
    pass
