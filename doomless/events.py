"""
Progress events and the multicast bus that delivers them.

Each event variant is its own frozen dataclass carrying only the fields
relevant to its tag. Observers (UI, logging, the CLI progress bar)
subscribe to a ProgressBus; publishing is fire-and-forget, so a failing
or slow listener never blocks or aborts the stage that emitted the event.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
from dataclasses import asdict, dataclass
from typing import Any, Callable, ClassVar, Union

from loguru import logger


# =============================================================================
# Event Variants
# =============================================================================


class _Event:
    """Common base: a class-level tag plus the variant's own fields."""

    type: ClassVar[str]

    def to_dict(self) -> dict[str, Any]:
        """Serialize with its tag, e.g. for JSON telemetry."""
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class ModelDownloadProgress(_Event):
    type: ClassVar[str] = "model-download"

    progress: float  # 0..1


@dataclass(frozen=True)
class ParseStarted(_Event):
    type: ClassVar[str] = "parse-start"

    topic: str
    total_chunks: int


@dataclass(frozen=True)
class ParseChunkStarted(_Event):
    type: ClassVar[str] = "parse-chunk-start"

    topic: str
    chunk_index: int  # 1-based
    total_chunks: int


@dataclass(frozen=True)
class ParseChunkCompleted(_Event):
    type: ClassVar[str] = "parse-chunk-complete"

    topic: str
    chunk_index: int
    total_chunks: int
    facts_generated: int


@dataclass(frozen=True)
class ParseCompleted(_Event):
    type: ClassVar[str] = "parse-complete"

    topic: str
    total_chunks: int
    facts_generated: int


@dataclass(frozen=True)
class ParseFailed(_Event):
    type: ClassVar[str] = "parse-error"

    topic: str
    message: str


@dataclass(frozen=True)
class StorageSaveProgress(_Event):
    type: ClassVar[str] = "storage-save-progress"

    topic: str
    saved: int
    total: int


@dataclass(frozen=True)
class StorageCompleted(_Event):
    type: ClassVar[str] = "storage-complete"

    topic: str
    total: int


@dataclass(frozen=True)
class QuizStarted(_Event):
    type: ClassVar[str] = "quiz-start"

    topic: str
    total: int


@dataclass(frozen=True)
class QuizProgress(_Event):
    type: ClassVar[str] = "quiz-progress"

    topic: str
    current: int
    total: int


@dataclass(frozen=True)
class QuizCompleted(_Event):
    type: ClassVar[str] = "quiz-complete"

    topic: str
    total: int


ProgressEvent = Union[
    ModelDownloadProgress,
    ParseStarted,
    ParseChunkStarted,
    ParseChunkCompleted,
    ParseCompleted,
    ParseFailed,
    StorageSaveProgress,
    StorageCompleted,
    QuizStarted,
    QuizProgress,
    QuizCompleted,
]

ProgressListener = Callable[[ProgressEvent], Any]


# =============================================================================
# Bus
# =============================================================================


class ProgressBus:
    """
    Multicast channel for pipeline progress.

    Listeners are invoked in subscription order, once per event. A listener
    that raises is logged and skipped. A listener that returns an awaitable
    is scheduled on the running loop and not awaited.

    Usage:
        bus = ProgressBus()
        unsubscribe = bus.subscribe(lambda event: print(event.type))
        ...
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: dict[int, ProgressListener] = {}
        self._ids = itertools.count()
        self._pending: set[asyncio.Future] = set()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a listener and return a function that removes it."""
        token = next(self._ids)
        self._listeners[token] = listener

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    def emit(self, event: ProgressEvent) -> None:
        """Deliver an event to every current listener."""
        for listener in list(self._listeners.values()):
            try:
                outcome = listener(event)
            except Exception as e:
                logger.error(f"Progress listener failed on {event.type}: {e}")
                continue

            if inspect.isawaitable(outcome):
                self._schedule(outcome, event)

    def _schedule(self, awaitable: Any, event: ProgressEvent) -> None:
        """Run an async listener in the background and log its failure."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            # No running loop to host the coroutine
            logger.error(f"Async progress listener dropped for {event.type}: {e}")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        future = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(future)

        def _done(task: asyncio.Future) -> None:
            self._pending.discard(task)
            if task.cancelled():
                return
            error = task.exception()
            if error is not None:
                logger.error(f"Async progress listener failed on {event.type}: {error}")

        future.add_done_callback(_done)
