"""
Model lifecycle management.

Owns the opaque model handle and its initialization state machine:

    UNINITIALIZED -> INITIALIZING -> READY | FALLBACK_ENABLED
    any settled state -> DESTROYED -> (initialize again)

READY and FALLBACK_ENABLED are both stable end states; there is no
automatic recovery from heuristic mode back to the model. Every call to
initialize() that completes leaves the lifecycle in exactly one of them.
"""

from __future__ import annotations

import asyncio
import math
import re
from enum import Enum

from loguru import logger

from doomless.ai.backend import (
    BackendFactory,
    BackendProbe,
    BackendProber,
    ModelBackend,
    probe_ollama,
)
from doomless.config import ModelConfig, Settings, get_settings
from doomless.errors import (
    CompletionFailedError,
    DownloadFailedError,
    ModelNotInitializedError,
)
from doomless.events import ModelDownloadProgress, ProgressBus
from doomless.models import CompletionMessage, CompletionOptions


class LifecycleState(str, Enum):
    """State of the model lifecycle."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FALLBACK_ENABLED = "fallback_enabled"
    DESTROYED = "destroyed"


SETTLED_STATES = frozenset({LifecycleState.READY, LifecycleState.FALLBACK_ENABLED})

THINK_BLOCK_PATTERN = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)
THINK_TAG_PATTERN = re.compile(r"</?think>", re.IGNORECASE)


def strip_thinking_blocks(raw: str) -> str:
    """Remove <think>...</think> scratchpad blocks and stray markers."""
    if not raw:
        return raw

    cleaned = THINK_BLOCK_PATTERN.sub("", raw)
    cleaned = THINK_TAG_PATTERN.sub("", cleaned)
    return cleaned.strip()


class ModelLifecycle:
    """
    Process-wide owner of the model handle.

    Concurrent initialize() calls coalesce into a single underlying
    attempt: the first caller performs it, the others wait on a condition
    and are woken when the state settles. Completions are serialized
    unless the backend declares itself concurrent_safe.

    Usage:
        lifecycle = ModelLifecycle(bus)
        state = await lifecycle.initialize()
        if state is LifecycleState.READY:
            text = await lifecycle.run_completion(messages)
        await lifecycle.destroy()
    """

    def __init__(
        self,
        bus: ProgressBus,
        probe: BackendProber | None = None,
        settings: Settings | None = None,
        model_config: ModelConfig | None = None,
    ):
        """
        Initialize the lifecycle.

        Args:
            bus: Progress bus receiving model-download events
            probe: Capability probe (defaults to the Ollama probe)
            settings: Settings instance (uses cached settings if not provided)
            model_config: Model configuration (taken from settings if not provided)
        """
        self.settings = settings or get_settings()
        self.bus = bus
        self.completion_timeout = self.settings.completion_timeout_seconds

        self._probe = probe or probe_ollama(self.settings)
        self._probe_result: BackendProbe | None = None
        self._model_config = model_config

        self._state = LifecycleState.UNINITIALIZED
        self._handle: ModelBackend | None = None
        self._condition = asyncio.Condition()
        self._completion_lock = asyncio.Lock()
        self._last_download_percent: int | None = None

        self.attempts = 0
        self.last_error: Exception | None = None

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state in SETTLED_STATES

    @property
    def is_ready(self) -> bool:
        return self._state is LifecycleState.READY and self._handle is not None

    @property
    def is_fallback(self) -> bool:
        return self._state is LifecycleState.FALLBACK_ENABLED

    @property
    def probe_reason(self) -> str:
        return self._probe_result.reason if self._probe_result else ""

    # =========================================================================
    # Initialization
    # =========================================================================

    async def initialize(self) -> LifecycleState:
        """
        Bring the model up, or settle into heuristic mode.

        Idempotent. Returns immediately once settled; callers arriving
        while another initialization is in flight wait for its outcome.

        Returns:
            READY or FALLBACK_ENABLED
        """
        if self._state in SETTLED_STATES:
            return self._state

        async with self._condition:
            while self._state is LifecycleState.INITIALIZING:
                await self._condition.wait()
            if self._state in SETTLED_STATES:
                return self._state
            self._state = LifecycleState.INITIALIZING
            self.attempts += 1

        # Stays UNINITIALIZED if the attempt is cancelled, so waiters retry
        outcome = LifecycleState.UNINITIALIZED
        try:
            outcome = await self._attempt()
        finally:
            async with self._condition:
                self._state = outcome
                self._condition.notify_all()

        logger.info(f"Model lifecycle settled: {outcome.value}")
        return outcome

    async def _attempt(self) -> LifecycleState:
        probe = await self._run_probe()
        if not probe.available or probe.factory is None:
            logger.warning(
                f"Model backend unavailable ({probe.reason or 'no backend'}); "
                "using heuristic processing"
            )
            return LifecycleState.FALLBACK_ENABLED

        config = self._model_config or self.settings.get_model_config()
        handle: ModelBackend | None = None
        try:
            handle = await self._prepare_handle(probe.factory, config)
            await handle.init()
        except asyncio.CancelledError:
            if handle is not None:
                await self._release(handle)
            raise
        except Exception as e:
            self.last_error = e
            logger.error(f"Failed to initialize model: {e}")
            logger.warning("Falling back to heuristic processing because model initialization failed")
            if handle is not None:
                await self._release(handle)
            return LifecycleState.FALLBACK_ENABLED

        self._handle = handle
        self.last_error = None
        return LifecycleState.READY

    async def _run_probe(self) -> BackendProbe:
        """Evaluate the capability probe once and memoize the branch."""
        if self._probe_result is None:
            try:
                self._probe_result = await self._probe()
            except Exception as e:
                logger.error(f"Backend probe raised: {e}")
                self._probe_result = BackendProbe(available=False, reason=f"probe failed: {e}")
        return self._probe_result

    async def _prepare_handle(self, factory: BackendFactory, config: ModelConfig) -> ModelBackend:
        handle = factory(config.context_size)

        if config.preload_model:
            self._last_download_percent = None
            try:
                await handle.download(self._on_download_progress)
            except Exception as e:
                await self._release(handle)
                raise DownloadFailedError(f"Failed to download model: {e}") from e

        return handle

    def _on_download_progress(self, progress: float) -> None:
        """Forward download progress, at most one event per integer percent."""
        if not isinstance(progress, (int, float)) or not math.isfinite(progress):
            return

        progress = min(max(float(progress), 0.0), 1.0)
        pct = round(progress * 100)
        if pct == self._last_download_percent:
            return
        self._last_download_percent = pct

        if pct % 5 == 0 or pct == 100:
            logger.info(f"Downloading model... {pct}%")
        self.bus.emit(ModelDownloadProgress(progress=progress))

    # =========================================================================
    # Completion
    # =========================================================================

    async def run_completion(
        self,
        messages: list[CompletionMessage],
        options: CompletionOptions | None = None,
    ) -> str:
        """
        Run one completion against the ready model.

        Raises:
            ModelNotInitializedError: If the lifecycle is not READY
            CompletionFailedError: If the backend fails, times out, or reports no success
        """
        handle = self._handle
        if self._state is not LifecycleState.READY or handle is None:
            raise ModelNotInitializedError("Model not initialized")

        options = options or CompletionOptions()
        if getattr(handle, "concurrent_safe", False):
            result = await self._complete(handle, messages, options)
        else:
            async with self._completion_lock:
                result = await self._complete(handle, messages, options)

        if not result.success:
            raise CompletionFailedError(result.response or "Model returned no response")

        return strip_thinking_blocks(result.response)

    async def _complete(
        self,
        handle: ModelBackend,
        messages: list[CompletionMessage],
        options: CompletionOptions,
    ):
        try:
            return await asyncio.wait_for(
                handle.complete(messages, options),
                timeout=self.completion_timeout,
            )
        except asyncio.TimeoutError as e:
            raise CompletionFailedError(
                f"Completion timed out after {self.completion_timeout}s"
            ) from e
        except CompletionFailedError:
            raise
        except Exception as e:
            raise CompletionFailedError(str(e) or type(e).__name__) from e

    # =========================================================================
    # Teardown
    # =========================================================================

    async def destroy(self) -> None:
        """
        Release the model handle and allow re-initialization.

        Waits for an in-flight initialization to settle first. Failures
        while releasing are logged, never raised.
        """
        async with self._condition:
            while self._state is LifecycleState.INITIALIZING:
                await self._condition.wait()
            handle, self._handle = self._handle, None
            self._state = LifecycleState.DESTROYED

        if handle is not None:
            await self._release(handle)
        logger.info("Model lifecycle destroyed")

    async def _release(self, handle: ModelBackend) -> None:
        try:
            await handle.destroy()
        except Exception as e:
            logger.error(f"Error destroying model: {e}")
