"""
Unit tests for the model lifecycle state machine.
"""

import asyncio
import math

import pytest

from doomless.ai.lifecycle import LifecycleState, ModelLifecycle, strip_thinking_blocks
from doomless.errors import (
    CompletionFailedError,
    DownloadFailedError,
    ModelNotInitializedError,
)
from doomless.events import ModelDownloadProgress
from doomless.models import CompletionMessage, CompletionOptions, CompletionResult

MESSAGES = [CompletionMessage(role="user", content="Say something.")]


class TestStripThinkingBlocks:
    """Tests for scratchpad removal."""

    def test_removes_paired_block(self):
        assert strip_thinking_blocks("<think>plan it</think>\nWater boils.") == "Water boils."

    def test_removes_multiline_blocks_case_insensitively(self):
        raw = "<THINK>\nstep 1\nstep 2\n</Think>Fact one.\n<think>again</think>Fact two."
        assert strip_thinking_blocks(raw) == "Fact one.\nFact two."

    def test_removes_unpaired_markers(self):
        assert strip_thinking_blocks("<think>Fact without closing") == "Fact without closing"

    def test_empty_input(self):
        assert strip_thinking_blocks("") == ""


class TestInitialization:
    """Tests for initialize()."""

    @pytest.mark.asyncio
    async def test_unavailable_backend_enables_fallback(self, make_lifecycle):
        lifecycle = make_lifecycle()

        state = await lifecycle.initialize()

        assert state is LifecycleState.FALLBACK_ENABLED
        assert lifecycle.is_initialized
        assert lifecycle.is_fallback
        assert lifecycle.last_error is None
        assert lifecycle.probe_reason == "no backend in tests"

    @pytest.mark.asyncio
    async def test_available_backend_becomes_ready(self, make_lifecycle, fake_backend):
        lifecycle = make_lifecycle(fake_backend)

        state = await lifecycle.initialize()

        assert state is LifecycleState.READY
        assert lifecycle.is_ready
        assert fake_backend.download_calls == 1
        assert fake_backend.init_calls == 1
        assert lifecycle._probe.context_sizes == [1024]

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, make_lifecycle, fake_backend):
        lifecycle = make_lifecycle(fake_backend)

        await lifecycle.initialize()
        await lifecycle.initialize()

        assert lifecycle.attempts == 1
        assert fake_backend.init_calls == 1

    @pytest.mark.asyncio
    async def test_skips_download_without_preload(self, make_lifecycle, fake_backend, events):
        lifecycle = make_lifecycle(fake_backend, preload=False)

        state = await lifecycle.initialize()

        assert state is LifecycleState.READY
        assert fake_backend.download_calls == 0
        assert events == []

    @pytest.mark.asyncio
    async def test_download_progress_is_coalesced_per_percent(
        self, make_lifecycle, backend_factory, events
    ):
        backend = backend_factory(
            download_progress=[0.0, 0.001, 0.004, math.nan, 0.5, 0.501, 0.5, 1.0]
        )
        lifecycle = make_lifecycle(backend)

        await lifecycle.initialize()

        assert events == [
            ModelDownloadProgress(progress=0.0),
            ModelDownloadProgress(progress=0.5),
            ModelDownloadProgress(progress=1.0),
        ]

    @pytest.mark.asyncio
    async def test_download_failure_resolves_to_fallback(self, make_lifecycle, backend_factory):
        backend = backend_factory(fail_download=OSError("disk full"))
        lifecycle = make_lifecycle(backend)

        state = await lifecycle.initialize()

        assert state is LifecycleState.FALLBACK_ENABLED
        assert isinstance(lifecycle.last_error, DownloadFailedError)
        assert "disk full" in str(lifecycle.last_error)
        assert backend.init_calls == 0
        assert backend.destroy_calls == 1

    @pytest.mark.asyncio
    async def test_init_failure_resolves_to_fallback(self, make_lifecycle, backend_factory):
        backend = backend_factory(fail_init=RuntimeError("bad weights"))
        lifecycle = make_lifecycle(backend)

        state = await lifecycle.initialize()

        assert state is LifecycleState.FALLBACK_ENABLED
        assert not lifecycle.is_ready

    @pytest.mark.asyncio
    async def test_raising_probe_resolves_to_fallback(self, bus, settings):
        async def probe():
            raise RuntimeError("native module crashed")

        lifecycle = ModelLifecycle(bus, probe=probe, settings=settings)

        assert await lifecycle.initialize() is LifecycleState.FALLBACK_ENABLED
        assert "native module crashed" in lifecycle.probe_reason

    @pytest.mark.asyncio
    async def test_concurrent_initialize_coalesces(self, make_lifecycle, backend_factory):
        backend = backend_factory(init_delay=0.05)
        lifecycle = make_lifecycle(backend)

        states = await asyncio.gather(*(lifecycle.initialize() for _ in range(10)))

        assert states == [LifecycleState.READY] * 10
        assert lifecycle.attempts == 1
        assert backend.download_calls == 1
        assert backend.init_calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_initialize_coalesces_in_fallback(self, make_lifecycle):
        lifecycle = make_lifecycle()

        states = await asyncio.gather(*(lifecycle.initialize() for _ in range(10)))

        assert set(states) == {LifecycleState.FALLBACK_ENABLED}
        assert lifecycle.attempts == 1

    @pytest.mark.asyncio
    async def test_cancelled_initialization_can_be_retried(self, make_lifecycle, backend_factory):
        backend = backend_factory(init_delay=1.0)
        lifecycle = make_lifecycle(backend)

        task = asyncio.create_task(lifecycle.initialize())
        await asyncio.sleep(0.01)
        assert lifecycle.state is LifecycleState.INITIALIZING

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert lifecycle.state is LifecycleState.UNINITIALIZED

        backend.init_delay = 0.0
        assert await lifecycle.initialize() is LifecycleState.READY
        assert lifecycle.attempts == 2


class TestRunCompletion:
    """Tests for run_completion()."""

    @pytest.mark.asyncio
    async def test_requires_initialization(self, make_lifecycle, fake_backend):
        lifecycle = make_lifecycle(fake_backend)

        with pytest.raises(ModelNotInitializedError):
            await lifecycle.run_completion(MESSAGES)

    @pytest.mark.asyncio
    async def test_not_available_in_fallback(self, make_lifecycle):
        lifecycle = make_lifecycle()
        await lifecycle.initialize()

        with pytest.raises(ModelNotInitializedError):
            await lifecycle.run_completion(MESSAGES)

    @pytest.mark.asyncio
    async def test_returns_stripped_response(self, make_lifecycle, backend_factory):
        backend = backend_factory(responses=["<think>hmm</think>\nThe answer.  "])
        lifecycle = make_lifecycle(backend)
        await lifecycle.initialize()

        options = CompletionOptions(temperature=0.2, max_tokens=64)
        text = await lifecycle.run_completion(MESSAGES, options)

        assert text == "The answer."
        assert backend.requests == [(MESSAGES, options)]

    @pytest.mark.asyncio
    async def test_unsuccessful_result_fails(self, make_lifecycle, backend_factory):
        backend = backend_factory(responses=[CompletionResult(success=False, response="context overflow")])
        lifecycle = make_lifecycle(backend)
        await lifecycle.initialize()

        with pytest.raises(CompletionFailedError, match="context overflow"):
            await lifecycle.run_completion(MESSAGES)

    @pytest.mark.asyncio
    async def test_unsuccessful_result_without_message(self, make_lifecycle, backend_factory):
        backend = backend_factory(responses=[CompletionResult(success=False)])
        lifecycle = make_lifecycle(backend)
        await lifecycle.initialize()

        with pytest.raises(CompletionFailedError, match="no response"):
            await lifecycle.run_completion(MESSAGES)

    @pytest.mark.asyncio
    async def test_backend_exception_fails(self, make_lifecycle, backend_factory):
        backend = backend_factory(responses=[RuntimeError("socket closed")])
        lifecycle = make_lifecycle(backend)
        await lifecycle.initialize()

        with pytest.raises(CompletionFailedError, match="socket closed"):
            await lifecycle.run_completion(MESSAGES)

    @pytest.mark.asyncio
    async def test_timeout_fails(self, make_lifecycle, backend_factory):
        backend = backend_factory(responses=["late"], completion_delay=1.0)
        lifecycle = make_lifecycle(backend, completion_timeout_seconds=0.05)
        await lifecycle.initialize()

        with pytest.raises(CompletionFailedError, match="timed out"):
            await lifecycle.run_completion(MESSAGES)

    @pytest.mark.asyncio
    async def test_completions_are_serialized(self, make_lifecycle, backend_factory):
        backend = backend_factory(responses=["a", "b", "c"], completion_delay=0.02)
        lifecycle = make_lifecycle(backend)
        await lifecycle.initialize()

        results = await asyncio.gather(*(lifecycle.run_completion(MESSAGES) for _ in range(3)))

        assert sorted(results) == ["a", "b", "c"]
        assert backend.max_active == 1

    @pytest.mark.asyncio
    async def test_concurrent_safe_backend_runs_in_parallel(self, make_lifecycle, backend_factory):
        backend = backend_factory(responses=["a", "b", "c"], completion_delay=0.02)
        backend.concurrent_safe = True
        lifecycle = make_lifecycle(backend)
        await lifecycle.initialize()

        await asyncio.gather(*(lifecycle.run_completion(MESSAGES) for _ in range(3)))

        assert backend.max_active == 3


class TestDestroy:
    """Tests for destroy()."""

    @pytest.mark.asyncio
    async def test_releases_handle(self, make_lifecycle, fake_backend):
        lifecycle = make_lifecycle(fake_backend)
        await lifecycle.initialize()

        await lifecycle.destroy()

        assert lifecycle.state is LifecycleState.DESTROYED
        assert fake_backend.destroy_calls == 1
        with pytest.raises(ModelNotInitializedError):
            await lifecycle.run_completion(MESSAGES)

    @pytest.mark.asyncio
    async def test_destroy_failure_is_not_raised(self, make_lifecycle, backend_factory):
        backend = backend_factory(fail_destroy=RuntimeError("already freed"))
        lifecycle = make_lifecycle(backend)
        await lifecycle.initialize()

        await lifecycle.destroy()

        assert lifecycle.state is LifecycleState.DESTROYED

    @pytest.mark.asyncio
    async def test_reinitialize_after_destroy_reuses_probe(self, make_lifecycle, fake_backend):
        lifecycle = make_lifecycle(fake_backend)
        await lifecycle.initialize()
        await lifecycle.destroy()

        state = await lifecycle.initialize()

        assert state is LifecycleState.READY
        assert lifecycle.attempts == 2
        assert lifecycle._probe.calls == 1
        assert fake_backend.init_calls == 2

    @pytest.mark.asyncio
    async def test_destroy_without_handle(self, make_lifecycle):
        lifecycle = make_lifecycle()

        await lifecycle.destroy()

        assert lifecycle.state is LifecycleState.DESTROYED
