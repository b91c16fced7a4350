"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import asyncio
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from doomless.ai.backend import BackendProbe, disabled_probe  # noqa: E402
from doomless.ai.lifecycle import ModelLifecycle  # noqa: E402
from doomless.config import ModelConfig, Settings  # noqa: E402
from doomless.events import ProgressBus  # noqa: E402
from doomless.models import CompletionResult  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FakeBackend:
    """
    Scripted model backend.

    Each completion pops the next scripted response: a string is returned
    as a successful completion, a CompletionResult as-is, and an exception
    is raised.
    """

    concurrent_safe = False

    def __init__(
        self,
        responses=None,
        *,
        download_progress=(0.0, 0.5, 1.0),
        fail_download=None,
        fail_init=None,
        fail_destroy=None,
        init_delay=0.0,
        completion_delay=0.0,
    ):
        self.responses = list(responses or [])
        self.download_progress = list(download_progress)
        self.fail_download = fail_download
        self.fail_init = fail_init
        self.fail_destroy = fail_destroy
        self.init_delay = init_delay
        self.completion_delay = completion_delay

        self.download_calls = 0
        self.init_calls = 0
        self.destroy_calls = 0
        self.requests = []
        self.active = 0
        self.max_active = 0

    async def download(self, on_progress):
        self.download_calls += 1
        for progress in self.download_progress:
            on_progress(progress)
        if self.fail_download:
            raise self.fail_download

    async def init(self):
        self.init_calls += 1
        await asyncio.sleep(self.init_delay)
        if self.fail_init:
            raise self.fail_init

    async def complete(self, messages, options):
        self.requests.append((messages, options))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.completion_delay)
            item = self.responses.pop(0) if self.responses else ""
        finally:
            self.active -= 1

        if isinstance(item, BaseException):
            raise item
        if isinstance(item, CompletionResult):
            return item
        return CompletionResult(success=True, response=item)

    async def destroy(self):
        self.destroy_calls += 1
        if self.fail_destroy:
            raise self.fail_destroy

    @property
    def prompts(self):
        """User prompt text of every completion request."""
        return [messages[-1].content for messages, _ in self.requests]


class CountingProbe:
    """Capability probe that hands out a fixed backend and counts evaluations."""

    def __init__(self, backend):
        self.backend = backend
        self.calls = 0
        self.context_sizes = []

    async def __call__(self):
        self.calls += 1
        return BackendProbe(available=True, factory=self._factory, reason="fake backend")

    def _factory(self, context_size):
        self.context_sizes.append(context_size)
        return self.backend


@pytest.fixture
def settings():
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, completion_timeout_seconds=2.0)


@pytest.fixture
def bus():
    return ProgressBus()


@pytest.fixture
def events(bus):
    """Every event emitted on the bus, in order."""
    received = []
    bus.subscribe(received.append)
    return received


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def make_lifecycle(bus, settings):
    """Build a lifecycle over a fake backend, or in heuristic mode when backend is None."""

    def _make(backend=None, preload=True, **overrides):
        lifecycle_settings = settings.model_copy(update=overrides) if overrides else settings
        probe = CountingProbe(backend) if backend is not None else disabled_probe("no backend in tests")
        return ModelLifecycle(
            bus,
            probe=probe,
            settings=lifecycle_settings,
            model_config=ModelConfig(context_size=1024, preload_model=preload),
        )

    return _make


@pytest.fixture
def backend_factory():
    """The FakeBackend class, for tests that script their own responses."""
    return FakeBackend


@pytest.fixture
def probe_factory():
    """The CountingProbe class, for tests that wire their own service."""
    return CountingProbe
