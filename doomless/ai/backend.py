"""
Model backend contract and the Ollama adapter.

The pipeline treats the model as an opaque text-completion capability:
download, init, complete, destroy. Whether a backend exists at all is
decided by a capability probe that never raises; an unavailable backend
routes the lifecycle to heuristic mode.
"""

from __future__ import annotations

import importlib.util
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

import httpx
from loguru import logger

from doomless.config import Settings, get_settings
from doomless.models import CompletionMessage, CompletionOptions, CompletionResult

ProgressCallback = Callable[[float], None]


class ModelBackend(Protocol):
    """Boundary contract of an on-device model handle."""

    concurrent_safe: bool

    async def download(self, on_progress: ProgressCallback) -> None: ...

    async def init(self) -> None: ...

    async def complete(
        self,
        messages: list[CompletionMessage],
        options: CompletionOptions,
    ) -> CompletionResult: ...

    async def destroy(self) -> None: ...


BackendFactory = Callable[[int], ModelBackend]


@dataclass(frozen=True)
class BackendProbe:
    """Outcome of a capability probe, evaluated once per lifecycle."""

    available: bool
    factory: BackendFactory | None = None
    reason: str = ""


BackendProber = Callable[[], Awaitable[BackendProbe]]


def disabled_probe(reason: str = "model backend disabled") -> BackendProber:
    """Build a probe that always reports the backend as unavailable."""

    async def probe() -> BackendProbe:
        return BackendProbe(available=False, reason=reason)

    return probe


def static_probe(backend: ModelBackend) -> BackendProber:
    """Build a probe that hands out an already constructed backend."""

    async def probe() -> BackendProbe:
        return BackendProbe(available=True, factory=lambda _context_size: backend)

    return probe


# =============================================================================
# Ollama
# =============================================================================


class OllamaBackend:
    """
    Model backend served by a local Ollama daemon.

    The daemon queues concurrent requests itself, so completions do not
    need to be serialized on our side.
    """

    concurrent_safe = True

    def __init__(self, host: str, model: str, context_size: int = 2048):
        import ollama

        self.host = host
        self.model = model
        self.context_size = context_size
        self._client = ollama.AsyncClient(host=host)
        self._loaded = False

    async def download(self, on_progress: ProgressCallback) -> None:
        """Pull the model, reporting completed/total bytes per layer."""
        async for part in await self._client.pull(self.model, stream=True):
            total = part.get("total")
            completed = part.get("completed")
            if total and completed is not None:
                on_progress(completed / total)
        on_progress(1.0)

    async def init(self) -> None:
        """Verify the model is present on the daemon."""
        await self._client.show(self.model)
        self._loaded = True

    async def complete(
        self,
        messages: list[CompletionMessage],
        options: CompletionOptions,
    ) -> CompletionResult:
        response = await self._client.chat(
            model=self.model,
            messages=[message.to_dict() for message in messages],
            options=self._build_options(options),
            stream=False,
        )
        text = response["message"]["content"] or ""
        return CompletionResult(success=bool(text.strip()), response=text)

    async def destroy(self) -> None:
        """Unload the model from daemon memory."""
        if not self._loaded:
            return
        self._loaded = False
        await self._client.generate(model=self.model, prompt="", keep_alive=0)

    def _build_options(self, options: CompletionOptions) -> dict:
        mapped = {
            "num_ctx": self.context_size,
            "temperature": options.temperature,
            "top_p": options.top_p,
            "top_k": options.top_k,
            "num_predict": options.max_tokens,
            "stop": options.stop_sequences,
        }
        return {key: value for key, value in mapped.items() if value is not None}


def ollama_installed() -> bool:
    """Check whether the ollama client distribution is importable."""
    return importlib.util.find_spec("ollama") is not None


def probe_ollama(settings: Settings | None = None) -> BackendProber:
    """
    Build the default capability probe.

    The backend is unavailable (not an error) when it is disabled in
    settings, when the ollama package is missing, or when the daemon does
    not answer its version endpoint.
    """
    settings = settings or get_settings()

    async def probe() -> BackendProbe:
        if not settings.has_model_backend():
            return BackendProbe(available=False, reason="model backend disabled in settings")

        if not ollama_installed():
            return BackendProbe(
                available=False,
                reason="ollama is not installed (pip install 'doomless[local-ai]')",
            )

        host = settings.ollama_host.rstrip("/")
        try:
            async with httpx.AsyncClient(timeout=settings.probe_timeout_seconds) as client:
                response = await client.get(f"{host}/api/version")
                response.raise_for_status()
                payload = response.json()
            version = payload.get("version", "unknown") if isinstance(payload, dict) else "unknown"
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Ollama probe failed: {e}")
            return BackendProbe(available=False, reason=f"Ollama unreachable at {host}")

        logger.debug(f"Ollama {version} reachable at {host}")

        def factory(context_size: int) -> ModelBackend:
            return OllamaBackend(host=host, model=settings.ai_model, context_size=context_size)

        return BackendProbe(available=True, factory=factory, reason=f"ollama {version}")

    return probe
