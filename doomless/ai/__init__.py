"""On-device model access: backend adapters and lifecycle management."""
from doomless.ai.backend import (
    BackendProbe,
    ModelBackend,
    OllamaBackend,
    disabled_probe,
    probe_ollama,
    static_probe,
)
from doomless.ai.lifecycle import LifecycleState, ModelLifecycle, strip_thinking_blocks

__all__ = [
    "BackendProbe",
    "ModelBackend",
    "OllamaBackend",
    "disabled_probe",
    "probe_ollama",
    "static_probe",
    "LifecycleState",
    "ModelLifecycle",
    "strip_thinking_blocks",
]
