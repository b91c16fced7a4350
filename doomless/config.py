"""
Configuration settings for the doomless content pipeline.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class ModelConfig:
    """Model settings consumed once when the lifecycle initializes."""

    context_size: int = 2048
    preload_model: bool = True


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    # ========================================
    # Model Backend
    # ========================================
    model_backend: Literal["ollama", "none"] = Field(
        default="ollama",
        description="On-device model backend ('none' forces heuristic mode)",
    )
    ollama_host: str = Field(
        default="http://127.0.0.1:11434",
        description="Ollama server URL",
    )
    ai_model: str = Field(
        default="gemma3:1b",
        description="Model tag used for fact, quiz and preference generation",
    )
    model_context_size: int = Field(
        default=2048,
        description="Context window requested when the model handle is created",
    )
    model_preload: bool = Field(
        default=True,
        description="Download/prepare the model during initialization",
    )
    probe_timeout_seconds: float = Field(
        default=2.0,
        description="Timeout for the backend availability probe",
    )
    completion_timeout_seconds: float = Field(
        default=120.0,
        description="Per-completion timeout; expiry counts as a failed completion",
    )

    # ========================================
    # Fact Extraction
    # ========================================
    fact_chunk_size: int = Field(
        default=6000,
        description="Maximum characters of source text per completion request",
    )
    fact_max_length: int = Field(
        default=200,
        description="Maximum characters per extracted fact",
    )
    fallback_max_facts: int = Field(
        default=120,
        description="Cap on facts produced by the heuristic sentence splitter",
    )
    related_fact_count: int = Field(
        default=3,
        description="Number of related facts requested per swipe",
    )

    # ========================================
    # Quiz Generation
    # ========================================
    quiz_batch_size: int = Field(
        default=8,
        description="Maximum facts sent to the model per quiz request",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path (rotated at 10 MB)",
    )

    def get_model_config(self) -> ModelConfig:
        """Get the model configuration consumed once at initialization."""
        return ModelConfig(
            context_size=self.model_context_size,
            preload_model=self.model_preload,
        )

    def has_model_backend(self) -> bool:
        """Check if a model backend is configured at all."""
        return self.model_backend != "none"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
