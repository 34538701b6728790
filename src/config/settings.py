# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings: generation
backend, prompt locations, workflow storage, conversation limits and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_RESOURCES = Path(__file__).resolve().parent.parent / "resources" / "personas"


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === GENERATION BACKEND ===
    llm_provider: str = "google"
    llm_model: str = "gemini-1.5-flash"
    llm_timeout_s: float = 60.0
    llm_max_retries: int = 2

    # Provider API keys
    google_api_key: str = ""
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434"

    # Per-persona overrides, "provider:model" (empty = use llm_provider/llm_model)
    llm_persona_architect: str = ""
    llm_persona_planner: str = ""
    llm_persona_writer: str = ""
    llm_persona_director: str = ""
    llm_persona_novel_architect: str = ""

    # === PROMPTS ===
    prompts_root: Path = _RESOURCES / "roles"
    persona_modules_root: Path = _RESOURCES / "modules"

    # === CONVERSATION ===
    default_temperature: float = 0.7
    default_max_tokens: int = 2048
    history_limit: int = 20
    history_context_entries: int = 3
    history_preview_chars: int = 200
    max_message_chars: int = 4000

    # === WORKFLOW STORAGE ===
    storage_backend: Literal["memory", "json", "sqlite", "redis"] = "json"
    storage_root: Path = Path("~/.storyloom/workflows")
    storage_redis_url: str = ""
    quality_threshold: int = 70

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("llm_timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:  # noqa: N805
        if v <= 0:
            raise ValueError("llm_timeout_s must be > 0")
        return v

    @field_validator("quality_threshold")
    @classmethod
    def validate_quality_threshold(cls, v: int) -> int:  # noqa: N805
        if not 0 <= v <= 100:
            raise ValueError("quality_threshold must be within [0, 100]")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.storage_backend == "redis" and not self.storage_redis_url:
            errors.append("STORAGE_BACKEND=redis requires STORAGE_REDIS_URL")

        if self.history_context_entries > self.history_limit:
            errors.append("HISTORY_CONTEXT_ENTRIES must be <= HISTORY_LIMIT")

        if self.llm_max_retries < 0:
            errors.append("LLM_MAX_RETRIES must be >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
