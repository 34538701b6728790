# tests/unit/config/test_unit_settings.py — v2
"""Tests for config/settings.py — typed Settings and validation rules."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from storyloom.config.settings import ConfigurationError, Settings, load_settings


class TestSettingsDefaults:
    def test_default_backend(self):
        s = Settings(_env_file=None)
        assert s.llm_provider == "google"
        assert s.llm_model == "gemini-1.5-flash"
        assert s.llm_max_retries == 2

    def test_default_conversation_limits(self):
        s = Settings(_env_file=None)
        assert s.history_limit == 20
        assert s.history_context_entries == 3
        assert s.max_message_chars == 4000

    def test_default_storage(self):
        s = Settings(_env_file=None)
        assert s.storage_backend == "json"
        assert s.quality_threshold == 70

    def test_bundled_prompt_roots_exist(self):
        s = Settings(_env_file=None)
        assert (s.prompts_root / "writer.prompt.md").is_file()
        assert (s.persona_modules_root / "text-creator" / "text-creator.role.md").is_file()


class TestSettingsEnvironment:
    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("QUALITY_THRESHOLD", "80")
        monkeypatch.setenv("LLM_PERSONA_WRITER", "openai:gpt-4o")
        monkeypatch.setenv("PROMPTS_ROOT", str(tmp_path))
        s = Settings(_env_file=None)
        assert s.quality_threshold == 80
        assert s.llm_persona_writer == "openai:gpt-4o"
        assert s.prompts_root == Path(tmp_path)

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("STORAGE_BACKEND=sqlite\nLOG_LEVEL=DEBUG\n", encoding="utf-8")
        s = Settings(_env_file=env_file)
        assert s.storage_backend == "sqlite"
        assert s.log_level == "DEBUG"


class TestSettingsValidation:
    def test_redis_requires_url(self):
        with pytest.raises(ConfigurationError, match="STORAGE_REDIS_URL"):
            Settings(_env_file=None, storage_backend="redis")

    def test_context_entries_bounded_by_limit(self):
        with pytest.raises(ConfigurationError, match="HISTORY_CONTEXT_ENTRIES"):
            Settings(_env_file=None, history_limit=2, history_context_entries=3)

    def test_negative_retries(self):
        with pytest.raises(ConfigurationError, match="LLM_MAX_RETRIES"):
            Settings(_env_file=None, llm_max_retries=-1)

    def test_errors_are_combined(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Settings(_env_file=None, storage_backend="redis", llm_max_retries=-1)
        assert "; " in str(exc_info.value)

    def test_timeout_positive(self):
        with pytest.raises(ValidationError, match="llm_timeout_s"):
            Settings(_env_file=None, llm_timeout_s=0)

    @pytest.mark.parametrize("threshold", [-1, 101])
    def test_quality_threshold_range(self, threshold):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, quality_threshold=threshold)

    def test_unknown_backend(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, storage_backend="s3")


class TestLoadSettings:
    def test_overrides(self, monkeypatch):
        monkeypatch.chdir("/")
        s = load_settings(history_limit=5)
        assert s.history_limit == 5
