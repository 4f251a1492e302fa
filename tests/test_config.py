"""Tests for generation settings."""

from __future__ import annotations

import pytest

from core.config import Settings, get_settings


def _settings(**overrides) -> Settings:
    overrides.setdefault("MOCK_GENERATOR", False)
    overrides.setdefault("ANTHROPIC_API_KEY", None)
    overrides.setdefault("GEMINI_API_KEY", None)
    return Settings(_env_file=None, **overrides)  # type: ignore[call-arg]


class TestActiveApiKey:
    """Provider key selection."""

    def test_anthropic_key_used_for_anthropic(self) -> None:
        settings = _settings(ANTHROPIC_API_KEY="sk-ant", GEMINI_API_KEY="g-key")
        assert settings.active_api_key == "sk-ant"

    def test_gemini_key_used_for_gemini(self) -> None:
        settings = _settings(
            LLM_PROVIDER="gemini", ANTHROPIC_API_KEY="sk-ant", GEMINI_API_KEY="g-key"
        )
        assert settings.active_api_key == "g-key"

    @pytest.mark.parametrize("key", [None, "", "REPLACE_WITH_YOUR_API_KEY"])
    def test_placeholder_keys_count_as_missing(self, key: str | None) -> None:
        settings = _settings(ANTHROPIC_API_KEY=key)
        assert settings.active_api_key is None
        assert settings.use_fallback_generator is True

    def test_mock_flag_forces_fallback(self) -> None:
        settings = _settings(ANTHROPIC_API_KEY="sk-ant", MOCK_GENERATOR=True)
        assert settings.use_fallback_generator is True

    def test_live_provider_when_key_present(self) -> None:
        settings = _settings(ANTHROPIC_API_KEY="sk-ant")
        assert settings.use_fallback_generator is False


def test_pipeline_defaults() -> None:
    settings = _settings()
    assert settings.REASONING_TAG_LOOKBACK is False
    assert settings.INCLUDE_ATTACHMENTS_AS_FILES is True
    assert settings.FAIL_ON_EMPTY_GENERATION is False


def test_unknown_provider_rejected() -> None:
    with pytest.raises(ValueError):
        _settings(LLM_PROVIDER="openai")


def test_invalid_environment_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "staging")
    get_settings.cache_clear()
    try:
        with pytest.raises(ValueError, match="ENVIRONMENT must be"):
            get_settings()
    finally:
        monkeypatch.undo()
        get_settings.cache_clear()
