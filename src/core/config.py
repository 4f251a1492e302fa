"""Application settings and CORS configuration."""

import json
import os
from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_origins(value: object) -> list[str]:
    """Origins from a list, a JSON array string or a comma-separated string."""
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                value = json.loads(text)
            except json.JSONDecodeError as e:
                raise ValueError("CORS_ORIGINS is not a valid JSON array") from e
        else:
            return [part.strip() for part in text.split(",") if part.strip()]
    if isinstance(value, list):
        return [str(origin).strip() for origin in value]
    raise ValueError("CORS_ORIGINS must be a list, JSON array or CSV string")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "Forgeline"
    ENVIRONMENT: str = "development"  # development | production | test

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    ALLOW_CREDENTIALS: bool = True

    # Upstream model configuration
    LLM_PROVIDER: Literal["anthropic", "gemini"] = "anthropic"
    ANTHROPIC_API_KEY: str | None = None
    GEMINI_API_KEY: str | None = None
    GENERATION_MODEL: str = "claude-sonnet-4-5"
    GENERATION_MAX_TOKENS: int = 16_000
    GENERATION_TEMPERATURE: float = 0.7

    # Offline demo generator; also used when no API key is configured
    MOCK_GENERATOR: bool = False
    FALLBACK_CHUNK_DELAY_SECONDS: float = 0.01

    # Pipeline behaviour
    REASONING_TAG_LOOKBACK: bool = False
    INCLUDE_ATTACHMENTS_AS_FILES: bool = True
    FAIL_ON_EMPTY_GENERATION: bool = False

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        return _parse_origins(v)

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Browsers reject a wildcard origin on credentialed requests."""
        self.CORS_ORIGINS = _parse_origins(self.CORS_ORIGINS)
        if self.ALLOW_CREDENTIALS and "*" in self.CORS_ORIGINS:
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. List explicit origins instead."
            )
        return self

    @property
    def active_api_key(self) -> str | None:
        """API key for the configured LLM provider, if any."""
        key = (
            self.ANTHROPIC_API_KEY
            if self.LLM_PROVIDER == "anthropic"
            else self.GEMINI_API_KEY
        )
        if not key or key == "REPLACE_WITH_YOUR_API_KEY":
            return None
        return key

    @property
    def use_fallback_generator(self) -> bool:
        """True when generation should run offline against the demo generator."""
        return self.MOCK_GENERATOR or self.active_api_key is None


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""

    # The Settings initializer accepts a runtime-only `_env_file` kwarg used by
    # pydantic-settings; mypy's stub doesn't allow this call argument.
    return Settings(_env_file=env_file or None)  # type: ignore[call-arg]
