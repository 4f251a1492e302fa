"""Factory for the upstream generation model and stream source.

Usage:
    from services.generation.model_factory import get_stream_source

    source = get_stream_source()  # live agent, or the offline demo generator
"""

from __future__ import annotations

import logging

from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.models.anthropic import AnthropicModel
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.providers.anthropic import AnthropicProvider
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.settings import ModelSettings

from core.config import Settings, get_settings
from core.exceptions import ModelConfigurationError
from services.generation.fallback import FallbackGenerator
from services.generation.prompts import CODE_GENERATION_SYSTEM_PROMPT
from services.generation.source import AgentStreamSource, StreamSource


logger = logging.getLogger(__name__)


def create_generation_model(settings: Settings | None = None) -> Model:
    """Create the pydantic-ai model for the configured provider.

    Raises:
        ModelConfigurationError: if the provider has no usable API key.
    """
    settings = settings or get_settings()
    api_key = settings.active_api_key
    if api_key is None:
        raise ModelConfigurationError(
            f"No API key configured for LLM provider '{settings.LLM_PROVIDER}'"
        )

    if settings.LLM_PROVIDER == "gemini":
        logger.info("Using Gemini generation model: %s", settings.GENERATION_MODEL)
        return GoogleModel(
            settings.GENERATION_MODEL, provider=GoogleProvider(api_key=api_key)
        )

    logger.info("Using Anthropic generation model: %s", settings.GENERATION_MODEL)
    return AnthropicModel(
        settings.GENERATION_MODEL, provider=AnthropicProvider(api_key=api_key)
    )


def create_generation_agent(
    model: Model, settings: Settings | None = None
) -> Agent[None, str]:
    """Create a plain-text agent carrying the two-phase system prompt."""
    settings = settings or get_settings()
    return Agent(
        model,
        output_type=str,
        system_prompt=CODE_GENERATION_SYSTEM_PROMPT,
        model_settings=ModelSettings(
            max_tokens=settings.GENERATION_MAX_TOKENS,
            temperature=settings.GENERATION_TEMPERATURE,
        ),
    )


def get_stream_source(settings: Settings | None = None) -> StreamSource:
    """Live agent source, or the offline demo generator when not configured."""
    settings = settings or get_settings()
    if settings.use_fallback_generator:
        reason = "MOCK_GENERATOR=true" if settings.MOCK_GENERATOR else "no API key"
        logger.warning("Using offline demo generator (%s)", reason)
        return FallbackGenerator(chunk_delay=settings.FALLBACK_CHUNK_DELAY_SECONDS)

    model = create_generation_model(settings)
    return AgentStreamSource(create_generation_agent(model, settings))
