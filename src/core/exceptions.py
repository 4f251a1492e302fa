"""Domain exceptions for the generation pipeline.

Each generation error carries a stable `error_code` so the API layer and the
stream orchestrator can map it to HTTP responses or terminal `error` frames
without string matching.
"""


class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class GenerationError(DomainError):
    """Base class for code generation errors."""

    error_code = "generation_error"
    default_message = "Code generation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ModelConfigurationError(GenerationError):
    """Raised when no usable upstream model is configured."""

    error_code = "model_not_configured"
    default_message = "No valid LLM provider configured"


class UpstreamModelError(GenerationError):
    """Raised when the upstream model stream fails or produces nothing."""

    error_code = "upstream_failed"
    default_message = "Upstream model stream failed"


class GenerationFailed(GenerationError):
    """Raised by non-streaming callers when a stream ends in an error frame."""

    error_code = "generation_failed"
    default_message = "Failed to generate code"


class EmptyGenerationError(GenerationError):
    error_code = "no_files"
    default_message = "Generation produced no files"
