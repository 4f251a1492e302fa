"""Centralized error handling and logging for the Forgeline API.

This module provides:
- Correlation IDs shared by logs and error envelopes
- Structured logging with redaction of credentials and user payloads
- One exception handler that renders every failure as an ``ErrorResponse``

Only failures that happen before a response starts reach the handler. Once a
generation stream is open, the pipeline reports failures as a terminal
``error`` frame instead.
"""

import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pythonjsonlogger.json import JsonFormatter
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import get_settings
from core.exceptions import (
    EmptyGenerationError,
    GenerationError,
    ModelConfigurationError,
)
from core.security_config import get_allowed_error_fields, is_sensitive_key
from schemas.api import ErrorResponse


REDACTED = "[REDACTED]"

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

logger = logging.getLogger(__name__)

# Anything not listed maps to 502: the failure happened upstream of us.
GENERATION_ERROR_STATUS: dict[type[GenerationError], int] = {
    ModelConfigurationError: 503,
    EmptyGenerationError: 422,
}


def get_correlation_id() -> str:
    """Return the current correlation ID, creating one if the context has none."""
    correlation_id = _correlation_id_var.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        _correlation_id_var.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id_var.set(correlation_id)


class StructuredLogger:
    """Logger wrapper attaching the correlation ID and redacted fields.

    Fields are passed as keyword arguments and travel on the record as
    ``structured_data``; the production JSON formatter emits them as keys.
    Field names matching ``core.security_config.SENSITIVE_KEYS`` are
    redacted at any depth.
    """

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def _emit(
        self,
        level: int,
        message: str,
        fields: dict[str, Any],
        exc_info: bool = False,
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        correlation_id = get_correlation_id()
        structured = {
            "correlation_id": correlation_id,
            "message": message,
            **self._sanitize_data(fields),
        }
        if get_settings().ENVIRONMENT != "production":
            message = f"[{correlation_id}] {message}"
        self.logger.log(
            level, message, extra={"structured_data": structured}, exc_info=exc_info
        )

    def _sanitize_data(self, data: dict[str, Any]) -> dict[str, Any]:
        """Copy of ``data`` with sensitive keys masked."""
        return {
            key: REDACTED if is_sensitive_key(key) else self._sanitize_value(value)
            for key, value in data.items()
        }

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self._sanitize_data(value)
        if isinstance(value, list | tuple):
            return [self._sanitize_value(item) for item in value]
        return value

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit(logging.ERROR, message, fields)

    def exception(self, message: str, **fields: Any) -> None:
        """Log at ERROR level with the active exception's traceback."""
        self._emit(logging.ERROR, message, fields, exc_info=True)


structured_logger = StructuredLogger(__name__)


def _error_envelope(
    *,
    status_code: int,
    error_type: str,
    message: str,
    environment: str,
    **diagnostics: Any,
) -> JSONResponse:
    """Render an ``ErrorResponse``, keeping only diagnostics allowed here.

    ``correlation_id`` and ``type`` are always present; everything else is
    filtered through ``get_allowed_error_fields(environment)``.
    """
    allowed = get_allowed_error_fields(environment)
    error: dict[str, Any] = {"correlation_id": get_correlation_id(), "type": error_type}
    error.update(
        (name, value)
        for name, value in diagnostics.items()
        if name in allowed and value is not None
    )
    body = ErrorResponse(message=message, error=error, success=False)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _http_error(exc: StarletteHTTPException, environment: str) -> JSONResponse:
    return _error_envelope(
        status_code=exc.status_code,
        error_type="http_error",
        message="An HTTP error occurred",
        environment=environment,
        details={"detail": exc.detail},
        exception_type=exc.__class__.__name__,
    )


def _validation_error(
    exc: ValidationError | RequestValidationError, environment: str
) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    structured_logger.warning("Request validation failed", error_count=len(errors))
    return _error_envelope(
        status_code=422,
        error_type="validation_error",
        message="Invalid request data provided",
        environment=environment,
        validation_errors=errors,
    )


def _generation_error(exc: GenerationError, environment: str) -> JSONResponse:
    structured_logger.warning(
        "Generation request failed",
        error_code=exc.error_code,
        exception_type=exc.__class__.__name__,
    )
    return _error_envelope(
        status_code=GENERATION_ERROR_STATUS.get(type(exc), 502),
        error_type=exc.error_code,
        message=exc.message,
        environment=environment,
    )


def _unhandled_error(exc: Exception, environment: str) -> JSONResponse:
    structured_logger.exception(
        "Unhandled exception", exception_type=exc.__class__.__name__
    )
    return _error_envelope(
        status_code=500,
        error_type="internal_server_error",
        message="An internal error occurred",
        environment=environment,
        traceback="".join(traceback.format_exception(exc)).strip(),
        exception_type=exc.__class__.__name__,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Single handler registered for every exception type the app maps.

    Production responses carry only the correlation ID and error type;
    development adds details, tracebacks and validation errors.
    """
    environment = get_settings().ENVIRONMENT

    if isinstance(exc, StarletteHTTPException):
        return _http_error(exc, environment)
    if isinstance(exc, ValidationError | RequestValidationError):
        return _validation_error(exc, environment)
    if isinstance(exc, GenerationError):
        return _generation_error(exc, environment)
    return _unhandled_error(exc, environment)


def setup_logging() -> None:
    """Install one stdout handler on the root logger; later calls are no-ops."""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    settings = get_settings()
    production = settings.ENVIRONMENT == "production"
    log_level = logging.DEBUG if settings.ENVIRONMENT == "development" else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if production:
        handler.setFormatter(
            JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)

    if production:
        for noisy in ("uvicorn.access", "httpx", "anthropic", "google_genai"):
            logging.getLogger(noisy).setLevel(logging.WARNING)
