"""Focused unit tests for global exception handling behaviors.

These tests exercise the public contract via a small FastAPI app using the
installed exception handler and correlation middleware.
"""

from __future__ import annotations

from unittest.mock import patch

from fastapi import FastAPI, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field

from core.error_handler import (
    StructuredLogger,
    get_correlation_id,
    global_exception_handler,
    set_correlation_id,
)
from core.exceptions import (
    EmptyGenerationError,
    GenerationError,
    ModelConfigurationError,
    UpstreamModelError,
)
from core.middleware import CorrelationIdMiddleware


class Item(BaseModel):
    name: str = Field(min_length=3)
    qty: int = Field(ge=1)


def build_test_app(env: str) -> TestClient:
    app = FastAPI()
    app.add_middleware(CorrelationIdMiddleware)
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(GenerationError, global_exception_handler)
    app.add_exception_handler(HTTPException, global_exception_handler)
    app.add_exception_handler(RequestValidationError, global_exception_handler)

    @app.post("/items")
    async def create_item(item: Item):  # pragma: no cover - executed via client
        return {"ok": True, "item": item.model_dump()}

    @app.get("/not-configured")
    async def not_configured():
        raise ModelConfigurationError()

    @app.get("/upstream")
    async def upstream():
        raise UpstreamModelError("Anthropic returned 529")

    @app.get("/empty")
    async def empty():
        raise EmptyGenerationError()

    @app.get("/boom")
    async def boom():
        raise RuntimeError("Exploded with secret=should_not_leak")

    @app.get("/forbidden")
    async def forbidden():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied",
        )

    client = TestClient(app, raise_server_exceptions=False)

    # Patch environment setting per test invocation
    patcher = patch("core.error_handler.get_settings")
    mocked = patcher.start()
    mocked.return_value.ENVIRONMENT = env

    # Ensure patcher stops at client finalizer
    def fin():
        patcher.stop()

    client._finalizer = fin  # type: ignore[attr-defined]
    return client


def test_validation_error_production():
    client = build_test_app("production")
    resp = client.post("/items", json={"name": "ab", "qty": 0})
    assert resp.status_code == 422
    data = resp.json()
    assert data["error"]["type"] == "validation_error"
    # production should not include validation_errors
    assert "validation_errors" not in data["error"]
    client._finalizer()  # type: ignore[attr-defined]


def test_validation_error_development():
    client = build_test_app("development")
    resp = client.post("/items", json={"name": "ab", "qty": 0})
    assert resp.status_code == 422
    data = resp.json()
    assert len(data["error"]["validation_errors"]) == 2
    client._finalizer()  # type: ignore[attr-defined]


def test_model_not_configured_is_503():
    client = build_test_app("production")
    resp = client.get("/not-configured")
    assert resp.status_code == 503
    body = resp.json()
    assert body["error"]["type"] == "model_not_configured"
    assert body["message"] == "No valid LLM provider configured"
    client._finalizer()  # type: ignore[attr-defined]


def test_upstream_failure_is_502():
    client = build_test_app("production")
    resp = client.get("/upstream")
    assert resp.status_code == 502
    body = resp.json()
    assert body["error"]["type"] == "upstream_failed"
    assert body["message"] == "Anthropic returned 529"
    client._finalizer()  # type: ignore[attr-defined]


def test_empty_generation_is_422():
    client = build_test_app("development")
    resp = client.get("/empty")
    assert resp.status_code == 422
    assert resp.json()["error"]["type"] == "no_files"
    client._finalizer()  # type: ignore[attr-defined]


def test_generic_exception_production():
    client = build_test_app("production")
    resp = client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["type"] == "internal_server_error"
    assert "traceback" not in body["error"]
    assert "secret=should_not_leak" not in str(body)
    client._finalizer()  # type: ignore[attr-defined]


def test_generic_exception_development():
    client = build_test_app("development")
    resp = client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["type"] == "internal_server_error"
    assert "traceback" in body["error"]
    client._finalizer()  # type: ignore[attr-defined]


def test_http_error_production_hides_details():
    client = build_test_app("production")
    resp = client.get("/forbidden")
    assert resp.status_code == 403
    body = resp.json()
    assert body["error"]["type"] == "http_error"
    assert body["error"]["correlation_id"]
    assert body["success"] is False
    assert "details" not in body["error"]
    client._finalizer()  # type: ignore[attr-defined]


def test_http_error_development_includes_details():
    client = build_test_app("development")
    resp = client.get("/forbidden")
    assert resp.status_code == 403
    body = resp.json()
    assert body["error"]["details"]["detail"] == "Access denied"
    client._finalizer()  # type: ignore[attr-defined]


def test_correlation_id_round_trips_through_header():
    client = build_test_app("production")
    resp = client.get("/forbidden", headers={"X-Correlation-ID": "req-123"})
    assert resp.headers["X-Correlation-ID"] == "req-123"
    assert resp.json()["error"]["correlation_id"] == "req-123"
    client._finalizer()  # type: ignore[attr-defined]


def test_correlation_id_generated_when_missing():
    client = build_test_app("production")
    resp = client.get("/forbidden")
    assert resp.headers["X-Correlation-ID"]
    assert resp.json()["error"]["correlation_id"] == resp.headers["X-Correlation-ID"]
    client._finalizer()  # type: ignore[attr-defined]


def test_generation_error_str_is_message():
    exc = UpstreamModelError("rate limited")
    assert str(exc) == "rate limited"
    assert exc.error_code == "upstream_failed"
    assert str(EmptyGenerationError()) == "Generation produced no files"


class TestStructuredLogger:
    """Sanitization of structured log fields."""

    def test_sensitive_fields_are_redacted(self):
        logger = StructuredLogger("test")
        data = logger._sanitize_data(
            {
                "user_prompt": "build me a bank",
                "api_key": "sk-123",
                "image_count": 2,
                "nested": {"authorization": "Bearer x", "files": 3},
                "items": [{"base64": "AAAA"}],
            }
        )

        assert data["user_prompt"] == "[REDACTED]"
        assert data["api_key"] == "[REDACTED]"
        assert data["image_count"] == 2
        assert data["nested"] == {"authorization": "[REDACTED]", "files": 3}
        assert data["items"] == [{"base64": "[REDACTED]"}]

    def test_log_record_carries_correlation_id(self, caplog):
        set_correlation_id("corr-1")
        logger = StructuredLogger("forgeline.test")

        with caplog.at_level("INFO", logger="forgeline.test"):
            logger.info("Generation started", image_count=1)

        record = caplog.records[-1]
        assert record.structured_data["correlation_id"] == "corr-1"
        assert record.structured_data["image_count"] == 1
        set_correlation_id(None)

    def test_get_correlation_id_creates_one(self):
        set_correlation_id(None)
        first = get_correlation_id()
        assert first
        assert get_correlation_id() == first
        set_correlation_id(None)
