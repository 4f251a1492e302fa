"""Shared test fixtures for pytest.

We pin ENVIRONMENT=test and the offline demo generator before importing the
app so that settings never read an env file and no test needs an API key.
"""

import json
import os
from collections.abc import AsyncGenerator, AsyncIterator, Generator, Sequence

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient


os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("MOCK_GENERATOR", "true")
os.environ.setdefault("FALLBACK_CHUNK_DELAY_SECONDS", "0")

from api.v1.generate import get_generation_pipeline
from core.config import Settings
from main import app
from schemas.generation import ImageAttachment
from services.generation.pipeline import GenerationPipeline
from services.generation.source import SourceEvent, StreamComplete, TextDelta


SPEC_EXAMPLE_DELTAS = [
    "<reasoning>",
    "Plan: one file.",
    "</reasoning>",
    "\n\n```html index.html\n<h1>Hi</h1>\n```",
]


class ScriptedSource:
    """Stream source that replays fixed deltas.

    ``complete=False`` ends the stream without the completion signal and
    ``fail_with`` raises after the scripted deltas.
    """

    def __init__(
        self,
        deltas: Sequence[str],
        *,
        complete: bool = True,
        fail_with: Exception | None = None,
    ) -> None:
        self.deltas = list(deltas)
        self.complete = complete
        self.fail_with = fail_with
        self.calls: list[tuple[str, tuple[ImageAttachment, ...]]] = []

    async def stream(
        self, prompt: str, images: Sequence[ImageAttachment] = ()
    ) -> AsyncIterator[SourceEvent]:
        self.calls.append((prompt, tuple(images)))
        for delta in self.deltas:
            yield TextDelta(delta)
        if self.fail_with is not None:
            raise self.fail_with
        if self.complete:
            yield StreamComplete()


def parse_sse(text: str) -> list[dict]:
    """Decode every ``data:`` record of an SSE body."""
    return [
        json.loads(line[6:]) for line in text.split("\n") if line.startswith("data: ")
    ]


@pytest.fixture
def test_settings() -> Settings:
    """Settings built without env files, with the demo generator disabled."""
    return Settings(_env_file=None, MOCK_GENERATOR=False)  # type: ignore[call-arg]


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def scripted_pipeline(test_settings: Settings):
    """Factory installing a pipeline over scripted deltas for the API tests."""

    def _install(deltas: Sequence[str], **kwargs) -> GenerationPipeline:
        pipeline = GenerationPipeline(ScriptedSource(deltas, **kwargs), test_settings)
        app.dependency_overrides[get_generation_pipeline] = lambda: pipeline
        return pipeline

    yield _install
    app.dependency_overrides.pop(get_generation_pipeline, None)


@pytest_asyncio.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Async client bound to the ASGI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
