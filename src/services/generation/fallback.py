"""Offline demo generator used when no upstream model is available.

The generator produces a small static web project and streams it in short
chunks. Its text goes through the same classifier, encoder and extractor as a
live model, so the demo path exercises production parsing. It can be plugged
in either as a :class:`~services.generation.source.StreamSource` or as the
stream function of a pydantic-ai ``FunctionModel``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator, Sequence

from pydantic_ai.messages import ModelMessage
from pydantic_ai.models.function import AgentInfo, FunctionModel

from schemas.generation import ImageAttachment
from services.generation.source import SourceEvent, StreamComplete, TextDelta


logger = logging.getLogger(__name__)

CHUNK_SIZE = 80

DEMO_REASONING = (
    "## Approach\n"
    "Static single page with one stylesheet and one script.\n\n"
    "## Components to Create\n"
    "1. index.html - page shell\n"
    "2. styles.css - dark theme\n"
    "3. app.js - startup log\n"
)

DEMO_FILES = (
    "```html index.html\n"
    "<!doctype html>\n"
    "<html>\n"
    "  <head>\n"
    '    <meta charset="utf-8" />\n'
    '    <meta name="viewport" content="width=device-width, initial-scale=1" />\n'
    "    <title>Demo App</title>\n"
    '    <link rel="stylesheet" href="styles.css" />\n'
    "  </head>\n"
    "  <body>\n"
    '    <div id="app">Hello from the demo generator</div>\n'
    '    <script src="app.js"></script>\n'
    "  </body>\n"
    "</html>\n"
    "```\n\n"
    "```css styles.css\n"
    "body {\n"
    "  font-family: system-ui, sans-serif;\n"
    "  margin: 0;\n"
    "  padding: 3rem;\n"
    "  background: #0f172a;\n"
    "  color: #e2e8f0;\n"
    "}\n"
    "#app {\n"
    "  font-size: 1.125rem;\n"
    "}\n"
    "```\n\n"
    "```javascript app.js\n"
    'console.log("Demo generator ready");\n'
    "```\n"
)

DEMO_FILE_NAMES = ("index.html", "styles.css", "app.js")


def _chunk(text: str, size: int = CHUNK_SIZE) -> Iterator[str]:
    for start in range(0, len(text), size):
        yield text[start : start + size]


def demo_text() -> str:
    return f"<reasoning>\n{DEMO_REASONING}</reasoning>\n\n{DEMO_FILES}"


def demo_chunks() -> list[str]:
    """The demo response cut into fixed-size deltas.

    The cut ignores tags and fences, so chunks routinely straddle the end of
    the reasoning section and the first fence the way live deltas do.
    """
    return list(_chunk(demo_text()))


class FallbackGenerator:
    """Stream source that replays the demo response with a small delay."""

    def __init__(self, chunk_delay: float = 0.01) -> None:
        self.chunk_delay = chunk_delay

    async def stream(
        self, prompt: str, images: Sequence[ImageAttachment] = ()
    ) -> AsyncIterator[SourceEvent]:
        logger.warning("Using offline demo generator; prompt is ignored")
        for chunk in demo_chunks():
            yield TextDelta(chunk)
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
        yield StreamComplete()

    async def stream_function(
        self, messages: list[ModelMessage], info: AgentInfo
    ) -> AsyncIterator[str]:
        """``FunctionModel`` stream function emitting the same deltas."""
        for chunk in demo_chunks():
            yield chunk
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)

    def as_model(self) -> FunctionModel:
        return FunctionModel(stream_function=self.stream_function)
