"""Adapters that turn an upstream model stream into ordered text deltas."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Protocol

from pydantic_ai import Agent
from pydantic_ai.messages import BinaryContent, UserContent

from schemas.generation import ImageAttachment


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TextDelta:
    """An incremental fragment of generated text."""

    text: str


@dataclass(frozen=True, slots=True)
class StreamComplete:
    """Explicit end-of-generation signal from the upstream."""


SourceEvent = TextDelta | StreamComplete


class StreamSource(Protocol):
    """Anything that can stream generated text for a prompt."""

    def stream(
        self, prompt: str, images: Sequence[ImageAttachment] = ()
    ) -> AsyncIterator[SourceEvent]:
        """Yield text deltas in order, normally followed by ``StreamComplete``."""
        ...


def build_user_prompt(
    prompt: str, images: Sequence[ImageAttachment] = ()
) -> str | list[UserContent]:
    """Prompt text followed by image attachments, in their original order."""
    if not images:
        return prompt
    content: list[UserContent] = [prompt]
    for image in images:
        content.append(BinaryContent(data=image.decoded(), media_type=image.mime_type))
    return content


class AgentStreamSource:
    """Stream source backed by a pydantic-ai agent with plain text output."""

    def __init__(self, agent: Agent[None, str]) -> None:
        self._agent = agent

    async def stream(
        self, prompt: str, images: Sequence[ImageAttachment] = ()
    ) -> AsyncIterator[SourceEvent]:
        user_prompt = build_user_prompt(prompt, images)
        if images:
            logger.info("Including %d image(s) in upstream request", len(images))

        async with self._agent.run_stream(user_prompt) as result:
            # debounce_by=None forwards every upstream delta as it arrives.
            async for text in result.stream_text(delta=True, debounce_by=None):
                if text:
                    yield TextDelta(text)
        yield StreamComplete()
