"""Generation stream orchestration.

One :class:`GenerationPipeline` call handles exactly one generation: it
subscribes to the stream source, labels each delta, emits reasoning/content
frames as they arrive, extracts files once the upstream signals completion
and finishes with exactly one ``done`` or ``error`` frame.

All mutable state lives in a per-call :class:`GenerationRun`; the pipeline
object itself can be shared between requests.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field

from core.config import Settings, get_settings
from core.error_handler import structured_logger
from core.exceptions import EmptyGenerationError, GenerationFailed, UpstreamModelError
from core.observability import get_tracer
from schemas.generation import (
    ContentFrame,
    DoneFrame,
    ErrorFrame,
    FileCompleteFrame,
    GenerateRequest,
    GeneratedFile,
    ImageAttachment,
    ProtocolFrame,
    ReasoningFrame,
)
from services.generation.classifier import (
    DeltaEvent,
    Phase,
    PhaseClassifier,
    strip_reasoning,
)
from services.generation.encoder import encode_frames
from services.generation.extractor import extract_files
from services.generation.source import StreamComplete, StreamSource


logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

DEFAULT_ERROR_MESSAGE = "Failed to generate code"
ATTACHMENT_DIR = "public/assets"


@dataclass
class GenerationRun:
    """Request-scoped accumulator for a single generation.

    Delta labels only drive the streamed frames. Files are extracted from the
    whole response with its reasoning section cut out, since a single delta
    may carry both the closing tag and the first fence.
    """

    classifier: PhaseClassifier
    offset: int = 0
    delta_count: int = 0
    reasoning_chars: int = 0
    completed: bool = False
    text_parts: list[str] = field(default_factory=list)

    def accept(self, text: str) -> list[DeltaEvent]:
        events = self.classifier.feed(text, self.offset)
        self.text_parts.append(text)
        self.offset += len(text)
        self.delta_count += 1
        return self._record(events)

    def flush(self) -> list[DeltaEvent]:
        return self._record(self.classifier.flush())

    def _record(self, events: list[DeltaEvent]) -> list[DeltaEvent]:
        for event in events:
            if event.phase is Phase.REASONING:
                self.reasoning_chars += len(event.text)
        return events

    @property
    def content_buffer(self) -> str:
        return strip_reasoning("".join(self.text_parts))

    @property
    def has_text(self) -> bool:
        return self.offset > 0


def _delta_frame(event: DeltaEvent) -> ProtocolFrame:
    if event.phase is Phase.REASONING:
        return ReasoningFrame(content=event.text)
    return ContentFrame(content=event.text)


def attachment_files(images: list[ImageAttachment]) -> list[GeneratedFile]:
    """Named image attachments as artifacts, so generated code can load them."""
    return [
        GeneratedFile(
            name=image.name,
            path=f"{ATTACHMENT_DIR}/{image.name}",
            language="base64",
            content=image.base64,
        )
        for image in images
        if image.name
    ]


class GenerationPipeline:
    """Turns a stream source into the generation frame protocol."""

    def __init__(self, source: StreamSource, settings: Settings | None = None) -> None:
        self.source = source
        self.settings = settings or get_settings()

    async def stream(self, request: GenerateRequest) -> AsyncIterator[ProtocolFrame]:
        """Yield frames for one generation, ending in ``done`` or ``error``."""
        run = GenerationRun(
            classifier=PhaseClassifier(lookback=self.settings.REASONING_TAG_LOOKBACK)
        )
        started_at = time.monotonic()
        span = _tracer.start_span("generation.stream")
        span.set_attribute("generation.image_count", len(request.images))
        structured_logger.info(
            "Starting code generation",
            input_chars=len(request.prompt),
            image_count=len(request.images),
        )

        try:
            async with aclosing(
                self.source.stream(request.prompt, request.images)
            ) as events:
                async for event in events:
                    if isinstance(event, StreamComplete):
                        run.completed = True
                        break
                    for delta in run.accept(event.text):
                        yield _delta_frame(delta)

            for delta in run.flush():
                yield _delta_frame(delta)

            if not run.completed:
                if not run.has_text:
                    raise UpstreamModelError(
                        "Upstream stream ended without producing any output"
                    )
                logger.warning(
                    "No completion signal from upstream; parsing %d chars received",
                    run.offset,
                )

            files = self._collect_files(run, request)
            for index, file in enumerate(files):
                yield FileCompleteFrame.from_file(file, index)

            span.set_attribute("generation.files", len(files))
            structured_logger.info(
                "Code generation complete",
                files_generated=len(files),
                delta_count=run.delta_count,
                reasoning_chars=run.reasoning_chars,
                duration_ms=int((time.monotonic() - started_at) * 1000),
            )
            yield DoneFrame(files_generated=len(files))
        except Exception as exc:
            span.record_exception(exc)
            structured_logger.exception(
                "Code generation failed",
                exception_type=exc.__class__.__name__,
                delta_count=run.delta_count,
            )
            yield ErrorFrame(error=str(exc) or DEFAULT_ERROR_MESSAGE)
        finally:
            span.end()

    def _collect_files(
        self, run: GenerationRun, request: GenerateRequest
    ) -> list[GeneratedFile]:
        files = extract_files(run.content_buffer)
        if not files and self.settings.FAIL_ON_EMPTY_GENERATION:
            raise EmptyGenerationError()
        if self.settings.INCLUDE_ATTACHMENTS_AS_FILES:
            files.extend(attachment_files(request.images))
        return files

    def sse(self, request: GenerateRequest) -> AsyncIterator[str]:
        """Encoded SSE records for one generation."""
        return encode_frames(self.stream(request))

    async def generate(self, request: GenerateRequest) -> list[GeneratedFile]:
        """Run a generation to completion and return its files.

        Raises:
            GenerationFailed: if the stream ends with an ``error`` frame.
        """
        files: list[GeneratedFile] = []
        async with aclosing(self.stream(request)) as frames:
            async for frame in frames:
                if isinstance(frame, FileCompleteFrame):
                    files.append(frame.to_file())
                elif isinstance(frame, ErrorFrame):
                    raise GenerationFailed(frame.error)
        return files
