"""Client-side decoding of the generation SSE stream.

:class:`FrameDecoder` rebuilds frames from raw response bytes that may split
a record (or a multi-byte character) at any position. :class:`StreamState`
folds decoded frames into the accumulators a consumer renders from.
"""

from __future__ import annotations

import codecs
import enum
import logging
from dataclasses import dataclass, field

from pydantic import ValidationError

from schemas.generation import (
    ContentFrame,
    DoneFrame,
    ErrorFrame,
    FileCompleteFrame,
    FileStartFrame,
    GeneratedFile,
    ProtocolFrame,
    ReasoningFrame,
    protocol_frame_adapter,
)


logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
TRUNCATED_STREAM_MESSAGE = "Stream ended before generation completed"


class FrameDecoder:
    """Incremental SSE ``data:`` line decoder.

    Lines that are not valid frames are logged and skipped; one bad record
    never stops the decode loop.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[ProtocolFrame]:
        """Decode one raw read and return every frame it completed."""
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._parse_lines(lines)

    def finish(self) -> list[ProtocolFrame]:
        """Flush the decoder at end of stream, parsing an unterminated last line."""
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        return self._parse_lines([remainder]) if remainder else []

    def _parse_lines(self, lines: list[str]) -> list[ProtocolFrame]:
        frames: list[ProtocolFrame] = []
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith(DATA_PREFIX):
                continue
            data = line[len(DATA_PREFIX) :]
            try:
                frames.append(protocol_frame_adapter.validate_json(data))
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed SSE frame (%d error(s)): %.200s",
                    exc.error_count(),
                    data,
                )
        return frames


class GenerationOutcome(enum.StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class StreamState:
    """Accumulated result of one generation as seen by a consumer.

    Created when a generation starts and frozen by ``done``, ``error`` or
    cancellation. Cancelling keeps whatever had already arrived.
    """

    reasoning_text: str = ""
    content_text: str = ""
    files: list[GeneratedFile] = field(default_factory=list)
    complete: bool = False
    error_message: str | None = None
    cancelled: bool = False

    @property
    def frozen(self) -> bool:
        return self.complete or self.cancelled

    @property
    def outcome(self) -> GenerationOutcome | None:
        """Terminal outcome, or None while the generation is still running."""
        if self.cancelled:
            return GenerationOutcome.CANCELLED
        if not self.complete:
            return None
        if self.error_message is not None:
            return GenerationOutcome.FAILED
        return GenerationOutcome.SUCCEEDED

    def apply(self, frame: ProtocolFrame) -> None:
        """Fold one frame into the state; frames after a terminal one are ignored."""
        if self.frozen:
            logger.debug("Ignoring %s frame after stream was finalized", frame.type)
            return

        match frame:
            case ReasoningFrame(content=content):
                self.reasoning_text += content
            case ContentFrame(content=content):
                self.content_text += content
            case FileStartFrame():
                pass
            case FileCompleteFrame():
                if frame.content:
                    self.files.append(frame.to_file())
                else:
                    logger.warning("Dropping empty file frame %s", frame.file_name)
            case DoneFrame():
                self.complete = True
            case ErrorFrame(error=error):
                self.error_message = error or "Generation failed"
                self.complete = True

    def fail(self, message: str) -> None:
        """Mark the generation failed for reasons outside the frame stream."""
        if self.frozen:
            return
        self.error_message = message
        self.complete = True

    def cancel(self) -> None:
        if not self.complete:
            self.cancelled = True
