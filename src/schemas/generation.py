"""Schemas for code generation: requests, artifacts and SSE wire frames.

Wire frames are a closed union discriminated on ``type``. Field names on the
wire are camelCase (``fileName``, ``fileIndex``, ``filesGenerated``); the
models accept either spelling when constructed in Python.
"""

from __future__ import annotations

import base64
import binascii
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


MAX_IMAGE_ATTACHMENTS: int = 10


class ImageAttachment(BaseModel):
    """An image forwarded verbatim to the upstream model."""

    mime_type: str = Field(..., alias="mimeType")
    base64: str = Field(..., min_length=1)
    name: str | None = Field(
        default=None,
        description="Original filename; named images are returned as artifacts.",
    )

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @field_validator("mime_type")
    @classmethod
    def _require_image_mime(cls, v: str) -> str:
        if not v.startswith("image/"):
            raise ValueError("mimeType must be an image/* media type")
        return v

    @field_validator("base64")
    @classmethod
    def _require_valid_base64(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("base64 must be valid base64-encoded data") from exc
        return v

    def decoded(self) -> bytes:
        return base64.b64decode(self.base64)


class GenerateRequest(BaseModel):
    """Request payload for a generation run.

    The prompt arrives fully assembled; file and image context has already
    been folded in by the caller.
    """

    prompt: str = Field(..., min_length=1, max_length=200_000)
    images: list[ImageAttachment] = Field(
        default_factory=list, max_length=MAX_IMAGE_ATTACHMENTS
    )

    model_config = ConfigDict(extra="forbid")


class GeneratedFile(BaseModel):
    """A file artifact extracted from generated text."""

    name: str
    path: str
    language: str
    content: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)


class GenerationResult(BaseModel):
    """Payload of the non-streaming generation endpoint."""

    files_generated: int = Field(..., alias="filesGenerated", ge=0)
    files: list[GeneratedFile]

    model_config = ConfigDict(populate_by_name=True)


# -----------------------------------------------------------------------------
# SSE wire frames
# -----------------------------------------------------------------------------


class _WireFrame(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_wire(self) -> str:
        """Compact JSON with camelCase keys."""
        return self.model_dump_json(by_alias=True)


class ReasoningFrame(_WireFrame):
    type: Literal["reasoning"] = "reasoning"
    content: str


class ContentFrame(_WireFrame):
    type: Literal["content"] = "content"
    content: str


class FileStartFrame(_WireFrame):
    type: Literal["file_start"] = "file_start"
    file_index: int = Field(..., alias="fileIndex", ge=0)


class FileCompleteFrame(_WireFrame):
    type: Literal["file_complete"] = "file_complete"
    file_name: str = Field(..., alias="fileName")
    language: str
    content: str
    file_index: int = Field(..., alias="fileIndex", ge=0)

    @classmethod
    def from_file(cls, file: GeneratedFile, index: int) -> FileCompleteFrame:
        return cls(
            file_name=file.path,
            language=file.language,
            content=file.content,
            file_index=index,
        )

    def to_file(self) -> GeneratedFile:
        return GeneratedFile(
            name=self.file_name,
            path=self.file_name,
            language=self.language,
            content=self.content,
        )


class DoneFrame(_WireFrame):
    type: Literal["done"] = "done"
    files_generated: int = Field(..., alias="filesGenerated", ge=0)


class ErrorFrame(_WireFrame):
    type: Literal["error"] = "error"
    error: str


ProtocolFrame = Annotated[
    ReasoningFrame
    | ContentFrame
    | FileStartFrame
    | FileCompleteFrame
    | DoneFrame
    | ErrorFrame,
    Field(discriminator="type"),
]

protocol_frame_adapter: TypeAdapter[ProtocolFrame] = TypeAdapter(ProtocolFrame)

TERMINAL_FRAME_TYPES: tuple[type[_WireFrame], ...] = (DoneFrame, ErrorFrame)
