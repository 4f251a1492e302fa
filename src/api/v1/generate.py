"""Code generation endpoints."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from schemas.api import ApiResponse
from schemas.generation import GenerateRequest, GenerationResult
from services.generation.encoder import SSE_MEDIA_TYPE, event_stream_response
from services.generation.model_factory import get_stream_source
from services.generation.pipeline import GenerationPipeline


__all__ = [
    "generate_files",
    "get_generation_pipeline",
    "stream_generation",
]

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/generate", tags=["generate"])


@lru_cache
def get_generation_pipeline() -> GenerationPipeline:
    """Shared pipeline; it holds no per-request state."""
    return GenerationPipeline(get_stream_source())


@router.post(
    "/stream",
    response_class=StreamingResponse,
    responses={200: {"content": {SSE_MEDIA_TYPE: {}}}},
    summary="Stream code generation via Server-Sent Events",
)
async def stream_generation(
    payload: GenerateRequest,
    pipeline: Annotated[GenerationPipeline, Depends(get_generation_pipeline)],
) -> StreamingResponse:
    """Stream a generation as SSE frames.

    Event JSON schema (sent in `data:` lines):
      reasoning: {"type": "reasoning", "content": str}
      content: {"type": "content", "content": str}
      file_complete: {"type": "file_complete", "fileName": str,
                      "language": str, "content": str, "fileIndex": int}
      done: {"type": "done", "filesGenerated": int}
      error: {"type": "error", "error": str}

    `fileName` is the full relative path of the file. Named image attachments
    follow the generated files as `file_complete` frames with language
    `base64`, the image data as content and a `fileName` that includes its
    directory (`public/assets/<name>`). Unnamed images are only sent to the
    model.

    Exactly one `done` or `error` frame ends every stream.
    """
    return event_stream_response(pipeline.stream(payload))


@router.post("", response_model=ApiResponse[GenerationResult])
async def generate_files(
    payload: GenerateRequest,
    pipeline: Annotated[GenerationPipeline, Depends(get_generation_pipeline)],
) -> ApiResponse[GenerationResult]:
    """Generate code without streaming and return the extracted files."""
    files = await pipeline.generate(payload)
    logger.debug("generate_files: returning %d file(s)", len(files))
    return ApiResponse(
        success=True,
        data=GenerationResult(files_generated=len(files), files=files),
        message="Code generated successfully",
    )
