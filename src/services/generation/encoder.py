"""Server-Sent Events encoding for generation frames."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator

from fastapi.responses import StreamingResponse

from schemas.generation import ProtocolFrame


SSE_MEDIA_TYPE = "text/event-stream"

# Cross-origin headers are permissive because the generation stream is
# consumed from a separately hosted editor; CORSMiddleware still applies the
# configured origin allow-list on top of these.
SSE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


def encode_frame(frame: ProtocolFrame) -> str:
    """Serialize a frame as one SSE ``data:`` record."""
    return f"data: {frame.to_wire()}\n\n"


async def encode_frames(frames: AsyncIterable[ProtocolFrame]) -> AsyncIterator[str]:
    """Encode frames one at a time, in order, without batching."""
    async for frame in frames:
        yield encode_frame(frame)


def event_stream_response(frames: AsyncIterable[ProtocolFrame]) -> StreamingResponse:
    """Wrap a frame sequence in a streaming response with SSE headers set once."""
    return StreamingResponse(
        encode_frames(frames),
        media_type=SSE_MEDIA_TYPE,
        headers=SSE_HEADERS,
    )
