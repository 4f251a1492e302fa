"""HTTP consumer for the generation stream.

Example:
    async with httpx.AsyncClient(base_url="http://localhost:8000") as http:
        client = GenerationClient(http)
        handle = client.start(GenerateRequest(prompt="A todo app"))
        ...
        handle.cancel()          # optional; keeps partial output
        state = await handle.wait()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import httpx

from schemas.generation import (
    TERMINAL_FRAME_TYPES,
    GenerateRequest,
    ProtocolFrame,
)
from services.generation.decoder import (
    TRUNCATED_STREAM_MESSAGE,
    FrameDecoder,
    StreamState,
)


logger = logging.getLogger(__name__)

STREAM_PATH = "/api/v1/generate/stream"

FrameCallback = Callable[[ProtocolFrame, StreamState], None]


class GenerationClient:
    """Consumes one generation stream per call; never retries."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        path: str = STREAM_PATH,
        token: str | None = None,
    ) -> None:
        self._http = http_client
        self._path = path
        self._token = token

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "text/event-stream"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def stream(
        self,
        request: GenerateRequest,
        state: StreamState | None = None,
        on_frame: FrameCallback | None = None,
    ) -> StreamState:
        """Run one generation, folding frames into ``state`` as they arrive.

        Transport and HTTP failures end in a failed state rather than an
        exception. Cancelling the awaiting task marks the state cancelled,
        closes the connection and re-raises ``CancelledError``.
        """
        state = state if state is not None else StreamState()
        decoder = FrameDecoder()
        payload = request.model_dump(mode="json", by_alias=True)

        try:
            async with self._http.stream(
                "POST", self._path, json=payload, headers=self._headers()
            ) as response:
                if response.is_error:
                    state.fail(f"HTTP error! status: {response.status_code}")
                    return state

                async for chunk in response.aiter_bytes():
                    if self._fold(decoder.feed(chunk), state, on_frame):
                        return state
                self._fold(decoder.finish(), state, on_frame)
        except asyncio.CancelledError:
            logger.info("Generation cancelled")
            state.cancel()
            raise
        except httpx.HTTPError as exc:
            logger.error("Generation stream failed: %s", exc)
            state.fail(str(exc) or "Failed to generate code")
            return state

        if not state.complete:
            logger.warning("Generation stream closed without a terminal frame")
            state.fail(TRUNCATED_STREAM_MESSAGE)
        return state

    @staticmethod
    def _fold(
        frames: list[ProtocolFrame],
        state: StreamState,
        on_frame: FrameCallback | None,
    ) -> bool:
        """Apply frames in order; True once a terminal frame was applied."""
        for frame in frames:
            state.apply(frame)
            if on_frame is not None:
                on_frame(frame, state)
            if isinstance(frame, TERMINAL_FRAME_TYPES):
                return True
        return False

    def start(
        self,
        request: GenerateRequest,
        on_frame: FrameCallback | None = None,
    ) -> GenerationHandle:
        """Start a generation in the background and return its handle."""
        state = StreamState()
        task = asyncio.create_task(self.stream(request, state, on_frame))
        return GenerationHandle(state=state, task=task)


class GenerationHandle:
    """Cancellation handle tied to exactly one in-flight generation."""

    def __init__(self, state: StreamState, task: asyncio.Task[StreamState]) -> None:
        self.state = state
        self._task = task

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        """Stop reading and close the connection; accumulated output is kept."""
        if not self._task.done():
            self._task.cancel()

    async def wait(self) -> StreamState:
        """Wait for the generation to end, however it ends."""
        try:
            return await self._task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            # Re-raise when the waiter itself is being cancelled.
            if current is not None and current.cancelling():
                raise
            self.state.cancel()
            return self.state
