"""Server-Sent Events adapter for stream frames."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from litestar.response import ServerSentEvent
from litestar.response.sse import ServerSentEventMessage

from relay_server.resources.stream import Frame


async def _messages(
    frames: AsyncGenerator[Frame, None],
) -> AsyncGenerator[ServerSentEventMessage, None]:
    try:
        async for event, data in frames:
            yield ServerSentEventMessage(data=data, event=event)
    finally:
        # Runs on client disconnect too; releases the hub subscription.
        await frames.aclose()


def sse_response(frames: AsyncGenerator[Frame, None]) -> ServerSentEvent:
    """Wrap frames in an uncached ``text/event-stream`` response."""
    return ServerSentEvent(
        _messages(frames),
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
