"""
Event bus and SSE encoder.

Stages push `StreamEvent` values onto an `EventChannel`; the HTTP response
drains it through `frames()`, which is the only writer of the outbound
connection. Frames are yielded one at a time so each token is flushed as
soon as it is produced.
"""

import asyncio
import json
from collections.abc import AsyncIterator

from rag_chat.models.events import StreamEvent

_CLOSED = object()


def encode_event(event: StreamEvent) -> str:
    """Serialize one event as `event: <kind>\\ndata: <json>\\n\\n`."""
    data = json.dumps(event.payload(), ensure_ascii=False, separators=(",", ":"))
    return f"event: {event.kind}\ndata: {data}\n\n"


class EventChannel:
    """Single-consumer queue of stream events for one chat turn."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event: StreamEvent) -> None:
        if self._closed:
            raise RuntimeError(f"Cannot emit '{event.kind}' on a closed channel")
        await self._queue.put(event)

    def close(self) -> None:
        """Signal the writer that no more events follow. Idempotent."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def events(self) -> AsyncIterator[StreamEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def frames(self) -> AsyncIterator[str]:
        async for event in self.events():
            yield encode_event(event)
