import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

_CLOSED = object()


def encode_sse(payload: dict[str, Any]) -> str:
    """Frame one JSON event as a server-sent-events `data:` block."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


class EventChannel:
    """
    Queue between a producer (generation pump, registry stop) and the HTTP
    response that drains it.

    `send` and `close` never block, so they are safe to call from code that
    holds no event-loop context of its own. Events sent after `close` are
    dropped.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def writable(self) -> bool:
        return not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, payload: dict[str, Any]) -> None:
        if self._closed:
            return
        self._queue.put_nowait(payload)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def iter_sse(self) -> AsyncIterator[str]:
        async for event in self.events():
            yield encode_sse(event)
