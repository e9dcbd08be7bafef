"""Transport-agnostic event emission plus the SSE wire framing.

The pipeline only knows `EventSink.emit()` / `EventSink.close()`. The HTTP
layer drains a `QueueEventSink` and frames each envelope with `encode_sse()`.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any, Protocol

from channel_ideas.core.constants import EventType

Envelope = tuple[EventType, dict[str, Any]]


class EventSink(Protocol):
    async def emit(self, event_type: EventType, payload: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class QueueEventSink:
    """Single-producer, single-consumer ordered stream of envelopes.

    The producer emits then closes; the consumer iterates with `async for` and
    sees each envelope as soon as it is emitted. Iteration ends at close().
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Envelope | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event_type: EventType, payload: dict[str, Any]) -> None:
        if self._closed:
            raise RuntimeError("event sink is closed")
        await self._queue.put((event_type, payload))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._queue.put(None)  # Sentinel value

    def __aiter__(self) -> AsyncIterator[Envelope]:
        return self._drain()

    async def _drain(self) -> AsyncIterator[Envelope]:
        while True:
            item = await self._queue.get()
            if item is None:
                return
            yield item


def encode_sse(event_type: EventType, payload: dict[str, Any]) -> str:
    """Frame one envelope as `data: {"type": ..., "data": ...}\\n\\n`."""
    body = json.dumps({"type": EventType(event_type).value, "data": payload}, ensure_ascii=False)
    return f"data: {body}\n\n"
