from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

import anyio
from anyio.streams.memory import (
    MemoryObjectReceiveStream,
    MemoryObjectSendStream,
)

from sealer.app.events.models import TERMINAL_EVENT_TYPES, SealEvent

logger = logging.getLogger(__name__)


class MemoryQueueEventEmitter:
    """
    In-memory event emitter backed by an anyio memory object stream.

    Properties:
    - single consumer
    - events are delivered in emission order
    - closes itself after a terminal event
    """

    def __init__(self, max_buffer_size: float = float("inf")) -> None:
        send, receive = anyio.create_memory_object_stream(max_buffer_size)
        self._send: MemoryObjectSendStream[Optional[SealEvent]] = send
        self._receive: MemoryObjectReceiveStream[Optional[SealEvent]] = receive
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event: SealEvent) -> None:
        if self._closed:
            return

        try:
            await self._send.send(event)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            # Consumer went away; observability never breaks the seal.
            logger.debug("seal_event_dropped type=%s", event.event_type.value)
            return

        if event.event_type in TERMINAL_EVENT_TYPES:
            await self.close()

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._send.aclose()

    async def stream(self) -> AsyncIterator[SealEvent]:
        """Yield emitted events in order until the emitter closes."""
        async with self._receive:
            async for event in self._receive:
                if event is not None:
                    yield event
