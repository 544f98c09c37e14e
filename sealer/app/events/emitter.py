from __future__ import annotations

from typing import Protocol

from sealer.app.events.models import SealEvent


class SealEventEmitter(Protocol):
    """
    Interface for broadcasting seal observations.

    Implementations must be:
    - minimally blocking
    - fail-safe (emission failures must not break the seal)
    """

    async def emit(self, event: SealEvent) -> None:
        ...


class NullEventEmitter:
    """No-op emitter for callers that do not observe progress."""

    async def emit(self, event: SealEvent) -> None:
        return
