from .models import SealEvent, SealEventType
from .emitter import NullEventEmitter, SealEventEmitter
from .memory_emitter import MemoryQueueEventEmitter

__all__ = [
    "SealEvent",
    "SealEventType",
    "SealEventEmitter",
    "NullEventEmitter",
    "MemoryQueueEventEmitter",
]
