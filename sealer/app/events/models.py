from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


# ----------------------------------------------------------------------
# Event Types
# ----------------------------------------------------------------------
class SealEventType(str, Enum):
    """
    Progression events emitted during a seal operation.

    NOTE:
    This enum is finite. New entries must stay observational.
    """

    SEAL_STARTED = "seal_started"
    EVIDENCE_HASHED = "evidence_hashed"
    LAYOUT_COMPLETED = "layout_completed"
    DOCUMENT_RENDERED = "document_rendered"

    # Terminal
    SEAL_COMPLETED = "seal_completed"
    SEAL_FAILED = "seal_failed"


TERMINAL_EVENT_TYPES = frozenset(
    {SealEventType.SEAL_COMPLETED, SealEventType.SEAL_FAILED}
)


# ----------------------------------------------------------------------
# Event Model
# ----------------------------------------------------------------------
class SealEvent(BaseModel):
    """
    An immutable observation of a seal phase transition.

    Events never influence the seal result and are not archived.
    """

    event_id: UUID = Field(default_factory=uuid4)
    seal_id: str = Field(..., description="Identifier of the seal operation")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: SealEventType

    # Optional contextual metadata (counts, digests, error messages)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
