"""
Error taxonomy of the sealing pipeline.

All failures propagate synchronously to the immediate caller. Nothing in
the pipeline retries or recovers; user-facing messaging is the caller's
concern.
"""

from typing import Optional


class SealingError(RuntimeError):
    """Base class for every failure raised by the sealing pipeline."""


class ConstructionFailure(SealingError):
    """
    Raised when the sealed document cannot be constructed.

    Covers font or image embedding, QR generation, rendering and
    serialization. Fatal: no partial document is ever returned.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"[{stage}] {message}")


class HashInputFailure(SealingError):
    """Raised when an evidence file cannot be read for hashing."""

    def __init__(self, file_name: str, message: str) -> None:
        self.file_name = file_name
        super().__init__(f"Cannot hash '{file_name}': {message}")


class QrCapacityExceeded(ConstructionFailure):
    """
    Raised when the seal payload does not fit the largest QR symbol
    (version 40) at any permitted error-correction level.

    Predictable from the input alone: the evidence list is too long.
    """

    def __init__(self, payload_bytes: int, evidence_count: int) -> None:
        self.payload_bytes = payload_bytes
        self.evidence_count = evidence_count
        super().__init__(
            f"QR payload of {payload_bytes} bytes for {evidence_count} "
            "evidence files exceeds QR capacity",
            stage="qr",
        )


class UnsealedDocument(SealingError):
    """Raised when a document carries no readable seal payload."""
