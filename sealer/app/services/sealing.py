"""
Seal orchestration.

Coordinates one seal operation end to end:

    1. hash all evidence files (concurrently, joined before continuing)
    2. assemble an immutable SealingRequest
    3. build the document (CPU-bound, offloaded to a worker thread)
    4. digest the returned bytes
    5. substitute the report placeholders with the final values

Events are emitted for observation only; they never affect the result.
No retries, no cancellation and no timeout are applied here.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence
from uuid import uuid4

import anyio
import anyio.to_thread

from sealer.app.config import Settings
from sealer.app.errors import SealingError
from sealer.app.events import (
    NullEventEmitter,
    SealEvent,
    SealEventEmitter,
    SealEventType,
)
from sealer.app.schemas.sealing import SealingRequest, SealResult
from sealer.app.services.evidence import EvidenceFile, EvidenceHasher
from sealer.app.services.pdf_builder import DocumentBuilder
from sealer.app.services.report_text import (
    document_title,
    is_manifest_only,
    markdown_to_plain_text,
    report_file_name,
    substitute_placeholders,
)
from sealer.app.utils.hashing import digest
from sealer.app.utils.timestamps import local_display, utc_iso, utc_now

logger = logging.getLogger(__name__)


class SealingService:
    """Caller-side driver of the sealing pipeline."""

    def __init__(
        self,
        *,
        builder: DocumentBuilder,
        version: str,
        hasher: Optional[EvidenceHasher] = None,
    ) -> None:
        self._builder = builder
        self._version = version
        self._hasher = hasher or EvidenceHasher()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SealingService":
        return cls(
            builder=DocumentBuilder.from_settings(settings),
            version=settings.app_version,
            hasher=EvidenceHasher(max_entries=settings.hash_cache_entries),
        )

    @property
    def hasher(self) -> EvidenceHasher:
        return self._hasher

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def seal(
        self,
        files: Sequence[EvidenceFile],
        *,
        report_text: Optional[str] = None,
        now: Optional[datetime] = None,
        logo: Optional[bytes] = None,
        emitter: Optional[SealEventEmitter] = None,
    ) -> SealResult:
        """
        Hash ``files`` and seal them, with ``report_text`` as the body.

        A report without a Key Findings section is sealed as a bare
        manifest: it sets the manifest title and is not drawn on body pages.
        """
        emitter = emitter or NullEventEmitter()
        seal_id = uuid4().hex
        now = now or utc_now()

        await emitter.emit(SealEvent(
            seal_id=seal_id,
            event_type=SealEventType.SEAL_STARTED,
            details={"file_count": len(files)},
        ))

        try:
            records, skipped = await self._hasher.hash_all(files)
        except SealingError as exc:
            await self._fail(emitter, seal_id, exc)
            raise

        await emitter.emit(SealEvent(
            seal_id=seal_id,
            event_type=SealEventType.EVIDENCE_HASHED,
            details={"hashed": len(records), "skipped": list(skipped)},
        ))

        manifest_only = is_manifest_only(report_text)
        request = SealingRequest(
            title=document_title(report_text),
            body_text=(
                None if manifest_only else markdown_to_plain_text(report_text)
            ),
            evidence=tuple(records),
            utc_timestamp=utc_iso(now),
            local_timestamp=local_display(now),
            version=self._version,
            logo=logo,
        )

        result = await self.seal_request(
            request,
            report_text=report_text,
            emitter=emitter,
            seal_id=seal_id,
        )
        return result.model_copy(update={"skipped": tuple(skipped)})

    async def seal_request(
        self,
        request: SealingRequest,
        *,
        report_text: Optional[str] = None,
        emitter: Optional[SealEventEmitter] = None,
        seal_id: Optional[str] = None,
    ) -> SealResult:
        """Build a document for a request whose digests are already known."""
        emitter = emitter or NullEventEmitter()
        seal_id = seal_id or uuid4().hex

        try:
            document = await anyio.to_thread.run_sync(
                self._builder.build, request
            )
        except SealingError as exc:
            await self._fail(emitter, seal_id, exc)
            raise

        await emitter.emit(SealEvent(
            seal_id=seal_id,
            event_type=SealEventType.LAYOUT_COMPLETED,
            details={
                "page_count": document.page_count,
                "dropped_evidence": document.dropped_evidence,
            },
        ))

        document_digest = digest(document.content)

        await emitter.emit(SealEvent(
            seal_id=seal_id,
            event_type=SealEventType.DOCUMENT_RENDERED,
            details={
                "digest": document_digest,
                "size_bytes": len(document.content),
            },
        ))

        result = SealResult(
            file_name=report_file_name(request.utc_timestamp),
            digest=document_digest,
            document=document,
            evidence=request.evidence,
            report_text=(
                substitute_placeholders(report_text, document_digest)
                if report_text is not None
                else None
            ),
        )

        logger.info(
            "seal_completed",
            extra={
                "seal_id": seal_id,
                "file_name": result.file_name,
                "page_count": document.page_count,
                "evidence_count": len(request.evidence),
            },
        )

        await emitter.emit(SealEvent(
            seal_id=seal_id,
            event_type=SealEventType.SEAL_COMPLETED,
            details={"file_name": result.file_name, "digest": document_digest},
        ))
        return result

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    async def _fail(
        emitter: SealEventEmitter,
        seal_id: str,
        exc: SealingError,
    ) -> None:
        logger.error(
            "seal_failed",
            extra={"seal_id": seal_id, "error": str(exc)},
        )
        await emitter.emit(SealEvent(
            seal_id=seal_id,
            event_type=SealEventType.SEAL_FAILED,
            details={"error": str(exc), "error_type": type(exc).__name__},
        ))
