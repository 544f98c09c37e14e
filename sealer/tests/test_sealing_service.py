"""
Sealing service tests: the full caller-side pipeline from evidence files
to a SealResult, including event emission.
"""

from datetime import datetime, timezone

import pytest

from sealer.app.errors import ConstructionFailure, HashInputFailure
from sealer.app.events import MemoryQueueEventEmitter, SealEventType
from sealer.app.services.evidence import EvidenceFile
from sealer.app.services.pdf_builder import DocumentBuilder
from sealer.app.services.qr import QrEncoder
from sealer.app.services.sealing import SealingService
from sealer.app.utils.hashing import digest
from sealer.tests.fixtures.request_factory import (
    compact,
    embedded_payload,
    page_count,
    page_texts,
)

pytestmark = pytest.mark.anyio

NOW = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)

REPORT = """## Key Findings
The contract was backdated.

## Sealing Metadata
- Certified SHA-512 Hash: [Placeholder for SHA-512 hash of this report]
"""


def _service(**builder_kwargs) -> SealingService:
    builder_kwargs.setdefault("product_label", "™ Patent Pending Verum Omnis")
    return SealingService(
        builder=DocumentBuilder(**builder_kwargs),
        version="5.1.0",
    )


async def _collect(emitter: MemoryQueueEventEmitter):
    return [event async for event in emitter.stream()]


async def test_single_file_manifest_seal():
    result = await _service().seal(
        [EvidenceFile(name="a.txt", content=b"hello")],
        now=NOW,
    )

    assert result.document.page_count == 2
    assert page_count(result.document.content) == 2
    assert embedded_payload(result.document.content)["pageCount"] == 2
    assert result.file_name == "VO_Sealed_Report_2024-01-01T00-00-00-000Z.pdf"

    summary = compact(page_texts(result.document.content)[0])
    assert "SealedDocumentManifest" in summary
    assert summary.count(digest(b"hello")) == 1


async def test_report_digest_matches_returned_bytes():
    result = await _service().seal(
        [EvidenceFile(name="a.txt", content=b"hello")],
        report_text=REPORT,
        now=NOW,
    )

    assert result.digest == digest(result.document.content)
    assert f"Certified SHA-512 Hash: {result.digest}" in result.report_text
    assert "[Placeholder" not in result.report_text


async def test_report_with_findings_adds_body_pages():
    result = await _service().seal(
        [EvidenceFile(name="a.txt", content=b"hello")],
        report_text=REPORT,
        now=NOW,
    )

    texts = page_texts(result.document.content)
    assert result.document.page_count == 3
    assert "SealedForensicReport" in compact(texts[0])
    assert "Conversation Excerpt:" in texts[1]
    assert "The contract was backdated." in texts[1]


async def test_placeholders_are_reported_as_skipped():
    result = await _service().seal(
        [
            EvidenceFile(name="a.txt", content=b"hello"),
            EvidenceFile(name="uploading.mov"),
        ],
        now=NOW,
    )

    assert result.skipped == ("uploading.mov",)
    assert [e.name for e in result.evidence] == ["a.txt"]


async def test_repeat_seal_reuses_cached_digests():
    service = _service()
    upload = EvidenceFile(name="a.txt", content=b"hello")

    await service.seal([upload], now=NOW)
    await service.seal([upload], now=NOW)

    assert service.hasher.cached_count() == 1


async def test_events_follow_the_seal_lifecycle():
    emitter = MemoryQueueEventEmitter()

    await _service().seal(
        [EvidenceFile(name="a.txt", content=b"hello")],
        now=NOW,
        emitter=emitter,
    )
    events = await _collect(emitter)

    assert [e.event_type for e in events] == [
        SealEventType.SEAL_STARTED,
        SealEventType.EVIDENCE_HASHED,
        SealEventType.LAYOUT_COMPLETED,
        SealEventType.DOCUMENT_RENDERED,
        SealEventType.SEAL_COMPLETED,
    ]
    assert len({e.seal_id for e in events}) == 1
    assert events[2].details["page_count"] == 2
    assert emitter.closed


async def test_construction_failure_emits_seal_failed():
    class BrokenEncoder(QrEncoder):
        def encode(self, payload, size_px):
            raise ConstructionFailure("no capacity", stage="qr")

    emitter = MemoryQueueEventEmitter()

    with pytest.raises(ConstructionFailure):
        await _service(qr_encoder=BrokenEncoder()).seal(
            [EvidenceFile(name="a.txt", content=b"hello")],
            now=NOW,
            emitter=emitter,
        )

    events = await _collect(emitter)
    assert events[-1].event_type == SealEventType.SEAL_FAILED
    assert events[-1].details["error_type"] == "ConstructionFailure"


async def test_unreadable_file_propagates(tmp_path):
    with pytest.raises(HashInputFailure):
        await _service().seal(
            [EvidenceFile(name="gone.txt", path=tmp_path / "missing")],
            now=NOW,
        )
