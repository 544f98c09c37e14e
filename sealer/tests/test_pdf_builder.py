"""
Document builder tests.

Render real PDFs with reportlab and inspect them with pypdf:

  Summary page     names and full digests appear exactly once
  Overflow         truncate drops silently, continue keeps every entry
  Finalization     QR payload page count equals the real page count
  Determinism      identical request -> identical bytes
  Failures         bad logo / QR overflow -> ConstructionFailure
"""

import io

import pytest
from PIL import Image

from sealer.app.errors import ConstructionFailure, QrCapacityExceeded
from sealer.app.schemas.sealing import QRPayload
from sealer.app.services.layout import summary_capacity
from sealer.app.services.pdf_builder import DocumentBuilder
from sealer.app.services.pdf_postprocess import SEAL_PAYLOAD_FILENAME
from sealer.app.services.qr import QrEncoder
from sealer.app.utils.hashing import digest
from sealer.tests.fixtures.request_factory import (
    body_of_lines,
    compact,
    embedded_payload,
    page_count,
    page_texts,
    record,
    records,
    sealing_request,
)

LABEL = "™ Patent Pending Verum Omnis"


class RecordingQrEncoder(QrEncoder):
    """Real encoder that remembers every payload it was asked to draw."""

    def __init__(self) -> None:
        super().__init__()
        self.payloads = []

    def encode(self, payload: QRPayload, size_px: int) -> bytes:
        self.payloads.append(payload)
        return super().encode(payload, size_px)


def _builder(**kwargs) -> DocumentBuilder:
    kwargs.setdefault("product_label", LABEL)
    return DocumentBuilder(**kwargs)


# ---------------------------------------------------------------------------
# Summary page
# ---------------------------------------------------------------------------

def test_single_file_seal_has_two_pages():
    entry = record("a.txt", b"hello")
    encoder = RecordingQrEncoder()

    document = _builder(qr_encoder=encoder).build(sealing_request([entry]))

    assert document.page_count == 2
    assert page_count(document.content) == 2
    assert document.payload.page_count == 2
    assert [p.page_count for p in encoder.payloads] == [2]

    summary = compact(page_texts(document.content)[0])
    assert "a.txt" in summary
    assert summary.count(entry.digest) == 1


def test_every_entry_up_to_capacity_appears_once():
    evidence = records(summary_capacity())

    document = _builder().build(sealing_request(evidence))

    summary = compact(page_texts(document.content)[0])
    for entry in evidence:
        assert summary.count(entry.digest) == 1
        assert entry.name in summary


def test_footer_on_every_page_never_shows_full_digest():
    entry = record("a.txt", b"hello")

    document = _builder().build(
        sealing_request([entry], body_text=body_of_lines(60))
    )

    texts = page_texts(document.content)
    assert len(texts) == 4
    for index, text in enumerate(texts):
        assert f"EvidenceHash:{entry.digest[:16]}..." in compact(text)
        if index > 0:
            assert entry.digest not in compact(text)


# ---------------------------------------------------------------------------
# Evidence overflow
# ---------------------------------------------------------------------------

def test_truncate_policy_renders_first_n_entries_only():
    evidence = records(summary_capacity() + 1)

    document = _builder(overflow="truncate").build(sealing_request(evidence))

    text = compact("".join(page_texts(document.content)))
    for entry in evidence[:summary_capacity()]:
        assert entry.digest in text
    assert evidence[-1].digest not in text
    assert document.dropped_evidence == 1
    assert document.page_count == 2


def test_continue_policy_renders_every_entry_once():
    evidence = records(summary_capacity() + 2)

    document = _builder().build(sealing_request(evidence))

    text = compact("".join(page_texts(document.content)))
    for entry in evidence:
        assert text.count(entry.digest) == 1
    assert document.dropped_evidence == 0
    assert document.page_count == 3


# ---------------------------------------------------------------------------
# Finalization
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("line_count, expected_pages", [(98, 5), (147, 6)])
def test_qr_page_count_matches_rendered_pages(line_count, expected_pages):
    encoder = RecordingQrEncoder()

    document = _builder(qr_encoder=encoder).build(
        sealing_request(records(1), body_text=body_of_lines(line_count))
    )

    assert page_count(document.content) == expected_pages
    assert encoder.payloads[-1].page_count == expected_pages
    assert embedded_payload(document.content)["pageCount"] == expected_pages


def test_embedded_payload_matches_request():
    evidence = [record("a.txt", b"hello"), record("b.txt", b"world")]

    document = _builder().build(sealing_request(evidence))

    payload = embedded_payload(document.content)
    assert payload == {
        "sha512": [e.digest for e in evidence],
        "filenames": ["a.txt", "b.txt"],
        "utcTimestamp": "2024-01-01T00:00:00.000Z",
        "appVersion": "5.1.0",
        "pageCount": 2,
    }


def test_info_dictionary_declares_payload_digest():
    from pypdf import PdfReader

    document = _builder().build(sealing_request(records(2)))

    reader = PdfReader(io.BytesIO(document.content))
    assert reader.metadata["/SealPayloadDigest"] == digest(
        document.payload.canonical_bytes()
    )
    assert reader.metadata["/SealPageCount"] == "2"
    assert SEAL_PAYLOAD_FILENAME in reader.attachments


def test_sealing_page_metadata_text():
    document = _builder().build(sealing_request(records(3)))

    last = page_texts(document.content)[-1]
    assert "Sealing Metadata" in last
    assert "Files: 3" in last
    assert "Page Count: 2" in last
    assert "Version: 5.1.0" in last


def test_identical_requests_produce_identical_bytes():
    request = sealing_request(records(3), body_text=body_of_lines(20))

    first = _builder().build(request)
    second = _builder().build(request)

    assert first.content == second.content
    assert digest(first.content) == digest(second.content)


# ---------------------------------------------------------------------------
# Logo
# ---------------------------------------------------------------------------

def _png() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color=(200, 0, 0)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_logo_is_embedded_on_summary_page():
    with_logo = _builder().build(sealing_request(records(1), logo=_png()))
    without = _builder().build(sealing_request(records(1)))

    assert with_logo.page_count == 2
    assert len(with_logo.content) > len(without.content)


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

def test_corrupt_logo_raises_construction_failure():
    with pytest.raises(ConstructionFailure) as excinfo:
        _builder().build(sealing_request(records(1), logo=b"not an image"))

    assert excinfo.value.stage == "logo"


def test_qr_encoder_error_raises_construction_failure():
    class BrokenEncoder(QrEncoder):
        def encode(self, payload, size_px):
            raise ValueError("encoder exploded")

    with pytest.raises(ConstructionFailure) as excinfo:
        _builder(qr_encoder=BrokenEncoder()).build(sealing_request(records(1)))

    assert excinfo.value.stage == "qr"
    assert isinstance(excinfo.value.cause, ValueError)


def test_payload_beyond_qr_capacity_raises_construction_failure():
    with pytest.raises(ConstructionFailure) as excinfo:
        _builder().build(sealing_request(records(40)))

    assert excinfo.value.stage == "qr"
    assert isinstance(excinfo.value, QrCapacityExceeded)
