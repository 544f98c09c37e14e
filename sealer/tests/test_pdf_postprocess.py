"""
Seal payload binding and read-back.

Covers:
- a freshly built document reads back as consistent
- Info dictionary and page tampering are reported
- documents without a seal, or not PDFs at all, raise UnsealedDocument
"""

import io

import pytest
from pypdf import PdfReader, PdfWriter

from sealer.app.errors import UnsealedDocument
from sealer.app.services.pdf_builder import DocumentBuilder
from sealer.app.services.pdf_postprocess import PAGE_COUNT_KEY, verify_seal
from sealer.app.utils.hashing import digest
from sealer.tests.fixtures.request_factory import (
    body_of_lines,
    records,
    sealing_request,
)


def _sealed(**kwargs) -> bytes:
    builder = DocumentBuilder(product_label="Label")
    return builder.build(sealing_request(records(2), **kwargs)).content


def _rewrite(pdf_bytes: bytes, edit) -> bytes:
    writer = PdfWriter(clone_from=PdfReader(io.BytesIO(pdf_bytes)))
    edit(writer)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def test_fresh_seal_is_consistent():
    sealed = _sealed(body_text=body_of_lines(49))

    verification = verify_seal(sealed)

    assert verification.consistent
    assert verification.page_count == 4
    assert verification.payload.page_count == 4
    assert verification.declared_page_count == 4
    assert verification.document_digest == digest(sealed)
    assert verification.payload_digest == digest(
        verification.payload.canonical_bytes()
    )
    assert verification.payload.filenames == ("e00.txt", "e01.txt")


def test_declared_page_count_mismatch_is_inconsistent():
    tampered = _rewrite(
        _sealed(),
        lambda writer: writer.add_metadata({PAGE_COUNT_KEY: "3"}),
    )

    verification = verify_seal(tampered)

    assert not verification.consistent
    assert verification.declared_page_count == 3
    assert verification.page_count == 2


def test_appended_page_is_inconsistent():
    verification = verify_seal(
        _rewrite(
            _sealed(),
            lambda writer: writer.add_blank_page(width=595, height=842),
        )
    )

    assert not verification.consistent
    assert verification.page_count == 3
    assert verification.payload.page_count == 2


def test_document_without_seal_payload_raises():
    writer = PdfWriter()
    writer.add_blank_page(width=595, height=842)
    buffer = io.BytesIO()
    writer.write(buffer)

    with pytest.raises(UnsealedDocument):
        verify_seal(buffer.getvalue())


def test_non_pdf_bytes_raise():
    with pytest.raises(UnsealedDocument):
        verify_seal(b"definitely not a pdf")
