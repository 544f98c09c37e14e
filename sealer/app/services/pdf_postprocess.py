"""
PDF post-processing: seal payload binding and read-back.

Transforms a rendered sealed document into its finalized form by binding
the QR payload into the file itself:

- the canonical payload JSON is embedded as the attachment
  ``seal-payload.json``
- the document Info dictionary declares the SHA-512 of that payload and
  the page count it states

Trust boundary:
- This module does NOT interpret or re-layout page content.
- It is deterministic: the same input bytes and payload always produce
  the same output bytes.

Read-back (``verify_seal``) reports what a document declares about itself.
It never repairs or re-binds a document.
"""

import io
import logging

from typing import Optional, Tuple

from pydantic import ValidationError
from pypdf import PdfReader, PdfWriter

from sealer.app.errors import ConstructionFailure, UnsealedDocument
from sealer.app.schemas.sealing import QRPayload, SealVerification
from sealer.app.utils.hashing import digest

logger = logging.getLogger(__name__)


SEAL_PAYLOAD_FILENAME = "seal-payload.json"
PAYLOAD_DIGEST_KEY = "/SealPayloadDigest"
PAGE_COUNT_KEY = "/SealPageCount"


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------

def bind_seal_payload(pdf_bytes: bytes, payload: QRPayload) -> bytes:
    """
    Embed ``payload`` into ``pdf_bytes`` and return the finalized bytes.

    Hard pre-condition: the rendered document has exactly
    ``payload.page_count`` pages.

    Raises:
        ConstructionFailure:
            If the page count disagrees with the payload, or the document
            cannot be read or written.
    """
    canonical = payload.canonical_bytes()

    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        actual_pages = len(reader.pages)
    except Exception as exc:
        raise ConstructionFailure(
            f"Rendered document is not a readable PDF: {exc}",
            stage="finalize",
            cause=exc,
        ) from exc

    if actual_pages != payload.page_count:
        raise ConstructionFailure(
            f"Rendered {actual_pages} pages but the seal payload "
            f"declares {payload.page_count}",
            stage="finalize",
        )

    try:
        writer = PdfWriter(clone_from=reader)
        writer.add_attachment(SEAL_PAYLOAD_FILENAME, canonical)
        writer.add_metadata(
            {
                PAYLOAD_DIGEST_KEY: digest(canonical),
                PAGE_COUNT_KEY: str(payload.page_count),
            }
        )

        buffer = io.BytesIO()
        writer.write(buffer)
    except Exception as exc:
        raise ConstructionFailure(
            f"Failed to bind seal payload: {exc}",
            stage="finalize",
            cause=exc,
        ) from exc

    logger.debug(
        "seal_payload_bound pages=%d payload_bytes=%d",
        payload.page_count,
        len(canonical),
    )
    return buffer.getvalue()


def verify_seal(pdf_bytes: bytes) -> SealVerification:
    """
    Read the seal payload back out of ``pdf_bytes`` and cross-check it
    against the document Info dictionary and the actual page count.

    Raises:
        UnsealedDocument: if there is no readable, well-formed payload.
    """
    reader, page_total = _open(pdf_bytes)
    canonical = _embedded_payload(reader)

    try:
        payload = QRPayload.model_validate_json(canonical)
    except ValidationError as exc:
        raise UnsealedDocument(f"Seal payload is malformed: {exc}") from exc

    metadata = reader.metadata or {}
    declared_digest = metadata.get(PAYLOAD_DIGEST_KEY)
    declared_pages = _as_int(metadata.get(PAGE_COUNT_KEY))

    payload_digest = digest(canonical)

    consistent = (
        declared_digest is not None
        and str(declared_digest) == payload_digest
        and declared_pages == payload.page_count
        and page_total == payload.page_count
    )

    if not consistent:
        logger.warning(
            "seal_inconsistent pages=%d declared_pages=%s payload_pages=%d",
            page_total,
            declared_pages,
            payload.page_count,
        )

    return SealVerification(
        document_digest=digest(pdf_bytes),
        page_count=page_total,
        payload=payload,
        payload_digest=payload_digest,
        declared_payload_digest=(
            str(declared_digest) if declared_digest is not None else None
        ),
        declared_page_count=declared_pages,
        consistent=consistent,
    )


# ------------------------------------------------------------------
# Internal
# ------------------------------------------------------------------

def _open(pdf_bytes: bytes) -> Tuple[PdfReader, int]:
    """Parse ``pdf_bytes``; returns the reader and its page count."""
    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        return reader, len(reader.pages)
    except Exception as exc:
        raise UnsealedDocument(f"Not a readable PDF: {exc}") from exc


def _embedded_payload(reader: PdfReader) -> bytes:
    try:
        attachments = reader.attachments
    except Exception as exc:
        raise UnsealedDocument(f"Cannot read attachments: {exc}") from exc

    if SEAL_PAYLOAD_FILENAME not in attachments:
        raise UnsealedDocument(
            f"Document carries no {SEAL_PAYLOAD_FILENAME} attachment"
        )
    return attachments[SEAL_PAYLOAD_FILENAME][0]


def _as_int(value: object) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value))
    except ValueError:
        return None
