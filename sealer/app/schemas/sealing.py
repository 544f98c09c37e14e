"""
Sealing data model.

Defines the immutable structures that flow through the sealing pipeline:

    EvidenceRecord   -> created at upload time by the hasher, read-only
    SealingRequest   -> created per seal action, consumed once by the builder
    QRPayload        -> derived from the request once the page count is final
    RenderedDocument -> created once, hashed once, never mutated
    SealVerification -> read back from a sealed document, never trusted blindly

Wire names (``sha512``, ``utcTimestamp``, ``appVersion``, ``pageCount``)
are preserved as aliases so that issued QR codes remain readable by
existing verifiers.
"""

from __future__ import annotations

import json
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sealer.app.utils.hashing import is_hex_digest


DEFAULT_TITLE = "Sealed Forensic Report"
MANIFEST_TITLE = "Sealed Document Manifest"


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------


class EvidenceRecord(BaseModel):
    """
    A named evidence file paired with its SHA-512 digest.

    The digest is computed once by the hasher and never recomputed by the
    document builder.
    """

    name: str = Field(..., min_length=1, description="Original file name")

    digest: str = Field(
        ...,
        alias="sha512",
        description="SHA-512 of the file bytes, 128 lowercase hex characters",
    )

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="forbid",
    )

    @field_validator("digest")
    @classmethod
    def validate_digest(cls, v: str) -> str:
        value = v.strip().lower()
        if not is_hex_digest(value):
            raise ValueError(
                "digest must be a SHA-512 hex digest (128 hex characters)"
            )
        return value


# ---------------------------------------------------------------------------
# Sealing request
# ---------------------------------------------------------------------------


class SealingRequest(BaseModel):
    """
    Everything the document builder needs to render one sealed document.

    Constructed fresh per seal operation and never mutated afterwards.
    The caller guarantees that every evidence digest is already present.
    """

    title: str = Field(DEFAULT_TITLE, description="Document title")

    body_text: Optional[str] = Field(
        None,
        description="Optional plain text reflowed onto body pages",
    )

    evidence: Tuple[EvidenceRecord, ...] = Field(
        default=(),
        description="Evidence records in display order",
    )

    utc_timestamp: str = Field(..., description="ISO 8601 UTC timestamp")

    local_timestamp: str = Field(
        ...,
        description="Human-readable local time including the zone name",
    )

    version: str = Field(..., min_length=1, description="Application version")

    logo: Optional[bytes] = Field(
        None,
        description="Optional PNG/JPEG logo drawn on the summary page",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    @property
    def primary_digest(self) -> Optional[str]:
        """Digest of the first evidence record, shown in the page footer."""
        if not self.evidence:
            return None
        return self.evidence[0].digest


# ---------------------------------------------------------------------------
# QR payload
# ---------------------------------------------------------------------------


class QRPayload(BaseModel):
    """
    Structured metadata encoded into the QR code on the sealing page.

    ``page_count`` MUST equal the number of pages of the returned
    document. The payload is therefore only constructed after layout has
    determined the final page count.
    """

    digests: Tuple[str, ...] = Field(..., alias="sha512")
    filenames: Tuple[str, ...]
    utc_timestamp: str = Field(..., alias="utcTimestamp")
    version: str = Field(..., alias="appVersion")
    page_count: int = Field(..., alias="pageCount", ge=1)

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
    )

    @classmethod
    def from_request(
        cls,
        request: SealingRequest,
        *,
        page_count: int,
    ) -> "QRPayload":
        return cls(
            digests=tuple(e.digest for e in request.evidence),
            filenames=tuple(e.name for e in request.evidence),
            utc_timestamp=request.utc_timestamp,
            version=request.version,
            page_count=page_count,
        )

    def to_qr_text(self) -> str:
        """Compact JSON in wire field order, as encoded in the QR code."""
        return self.model_dump_json(by_alias=True)

    def canonical_bytes(self) -> bytes:
        """Canonical JSON bytes (sorted keys, compact separators)."""
        return json.dumps(
            self.model_dump(by_alias=True, mode="json"),
            sort_keys=True,
            ensure_ascii=False,
            separators=(",", ":"),
        ).encode("utf-8")


# ---------------------------------------------------------------------------
# Rendered document
# ---------------------------------------------------------------------------


class RenderedDocument(BaseModel):
    """
    A finalized, serialized sealed document.

    Immutable: any mutation would invalidate the digest computed over
    ``content`` by the caller.
    """

    content: bytes
    page_count: int = Field(..., ge=1)
    payload: QRPayload
    primary_digest: Optional[str] = None
    dropped_evidence: int = Field(
        0,
        ge=0,
        description="Evidence entries dropped by the truncate overflow policy",
    )

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Seal result (caller-facing)
# ---------------------------------------------------------------------------


class SealResult(BaseModel):
    """Outcome of a complete seal operation."""

    file_name: str
    digest: str = Field(..., description="SHA-512 of the sealed document bytes")
    document: RenderedDocument
    evidence: Tuple[EvidenceRecord, ...] = ()
    report_text: Optional[str] = None
    skipped: Tuple[str, ...] = Field(
        default=(),
        description="Names of placeholder files excluded from hashing",
    )

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class SubmissionEmail(BaseModel):
    """Counsel e-mail draft for a sealed report."""

    recipient: str
    subject: str
    body: str
    mailto_url: str

    model_config = ConfigDict(frozen=True)


class SealSubmission(BaseModel):
    """
    A sealed document together with its display report and e-mail draft.

    ``report_text`` carries the final document digest in place of the
    report placeholders.
    """

    file_name: str
    digest: str = Field(..., description="SHA-512 of the sealed document bytes")
    page_count: int = Field(..., ge=1)
    skipped: Tuple[str, ...] = ()
    dropped_evidence: int = Field(0, ge=0)
    report_text: Optional[str] = None
    email: SubmissionEmail
    document_base64: str = Field(
        ...,
        description="Sealed PDF bytes, base64-encoded",
    )

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class SealVerification(BaseModel):
    """
    What a sealed document states about itself, and whether it agrees.

    ``consistent`` holds only when the embedded payload matches the digest
    declared in the document Info dictionary, and the document has exactly
    the page count that both the payload and the Info dictionary declare.
    It says nothing about the evidence files themselves.
    """

    document_digest: str = Field(
        ...,
        description="SHA-512 of the submitted document bytes",
    )
    page_count: int = Field(..., ge=0, description="Pages actually present")
    payload: QRPayload
    payload_digest: str = Field(
        ...,
        description="SHA-512 of the embedded canonical payload",
    )
    declared_payload_digest: Optional[str] = None
    declared_page_count: Optional[int] = None
    consistent: bool

    model_config = ConfigDict(frozen=True)
