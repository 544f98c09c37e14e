import base64
import logging
import uuid
from typing import Annotated, List, Optional, Tuple
from urllib.parse import quote

import anyio.to_thread
from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Header,
    HTTPException,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import Response

from sealer.app.config import Settings
from sealer.app.errors import (
    ConstructionFailure,
    HashInputFailure,
    QrCapacityExceeded,
    UnsealedDocument,
)
from sealer.app.schemas.sealing import (
    SealResult,
    SealSubmission,
    SealVerification,
)
from sealer.app.services.evidence import EvidenceFile
from sealer.app.services.pdf_postprocess import verify_seal
from sealer.app.services.sealing import SealingService
from sealer.app.services.submission import compose_submission_email

logger = logging.getLogger("sealer.api")

router = APIRouter(tags=["Sealing"])

# =============================================================================
# Dependency providers
# =============================================================================

def get_correlation_id(
    x_correlation_id: Annotated[
        Optional[str],
        Header(description="Audit trace ID"),
    ] = None,
) -> str:
    """Extract or generate a correlation ID for end-to-end traceability."""
    if x_correlation_id and len(x_correlation_id) > 128:
        return str(uuid.uuid4())
    return x_correlation_id or str(uuid.uuid4())


def get_sealing_service(request: Request) -> SealingService:
    service: Optional[SealingService] = getattr(
        request.app.state, "sealing_service", None
    )
    if service is None:
        raise RuntimeError("sealing service not initialized")
    return service


def _header_list(names: List[str]) -> str:
    """Comma-separated, percent-encoded names (headers are latin-1 only)."""
    return ",".join(quote(name, safe="") for name in names)


# =============================================================================
# Shared seal steps
# =============================================================================

async def _collect_evidence(
    files: List[UploadFile],
    placeholders: List[str],
    report_text: Optional[str],
    settings: Settings,
    correlation_id: str,
) -> Tuple[List[EvidenceFile], int]:
    """Bounded read of the uploads; placeholders are appended last."""
    max_bytes = settings.max_upload_size_mb * 1024 * 1024

    evidence: List[EvidenceFile] = []
    total = 0

    for upload in files:
        if not upload.filename:
            continue

        content = await upload.read(max_bytes + 1 - total)
        total += len(content)

        if total > max_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=(
                    f"Evidence exceeds the {settings.max_upload_size_mb}MB "
                    "limit."
                ),
                headers={"X-Correlation-ID": correlation_id},
            )

        evidence.append(EvidenceFile(name=upload.filename, content=content))

    evidence.extend(EvidenceFile(name=name) for name in placeholders if name)

    if not any(not f.is_placeholder for f in evidence) and not report_text:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Nothing to seal: upload evidence or provide report text.",
            headers={"X-Correlation-ID": correlation_id},
        )

    return evidence, total


async def _run_seal(
    service: SealingService,
    evidence: List[EvidenceFile],
    report_text: Optional[str],
    correlation_id: str,
) -> SealResult:
    """Seal and map pipeline failures onto HTTP errors."""
    try:
        result = await service.seal(evidence, report_text=report_text or None)
    except HashInputFailure as exc:
        logger.warning(
            "evidence_unreadable",
            extra={"trace_id": correlation_id, "file_name": exc.file_name},
        )
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
            headers={"X-Correlation-ID": correlation_id},
        ) from exc
    except QrCapacityExceeded as exc:
        logger.warning(
            "seal_payload_too_large",
            extra={
                "trace_id": correlation_id,
                "evidence_count": exc.evidence_count,
                "payload_bytes": exc.payload_bytes,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=(
                f"{exc.evidence_count} evidence files do not fit the seal "
                "QR code. Split the evidence across several seals."
            ),
            headers={"X-Correlation-ID": correlation_id},
        ) from exc
    except ConstructionFailure as exc:
        logger.exception(
            "seal_construction_failed",
            extra={"trace_id": correlation_id, "stage": exc.stage},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Sealed document construction failed.",
            headers={"X-Correlation-ID": correlation_id},
        ) from exc

    logger.info(
        "seal_success",
        extra={
            "trace_id": correlation_id,
            "file_name": result.file_name,
            "page_count": result.document.page_count,
        },
    )
    return result


# =============================================================================
# POST /seal
# =============================================================================

@router.post(
    "/seal",
    summary="Seal evidence files into a forensic PDF",
    response_class=Response,
    responses={
        200: {
            "content": {"application/pdf": {}},
            "description": "Sealed PDF document",
        },
        413: {"description": "Payload too large for the upload limit or QR"},
        422: {"description": "Nothing to seal"},
        500: {"description": "Document construction failure"},
    },
)
async def seal_evidence(
    request: Request,
    service: Annotated[SealingService, Depends(get_sealing_service)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
    files: Annotated[
        List[UploadFile],
        File(description="Evidence files to hash and list"),
    ] = [],
    placeholders: Annotated[
        List[str],
        Form(description="Names of evidence not yet available for hashing"),
    ] = [],
    report_text: Annotated[
        Optional[str],
        Form(description="Markdown analysis report to seal alongside"),
    ] = None,
) -> Response:
    """
    Hash the uploaded evidence and return the sealed PDF.

    Response headers:
    - ``X-Document-Digest``: SHA-512 of the returned bytes
    - ``X-Page-Count``: number of pages (equals the QR payload page count)
    - ``X-Skipped-Files``: placeholder names that were not hashed
    """
    settings: Settings = request.app.state.settings

    evidence, total = await _collect_evidence(
        files, placeholders, report_text, settings, correlation_id
    )

    logger.info(
        "initiating_seal",
        extra={
            "trace_id": correlation_id,
            "file_count": len(evidence),
            "size_bytes": total,
        },
    )

    result = await _run_seal(service, evidence, report_text, correlation_id)

    return Response(
        content=result.document.content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": (
                f'attachment; filename="{result.file_name}"'
            ),
            "X-Correlation-ID": correlation_id,
            "X-Document-Digest": result.digest,
            "X-Page-Count": str(result.document.page_count),
            "X-Skipped-Files": _header_list(list(result.skipped)),
            "X-Dropped-Evidence": str(result.document.dropped_evidence),
        },
    )


# =============================================================================
# POST /seal/submission
# =============================================================================

@router.post(
    "/seal/submission",
    response_model=SealSubmission,
    summary="Seal a report and draft the counsel submission e-mail",
    responses={
        413: {"description": "Payload too large for the upload limit or QR"},
        422: {"description": "Nothing to seal"},
        500: {"description": "Document construction failure"},
    },
)
async def seal_submission(
    request: Request,
    service: Annotated[SealingService, Depends(get_sealing_service)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
    files: Annotated[
        List[UploadFile],
        File(description="Evidence files to hash and list"),
    ] = [],
    placeholders: Annotated[
        List[str],
        Form(description="Names of evidence not yet available for hashing"),
    ] = [],
    report_text: Annotated[
        Optional[str],
        Form(description="Markdown analysis report to seal alongside"),
    ] = None,
) -> SealSubmission:
    """
    Seal like ``POST /seal`` and return JSON instead of the raw PDF.

    The body carries the report with its placeholders replaced by the
    final document digest, and an e-mail draft addressed to the configured
    submission recipient. The PDF is included base64-encoded so the caller
    can attach it; the draft never embeds it.
    """
    settings: Settings = request.app.state.settings

    evidence, total = await _collect_evidence(
        files, placeholders, report_text, settings, correlation_id
    )

    logger.info(
        "initiating_seal_submission",
        extra={
            "trace_id": correlation_id,
            "file_count": len(evidence),
            "size_bytes": total,
        },
    )

    result = await _run_seal(service, evidence, report_text, correlation_id)

    email = compose_submission_email(
        result,
        result.report_text or "",
        [f.name for f in evidence],
        settings.submission_recipient,
    )

    return SealSubmission(
        file_name=result.file_name,
        digest=result.digest,
        page_count=result.document.page_count,
        skipped=result.skipped,
        dropped_evidence=result.document.dropped_evidence,
        report_text=result.report_text,
        email=email,
        document_base64=base64.b64encode(result.document.content).decode(
            "ascii"
        ),
    )


# =============================================================================
# POST /verify
# =============================================================================

@router.post(
    "/verify",
    response_model=SealVerification,
    summary="Read back and cross-check the seal of a sealed PDF",
    responses={
        400: {"description": "Not a PDF upload"},
        413: {"description": "Payload too large"},
        422: {"description": "Document carries no readable seal"},
    },
)
async def verify_document(
    request: Request,
    correlation_id: Annotated[str, Depends(get_correlation_id)],
    pdf: Annotated[
        UploadFile,
        File(description="Sealed PDF document to check"),
    ],
) -> SealVerification:
    """
    Report what a sealed PDF declares about itself and whether the
    embedded payload, Info dictionary and page count agree.

    The PDF is the sole source of truth; evidence files are not re-hashed.
    """
    if pdf.content_type != "application/pdf":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only application/pdf content is supported",
            headers={"X-Correlation-ID": correlation_id},
        )

    settings: Settings = request.app.state.settings
    max_bytes = settings.max_upload_size_mb * 1024 * 1024

    pdf_bytes = await pdf.read(max_bytes + 1)

    if not pdf_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded PDF is empty",
            headers={"X-Correlation-ID": correlation_id},
        )

    if len(pdf_bytes) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=(
                f"PDF exceeds maximum allowed size of "
                f"{settings.max_upload_size_mb} MB"
            ),
            headers={"X-Correlation-ID": correlation_id},
        )

    try:
        verification = await anyio.to_thread.run_sync(verify_seal, pdf_bytes)
    except UnsealedDocument as exc:
        logger.info(
            "verify_unsealed",
            extra={"trace_id": correlation_id, "error": str(exc)},
        )
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
            headers={"X-Correlation-ID": correlation_id},
        ) from exc

    logger.info(
        "verify_completed",
        extra={
            "trace_id": correlation_id,
            "consistent": verification.consistent,
            "page_count": verification.page_count,
        },
    )
    return verification
