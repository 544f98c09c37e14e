"""
Sealed document construction.

The ``DocumentBuilder`` turns a fully-hashed ``SealingRequest`` into a
finalized ``RenderedDocument``:

    plan_document()      pass 1, dry layout, final page count
    QRPayload            built once from the final page count
    QrEncoder.encode()   raster generated from that payload
    _render()            pass 2, reportlab drawing
    bind_seal_payload()  pypdf post-processing

Construction is strictly sequential. Any failure raises
``ConstructionFailure``; no partial document is ever returned.

The builder never hashes evidence and never hashes its own output.
"""

from __future__ import annotations

import io
import logging
from typing import Optional

from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from sealer.app.config import OverflowPolicy, Settings
from sealer.app.errors import ConstructionFailure, SealingError
from sealer.app.schemas.sealing import (
    QRPayload,
    RenderedDocument,
    SealingRequest,
)
from sealer.app.services import layout
from sealer.app.services.layout import DocumentPlan
from sealer.app.services.pdf_postprocess import bind_seal_payload
from sealer.app.services.qr import QrEncoder

logger = logging.getLogger(__name__)


class DocumentBuilder:
    """Render sealed documents with a fixed layout."""

    def __init__(
        self,
        *,
        product_label: str,
        overflow: OverflowPolicy = "continue",
        qr_encoder: Optional[QrEncoder] = None,
        qr_size_px: int = 360,
    ) -> None:
        self._product_label = product_label
        self._overflow = overflow
        self._qr_encoder = qr_encoder or QrEncoder()
        self._qr_size_px = qr_size_px

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        qr_encoder: Optional[QrEncoder] = None,
    ) -> "DocumentBuilder":
        return cls(
            product_label=settings.product_label,
            overflow=settings.evidence_overflow,
            qr_encoder=qr_encoder,
            qr_size_px=settings.qr_size_px,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, request: SealingRequest) -> RenderedDocument:
        """
        Build and finalize a sealed document for ``request``.

        Raises:
            ConstructionFailure: on any rendering or serialization failure.
        """
        plan = layout.plan_document(request, overflow=self._overflow)
        payload = QRPayload.from_request(request, page_count=plan.page_count)

        try:
            qr_png = self._qr_encoder.encode(payload, self._qr_size_px)
        except SealingError:
            raise
        except Exception as exc:
            raise ConstructionFailure(
                f"QR generation failed: {exc}",
                stage="qr",
                cause=exc,
            ) from exc

        raw = self._render(plan, request, qr_png)
        content = bind_seal_payload(raw, payload)

        logger.info(
            "document_rendered",
            extra={
                "page_count": plan.page_count,
                "evidence_count": len(request.evidence),
                "dropped_evidence": plan.dropped_evidence,
                "size_bytes": len(content),
            },
        )

        return RenderedDocument(
            content=content,
            page_count=plan.page_count,
            payload=payload,
            primary_digest=request.primary_digest,
            dropped_evidence=plan.dropped_evidence,
        )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render(
        self,
        plan: DocumentPlan,
        request: SealingRequest,
        qr_png: bytes,
    ) -> bytes:
        try:
            pdfmetrics.getFont(layout.FONT_NAME)
        except Exception as exc:
            raise ConstructionFailure(
                f"Font '{layout.FONT_NAME}' is unavailable: {exc}",
                stage="font",
                cause=exc,
            ) from exc

        qr_image = self._load_image(qr_png, stage="qr")
        logo_image = (
            self._load_image(request.logo, stage="logo")
            if request.logo
            else None
        )

        footer = layout.furniture_text(
            self._product_label,
            request.primary_digest,
        )

        buffer = io.BytesIO()

        try:
            pdf = canvas.Canvas(
                buffer,
                pagesize=(layout.PAGE_WIDTH, layout.PAGE_HEIGHT),
                invariant=1,
            )
            pdf.setTitle(request.title)
            pdf.setAuthor(self._product_label)
            pdf.setCreator(f"Verum Omnis {request.version}")

            for page in plan.pages:
                self._draw_furniture(pdf, footer)

                for run in page.runs:
                    pdf.setFont(layout.FONT_NAME, run.size)
                    pdf.setFillGray(run.grey)
                    pdf.drawString(run.x, run.y, run.text)

                if page.kind == "summary" and logo_image is not None:
                    pdf.drawImage(
                        logo_image,
                        layout.PAGE_WIDTH - layout.MARGIN_X - layout.LOGO_EDGE,
                        layout.PAGE_HEIGHT - layout.LOGO_TOP_OFFSET,
                        width=layout.LOGO_EDGE,
                        height=layout.LOGO_EDGE,
                        mask="auto",
                    )

                if page.kind == "sealing":
                    pdf.drawImage(
                        qr_image,
                        layout.PAGE_WIDTH - layout.QR_OFFSET - layout.QR_EDGE,
                        layout.QR_OFFSET,
                        width=layout.QR_EDGE,
                        height=layout.QR_EDGE,
                    )

                pdf.showPage()

            pdf.save()
        except Exception as exc:
            raise ConstructionFailure(
                f"Rendering failed: {exc}",
                stage="render",
                cause=exc,
            ) from exc

        return buffer.getvalue()

    @staticmethod
    def _draw_furniture(pdf: canvas.Canvas, footer: str) -> None:
        pdf.setFont(layout.FONT_NAME, layout.FOOTER_SIZE)
        pdf.setFillGray(layout.FOOTER_GREY)
        pdf.drawString(layout.MARGIN_X, layout.FOOTER_Y, footer)

    @staticmethod
    def _load_image(data: bytes, *, stage: str) -> ImageReader:
        try:
            image = ImageReader(io.BytesIO(data))
            # Forces decoding so corrupt input fails here, not mid-render.
            image.getSize()
        except Exception as exc:
            raise ConstructionFailure(
                f"Cannot embed {stage} image: {exc}",
                stage=stage,
                cause=exc,
            ) from exc
        return image
