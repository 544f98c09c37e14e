"""
QR raster generation for the sealing page.

The encoder is a pure collaborator of the document builder: it receives a
fully determined ``QRPayload`` and returns PNG bytes. It never looks at the
document being built.
"""

from __future__ import annotations

import io
import logging
from typing import Sequence

import qrcode
from qrcode.constants import ERROR_CORRECT_L, ERROR_CORRECT_M
from qrcode.exceptions import DataOverflowError

from sealer.app.errors import QrCapacityExceeded
from sealer.app.schemas.sealing import QRPayload

logger = logging.getLogger(__name__)


# Tried in order. Large evidence lists only fit at the lowest level.
_ERROR_CORRECTION_LEVELS: Sequence[int] = (ERROR_CORRECT_M, ERROR_CORRECT_L)

QUIET_ZONE_MODULES = 4


class QrEncoder:
    """Encode a ``QRPayload`` as a black-on-white PNG image."""

    def __init__(
        self,
        *,
        levels: Sequence[int] = _ERROR_CORRECTION_LEVELS,
        border: int = QUIET_ZONE_MODULES,
    ) -> None:
        self._levels = tuple(levels)
        self._border = border

    def encode(self, payload: QRPayload, size_px: int) -> bytes:
        """
        Render ``payload`` as PNG bytes close to ``size_px`` pixels wide.

        The module size is the largest whole number of pixels that keeps
        the image within ``size_px`` (at least one pixel per module).

        Raises:
            QrCapacityExceeded: if the payload does not fit any QR version
                at any of the configured levels.
        """
        text = payload.to_qr_text()

        for level in self._levels:
            code = qrcode.QRCode(
                version=None,
                error_correction=level,
                box_size=1,
                border=self._border,
            )
            code.add_data(text)
            try:
                code.make(fit=True)
            except (DataOverflowError, ValueError):
                # Newer qrcode releases report an oversized payload as an
                # invalid version (41) instead of a data overflow.
                logger.debug(
                    "qr_level_overflow level=%s payload_bytes=%d",
                    level,
                    len(text.encode("utf-8")),
                )
                continue

            modules = code.modules_count + 2 * self._border
            code.box_size = max(1, size_px // modules)

            image = code.make_image(fill_color="black", back_color="white")
            buffer = io.BytesIO()
            image.save(buffer)
            return buffer.getvalue()

        raise QrCapacityExceeded(
            len(text.encode("utf-8")),
            len(payload.digests),
        )
