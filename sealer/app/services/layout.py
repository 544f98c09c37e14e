"""
Deterministic page layout for sealed documents.

This module performs the DRY layout pass of document construction. It
decides where every line of text goes, on which page, and therefore how
many pages the finished document has, without touching a PDF canvas.

Layout protocol (two explicit passes):

    1. ``plan_document`` lays out every page into a ``DocumentPlan``.
       The plan's page count is final once it returns.
    2. The renderer (``pdf_builder``) draws the plan. Size-dependent
       content (the QR code carrying the page count) is generated between
       the two passes, never before layout completes.

Cursor state is an explicit ``LayoutContext`` value threaded through each
flow operation. The plan is written by a single caller; no layout step
runs concurrently.

All coordinates are absolute page units from the bottom-left origin.
Sizes, offsets and margins below are fixed design parameters.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import List, Literal, Optional, Sequence, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.pdfbase import pdfmetrics

from sealer.app.config import OverflowPolicy
from sealer.app.schemas.sealing import (
    DEFAULT_TITLE,
    EvidenceRecord,
    SealingRequest,
)

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Design parameters
# ------------------------------------------------------------------

PAGE_WIDTH, PAGE_HEIGHT = A4
FONT_NAME = "Helvetica"

MARGIN_X = 50
TOP_MARGIN = 80
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN_X

# Furniture
FOOTER_Y = 40
FOOTER_SIZE = 8
FOOTER_GREY = 0.5
FOOTER_HASH_CHARS = 16

# Summary page
HEADING_TEXT = "Verum Omnis V5"
HEADING_SIZE = 24
HEADING_OFFSET = 80
TITLE_SIZE = 18
TITLE_OFFSET = 120
TITLE_GREY = 0.2
EVIDENCE_LABEL_TEXT = "Evidence & Hashes:"
EVIDENCE_LABEL_SIZE = 12
EVIDENCE_LABEL_OFFSET = 165
EVIDENCE_START_OFFSET = 185
EVIDENCE_X = 60
EVIDENCE_NAME_SIZE = 10
EVIDENCE_DIGEST_SIZE = 9
EVIDENCE_NAME_ADVANCE = 12
EVIDENCE_DIGEST_ADVANCE = 11
EVIDENCE_ENTRY_GAP = 14
EVIDENCE_ENTRY_ADVANCE = (
    EVIDENCE_NAME_ADVANCE + EVIDENCE_DIGEST_ADVANCE + EVIDENCE_ENTRY_GAP
)
EVIDENCE_BOTTOM_THRESHOLD = 100
DIGEST_LINE_CHARS = 64
DIGEST_PREFIX = "  SHA-512: "

LOGO_EDGE = 60
LOGO_TOP_OFFSET = 100

# Body pages
BODY_HEADING_TEXT = "Conversation Excerpt:"
BODY_HEADING_SIZE = 12
BODY_HEADING_OFFSET = 80
BODY_START_OFFSET = 100
BODY_SIZE = 10
BODY_LINE_HEIGHT = 14
BODY_BOTTOM_MARGIN = 80

# Sealing page
SEALING_HEADING_TEXT = "Sealing Metadata"
SEALING_HEADING_SIZE = 14
SEALING_HEADING_OFFSET = 80
METADATA_START_OFFSET = 110
METADATA_SIZE = 11
METADATA_LINE_HEIGHT = 14
QR_EDGE = 120
QR_OFFSET = 50

# Text is drawn with a single-byte standard font encoding.
_FONT_ENCODING = "cp1252"

PageKind = Literal["summary", "evidence", "body", "sealing"]


# ------------------------------------------------------------------
# Plan structures
# ------------------------------------------------------------------


@dataclass(frozen=True)
class TextRun:
    """One ``drawString`` call on a page."""

    x: float
    y: float
    text: str
    size: float
    grey: float = 0.0


@dataclass
class PagePlan:
    kind: PageKind
    runs: List[TextRun] = field(default_factory=list)


@dataclass
class DocumentPlan:
    """Output of the dry layout pass."""

    pages: List[PagePlan] = field(default_factory=list)
    dropped_evidence: int = 0

    @property
    def page_count(self) -> int:
        return len(self.pages)


@dataclass(frozen=True)
class LayoutContext:
    """Explicit layout cursor: the active page and the vertical position."""

    page_index: int
    y: float

    def advance(self, amount: float) -> "LayoutContext":
        return replace(self, y=self.y - amount)


@dataclass(frozen=True)
class FlowLine:
    text: str
    size: float
    advance: float
    x: float = MARGIN_X


@dataclass(frozen=True)
class FlowBlock:
    """
    Lines that must stay together on one page.

    A block without any text is a blank line: it only moves the cursor.
    """

    lines: Tuple[FlowLine, ...]

    @property
    def is_blank(self) -> bool:
        return not any(line.text for line in self.lines)

    @property
    def height(self) -> float:
        return sum(line.advance for line in self.lines)


@dataclass(frozen=True)
class FlowRegion:
    """Where and how a sequence of blocks flows across pages."""

    bottom: float
    continuation_kind: PageKind
    overflow: OverflowPolicy = "continue"


# ------------------------------------------------------------------
# Text helpers
# ------------------------------------------------------------------


def font_safe(text: str) -> str:
    """Replace characters the standard font encoding cannot represent."""
    return text.encode(_FONT_ENCODING, errors="replace").decode(_FONT_ENCODING)


def measure(text: str, size: float) -> float:
    """Width of ``text`` in page units at ``size`` in the document font."""
    return pdfmetrics.stringWidth(text, FONT_NAME, size)


def wrap_paragraph(
    paragraph: str,
    *,
    size: float = BODY_SIZE,
    max_width: float = CONTENT_WIDTH,
) -> List[str]:
    """
    Greedy word-wrap of a single paragraph.

    Words are accumulated while the measured line width stays within
    ``max_width``. The word that overflows starts the next line. A word
    that is wider than ``max_width`` on its own is emitted alone on its
    line, without further splitting.
    """
    lines: List[str] = []
    line = ""

    for word in paragraph.split(" "):
        candidate = word if not line else f"{line} {word}"
        if line and measure(candidate, size) > max_width:
            lines.append(line)
            line = word
        else:
            line = candidate

    if line:
        lines.append(line)

    return lines


def furniture_text(label: str, primary_digest: Optional[str]) -> str:
    """Footer text: the product label and, if known, a truncated digest."""
    if not primary_digest:
        return font_safe(label)
    partial = primary_digest[:FOOTER_HASH_CHARS]
    return font_safe(f"{label} | Evidence Hash: {partial}...")


def metadata_lines(request: SealingRequest, page_count: int) -> List[str]:
    return [
        f"Local Timestamp: {request.local_timestamp}",
        f"UTC Timestamp: {request.utc_timestamp}",
        f"Version: {request.version}",
        f"Files: {len(request.evidence)}",
        f"Page Count: {page_count}",
    ]


# ------------------------------------------------------------------
# Capacity
# ------------------------------------------------------------------


def evidence_capacity(start_y: float) -> int:
    """
    Number of evidence entries that fit when the first entry starts at
    ``start_y``.

    An entry is drawn while the cursor is at or above the bottom
    threshold, and each entry advances the cursor by a fixed amount.
    """
    if start_y < EVIDENCE_BOTTOM_THRESHOLD:
        return 0
    return int(
        (start_y - EVIDENCE_BOTTOM_THRESHOLD) // EVIDENCE_ENTRY_ADVANCE
    ) + 1


def summary_capacity() -> int:
    """Evidence entries that fit on the summary page (N)."""
    return evidence_capacity(PAGE_HEIGHT - EVIDENCE_START_OFFSET)


# ------------------------------------------------------------------
# Flow
# ------------------------------------------------------------------


def open_page(plan: DocumentPlan, kind: PageKind) -> LayoutContext:
    """Append an empty page and return a cursor at its top margin."""
    plan.pages.append(PagePlan(kind=kind))
    return LayoutContext(
        page_index=len(plan.pages) - 1,
        y=PAGE_HEIGHT - TOP_MARGIN,
    )


def place(plan: DocumentPlan, ctx: LayoutContext, run: TextRun) -> None:
    plan.pages[ctx.page_index].runs.append(run)


def flow_blocks(
    plan: DocumentPlan,
    ctx: LayoutContext,
    blocks: Sequence[FlowBlock],
    region: FlowRegion,
) -> Tuple[LayoutContext, int]:
    """
    Flow ``blocks`` downwards from ``ctx``, breaking pages as needed.

    A page break is taken whenever the cursor is below ``region.bottom``
    at the moment a non-blank block is about to be drawn. Blank blocks
    advance the cursor and so take part in the next break decision.

    With ``overflow="truncate"`` no page is opened; the remaining blocks
    are dropped instead.

    Returns:
        The cursor after the last placed block and the number of dropped
        blocks.
    """
    for index, block in enumerate(blocks):
        if block.is_blank:
            ctx = ctx.advance(block.height)
            continue

        if ctx.y < region.bottom:
            if region.overflow == "truncate":
                dropped = sum(1 for b in blocks[index:] if not b.is_blank)
                return ctx, dropped
            ctx = open_page(plan, region.continuation_kind)

        for line in block.lines:
            if line.text:
                place(
                    plan,
                    ctx,
                    TextRun(x=line.x, y=ctx.y, text=line.text, size=line.size),
                )
            ctx = ctx.advance(line.advance)

    return ctx, 0


# ------------------------------------------------------------------
# Block builders
# ------------------------------------------------------------------


def evidence_block(record: EvidenceRecord) -> FlowBlock:
    """
    An evidence entry: the file name followed by its full digest.

    The digest is split over two lines of ``DIGEST_LINE_CHARS`` characters
    so that it stays inside the content width at its font size.
    """
    head = record.digest[:DIGEST_LINE_CHARS]
    tail = record.digest[DIGEST_LINE_CHARS:]
    tail_x = EVIDENCE_X + measure(DIGEST_PREFIX, EVIDENCE_DIGEST_SIZE)

    return FlowBlock(
        lines=(
            FlowLine(
                text=font_safe(f"• {record.name}"),
                size=EVIDENCE_NAME_SIZE,
                advance=EVIDENCE_NAME_ADVANCE,
                x=EVIDENCE_X,
            ),
            FlowLine(
                text=f"{DIGEST_PREFIX}{head}",
                size=EVIDENCE_DIGEST_SIZE,
                advance=EVIDENCE_DIGEST_ADVANCE,
                x=EVIDENCE_X,
            ),
            FlowLine(
                text=tail,
                size=EVIDENCE_DIGEST_SIZE,
                advance=EVIDENCE_ENTRY_GAP,
                x=tail_x,
            ),
        )
    )


def body_blocks(body_text: str) -> List[FlowBlock]:
    """Wrap body text into one single-line block per output line."""
    blocks: List[FlowBlock] = []
    blank = FlowBlock(
        lines=(FlowLine(text="", size=BODY_SIZE, advance=BODY_LINE_HEIGHT),)
    )

    for paragraph in body_text.splitlines():
        if not paragraph.strip():
            blocks.append(blank)
            continue

        for line in wrap_paragraph(font_safe(paragraph)):
            blocks.append(
                FlowBlock(
                    lines=(
                        FlowLine(
                            text=line,
                            size=BODY_SIZE,
                            advance=BODY_LINE_HEIGHT,
                        ),
                    )
                )
            )

    return blocks


# ------------------------------------------------------------------
# Page sections
# ------------------------------------------------------------------


def layout_summary(
    plan: DocumentPlan,
    request: SealingRequest,
    *,
    overflow: OverflowPolicy,
) -> LayoutContext:
    ctx = open_page(plan, "summary")

    place(plan, ctx, TextRun(
        x=MARGIN_X,
        y=PAGE_HEIGHT - HEADING_OFFSET,
        text=HEADING_TEXT,
        size=HEADING_SIZE,
    ))
    place(plan, ctx, TextRun(
        x=MARGIN_X,
        y=PAGE_HEIGHT - TITLE_OFFSET,
        text=font_safe(request.title or DEFAULT_TITLE),
        size=TITLE_SIZE,
        grey=TITLE_GREY,
    ))
    place(plan, ctx, TextRun(
        x=MARGIN_X,
        y=PAGE_HEIGHT - EVIDENCE_LABEL_OFFSET,
        text=EVIDENCE_LABEL_TEXT,
        size=EVIDENCE_LABEL_SIZE,
    ))

    ctx = replace(ctx, y=PAGE_HEIGHT - EVIDENCE_START_OFFSET)
    ctx, dropped = flow_blocks(
        plan,
        ctx,
        [evidence_block(record) for record in request.evidence],
        FlowRegion(
            bottom=EVIDENCE_BOTTOM_THRESHOLD,
            continuation_kind="evidence",
            overflow=overflow,
        ),
    )

    if dropped:
        # Truncate policy: entries beyond the summary page are not rendered.
        logger.warning(
            "evidence_list_truncated rendered=%d dropped=%d",
            len(request.evidence) - dropped,
            dropped,
        )
        plan.dropped_evidence = dropped

    return ctx


def layout_body(plan: DocumentPlan, body_text: str) -> LayoutContext:
    ctx = open_page(plan, "body")

    place(plan, ctx, TextRun(
        x=MARGIN_X,
        y=PAGE_HEIGHT - BODY_HEADING_OFFSET,
        text=BODY_HEADING_TEXT,
        size=BODY_HEADING_SIZE,
    ))

    ctx = replace(ctx, y=PAGE_HEIGHT - BODY_START_OFFSET)
    ctx, _ = flow_blocks(
        plan,
        ctx,
        body_blocks(body_text),
        FlowRegion(bottom=BODY_BOTTOM_MARGIN, continuation_kind="body"),
    )
    return ctx


def layout_sealing(plan: DocumentPlan, request: SealingRequest) -> LayoutContext:
    """
    Lay out the sealing page. It is always the last page, so the page
    count it reports is the final one.
    """
    ctx = open_page(plan, "sealing")

    place(plan, ctx, TextRun(
        x=MARGIN_X,
        y=PAGE_HEIGHT - SEALING_HEADING_OFFSET,
        text=SEALING_HEADING_TEXT,
        size=SEALING_HEADING_SIZE,
    ))

    ctx = replace(ctx, y=PAGE_HEIGHT - METADATA_START_OFFSET)
    for text in metadata_lines(request, plan.page_count):
        place(plan, ctx, TextRun(
            x=MARGIN_X,
            y=ctx.y,
            text=font_safe(text),
            size=METADATA_SIZE,
        ))
        ctx = ctx.advance(METADATA_LINE_HEIGHT)

    return ctx


def plan_document(
    request: SealingRequest,
    *,
    overflow: OverflowPolicy = "continue",
) -> DocumentPlan:
    """Dry layout pass: summary, optional body, sealing page."""
    plan = DocumentPlan()

    layout_summary(plan, request, overflow=overflow)

    if request.body_text:
        layout_body(plan, request.body_text)

    layout_sealing(plan, request)

    logger.debug(
        "layout_completed pages=%d dropped_evidence=%d",
        plan.page_count,
        plan.dropped_evidence,
    )
    return plan
