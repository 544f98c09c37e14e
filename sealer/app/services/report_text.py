"""
Report text handling around a seal.

The analysis report that accompanies a seal is Markdown. Before sealing it
is flattened to plain text for the body pages; after sealing, the
placeholders it carries are replaced with the values that only exist once
the document has been built (most importantly the document digest).
"""

import re
from typing import Optional

from sealer.app.schemas.sealing import DEFAULT_TITLE, MANIFEST_TITLE


KEY_FINDINGS_HEADING = "## Key Findings"

DIGEST_PLACEHOLDER = "[Placeholder for SHA-512 hash of this report]"
CLOUD_ANCHOR_PLACEHOLDER = "[Placeholder for Cloud Anchor]"
RECORD_PLACEHOLDER = "[Placeholder for Firestore Record]"

MISSING_VALUE = "N/A"
SECTION_NOT_FOUND = "Not found in report."


# ------------------------------------------------------------------
# Markdown flattening
# ------------------------------------------------------------------

_BOLD = re.compile(r"(\*\*|__)(.*?)\1")
_ITALIC_STAR = re.compile(r"\*(.*?)\*")
_ITALIC_UNDERSCORE = re.compile(r"(?<!\w)_(.+?)_(?!\w)")
_HEADING = re.compile(r"^#+\s*(.*)$", re.MULTILINE)
_LINK = re.compile(r"\[(.*?)\]\(.*?\)")
_CODE = re.compile(r"`{1,3}(.*?)`{1,3}")
_LIST_ITEM = re.compile(r"^- ", re.MULTILINE)
_BLOCKQUOTE = re.compile(r"^> ", re.MULTILINE)


def markdown_to_plain_text(markdown: str) -> str:
    """
    Flatten Markdown to the plain text drawn on body pages.

    Emphasis markers, heading hashes, inline code fences and link targets
    are removed (link labels are kept). List items become bullets.
    """
    text = _BOLD.sub(r"\2", markdown)
    text = _ITALIC_STAR.sub(r"\1", text)
    text = _ITALIC_UNDERSCORE.sub(r"\1", text)
    text = _HEADING.sub(r"\1", text)
    text = _LINK.sub(r"\1", text)
    text = _CODE.sub(r"\1", text)
    text = _LIST_ITEM.sub("• ", text)
    text = _BLOCKQUOTE.sub("", text)
    return text


def is_manifest_only(report_text: Optional[str]) -> bool:
    """A report without a Key Findings section seals as a bare manifest."""
    if not report_text:
        return True
    return KEY_FINDINGS_HEADING not in report_text


def document_title(report_text: Optional[str]) -> str:
    return MANIFEST_TITLE if is_manifest_only(report_text) else DEFAULT_TITLE


def extract_section(markdown: str, title: str) -> str:
    """Plain text of the ``## <title>`` section, up to the next heading."""
    pattern = re.compile(
        rf"## {re.escape(title)}\n(.*?)(?=\n##|\Z)",
        re.IGNORECASE | re.DOTALL,
    )
    match = pattern.search(markdown)
    if match is None:
        return SECTION_NOT_FOUND
    return markdown_to_plain_text(match.group(1).strip())


# ------------------------------------------------------------------
# Post-seal substitution
# ------------------------------------------------------------------

def substitute_placeholders(
    report_text: str,
    document_digest: str,
    *,
    storage_path: Optional[str] = None,
    record_id: Optional[str] = None,
) -> str:
    """
    Replace seal placeholders with their final values.

    Anchors that were never created are rendered as ``N/A``.
    """
    return (
        report_text
        .replace(DIGEST_PLACEHOLDER, document_digest)
        .replace(CLOUD_ANCHOR_PLACEHOLDER, storage_path or MISSING_VALUE)
        .replace(RECORD_PLACEHOLDER, record_id or MISSING_VALUE)
    )


def report_file_name(utc_timestamp: str) -> str:
    """``VO_Sealed_Report_<timestamp>.pdf`` with ``:`` and ``.`` made safe."""
    safe = re.sub(r"[:.]", "-", utc_timestamp)
    return f"VO_Sealed_Report_{safe}.pdf"
