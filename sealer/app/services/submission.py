"""
Counsel submission e-mail drafts.

Builds the e-mail that accompanies a sealed report: a short summary
lifted from the report sections, the sealing metadata and a ``mailto:``
link. The sealed PDF itself is attached manually by the user; it is never
embedded in the draft.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence
from urllib.parse import quote

from sealer.app.schemas.sealing import SealResult, SubmissionEmail
from sealer.app.services.report_text import MISSING_VALUE, extract_section
from sealer.app.utils.timestamps import local_display, utc_iso, utc_now


# Characters that encodeURIComponent leaves as-is.
_URI_COMPONENT_SAFE = "-_.!~*'()"

ANCHOR_FAILED = "Failed to anchor"


def compose_submission_email(
    result: SealResult,
    report_text: str,
    file_names: Sequence[str],
    recipient: str,
    *,
    storage_path: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SubmissionEmail:
    """
    Compose the submission e-mail for a completed seal.

    ``report_text`` should be the report after placeholder substitution,
    so the sections quoted in the e-mail carry the final digest.
    """
    now = now or utc_now()
    case_id = int(now.timestamp() * 1000)

    key_findings = extract_section(report_text, "Key Findings")
    contradictions = extract_section(report_text, "Contradictions & Risks")
    next_steps = extract_section(report_text, "Next Steps")

    subject = f"Verum Omnis Sealed Report Submission - Case ID {case_id}"

    body = f"""
Dear Counsel,

Please find the sealed forensic report attached, generated by the Verum Omnis V5 AI.

The analysis has highlighted several key areas that require your attention. Below is a summary extracted directly from the report for your convenience.

---
**Key Findings:**
{key_findings}
---
**Contradictions & Risks Identified:**
{contradictions}
---
**Suggested Next Steps:**
{next_steps}
---

**Sealing Metadata:**
- Report Filename: {result.file_name}
- Certified SHA-512 Hash of PDF: {result.digest}
- Timestamp: {local_display(now)} (UTC: {utc_iso(now)})
- Cloud Anchor: {storage_path or ANCHOR_FAILED}
- Case Files Analyzed: {", ".join(file_names) or MISSING_VALUE}
---

This report has been certified by Verum Omnis V5. To preserve the integrity of the hash, please do not modify the attached file.

We await your response on the matters raised.

Regards,
Verum Omnis User
"""

    mailto_url = (
        f"mailto:{recipient}"
        f"?subject={quote(subject, safe=_URI_COMPONENT_SAFE)}"
        f"&body={quote(body, safe=_URI_COMPONENT_SAFE)}"
    )

    return SubmissionEmail(
        recipient=recipient,
        subject=subject,
        body=body,
        mailto_url=mailto_url,
    )
