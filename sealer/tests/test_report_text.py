from sealer.app.services.report_text import (
    SECTION_NOT_FOUND,
    document_title,
    extract_section,
    is_manifest_only,
    markdown_to_plain_text,
    report_file_name,
    substitute_placeholders,
)

REPORT = """# Forensic Analysis

## Key Findings
- **Invoice 12** was altered after signing.
- See [the ledger](https://example.org/ledger) for `entry 7`.

## Contradictions & Risks
> Dates in the e-mail thread disagree.

## Next Steps
Request the original invoice.

## Sealing Metadata
- Certified SHA-512 Hash: [Placeholder for SHA-512 hash of this report]
- Cloud Anchor: [Placeholder for Cloud Anchor]
- Firestore Record: [Placeholder for Firestore Record]
"""


def test_markdown_is_flattened():
    text = markdown_to_plain_text(REPORT)

    assert "Forensic Analysis" in text
    assert "#" not in text
    assert "**" not in text
    assert "• Invoice 12 was altered after signing." in text
    assert "See the ledger for entry 7." in text
    assert "https://example.org" not in text
    assert "\nDates in the e-mail thread disagree." in text


def test_underscores_inside_names_survive():
    assert markdown_to_plain_text("file_name_v2.pdf") == "file_name_v2.pdf"
    assert markdown_to_plain_text("_emphasis_") == "emphasis"


def test_manifest_detection_selects_title():
    assert not is_manifest_only(REPORT)
    assert document_title(REPORT) == "Sealed Forensic Report"

    assert is_manifest_only("I have received your 3 document(s).")
    assert is_manifest_only(None)
    assert document_title(None) == "Sealed Document Manifest"


def test_extract_section_stops_at_next_heading():
    assert extract_section(REPORT, "Next Steps") == "Request the original invoice."
    assert extract_section(REPORT, "Contradictions & Risks") == (
        "Dates in the e-mail thread disagree."
    )


def test_extract_section_is_case_insensitive():
    assert extract_section(REPORT, "next steps") == "Request the original invoice."


def test_extract_missing_section():
    assert extract_section(REPORT, "Appendix") == SECTION_NOT_FOUND


def test_substitute_placeholders():
    digest = "ab" * 64

    text = substitute_placeholders(REPORT, digest, storage_path="users/u/r.pdf")

    assert f"Certified SHA-512 Hash: {digest}" in text
    assert "Cloud Anchor: users/u/r.pdf" in text
    assert "Firestore Record: N/A" in text
    assert "[Placeholder" not in text


def test_report_file_name():
    assert (
        report_file_name("2024-01-01T12:34:56.789Z")
        == "VO_Sealed_Report_2024-01-01T12-34-56-789Z.pdf"
    )
