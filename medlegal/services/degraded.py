"""Fallback content used when a pipeline stage cannot produce real output.

Keeping the literals here lets the fallbacks be tested without running the
pipeline, and keeps the response shape identical to a successful analysis.
"""

from datetime import datetime
from typing import Optional

from medlegal.services.ai.providers import DocumentAnalysis

FALLBACK_SUMMARY = "Document processed but AI analysis unavailable at the moment."
FALLBACK_KEY_FINDING = "Automated analysis was unavailable; review this document manually."

REASON_EXTRACTION_FAILED = (
    "Unable to extract text content from this document. "
    "Please ensure the document is a readable PDF or text file."
)
REASON_EXTRACTION_UNAVAILABLE = "Text extraction service is not configured."
REASON_NO_FILE = "Document file not yet available for analysis."


def build_placeholder_text(
    file_name: str,
    uploaded_at: Optional[datetime],
    mime_type: Optional[str],
    reason: str,
) -> str:
    """Stand-in document text carrying what is known about the file."""
    uploaded = uploaded_at.date().isoformat() if uploaded_at else "Unknown"
    return (
        f"Document: {file_name}\n"
        f"Uploaded: {uploaded}\n"
        f"File Type: {mime_type or 'unknown'}\n\n"
        f"Note: {reason}"
    )


def build_degraded_analysis() -> DocumentAnalysis:
    """Canned analysis returned when the LLM stage fails.

    The failure detail is reported through the stage list, not the findings.
    """
    return DocumentAnalysis(
        summary=FALLBACK_SUMMARY,
        extracted_data={},
        key_findings=[FALLBACK_KEY_FINDING],
    )
