"""Structural pre-validation of uploaded PDF files."""

import os
from typing import Optional

from paper_ingest.config import MB, IngestConfig
from paper_ingest.logger import get_logger
from paper_ingest.models import Severity, ValidationIssue, ValidationReport

logger = get_logger(__name__)


PDF_HEADER = b"%PDF-"
ENCRYPTION_MARKERS = (b"/Encrypt",)  # also matches /Encryption
THREE_D_MARKERS = (b"/3D", b"/PRC", b"/U3D")
COMPLEX_GRAPHICS_MARKERS = (b"/Shader", b"/Pattern", b"/XObject")


class PdfValidator:
    """Checks a PDF's leading bytes and size before any heavy processing.

    Only the first ``validation_sample_bytes`` of the file are inspected, so
    markers further into the file go unnoticed. The validator never raises:
    I/O failures become a single error issue in the report.
    """

    def __init__(self, config: Optional[IngestConfig] = None):
        self.config = config or IngestConfig()

    def validate(self, path: str) -> ValidationReport:
        issues: list[ValidationIssue] = []
        recommendations: list[str] = []

        try:
            with open(path, "rb") as f:
                sample = f.read(self.config.validation_sample_bytes)

            if not sample.startswith(PDF_HEADER):
                issues.append(
                    ValidationIssue(
                        Severity.ERROR,
                        "Not a valid PDF file. The file does not have a proper PDF header.",
                    )
                )

            if _contains_any(sample, ENCRYPTION_MARKERS):
                issues.append(
                    ValidationIssue(
                        Severity.ERROR,
                        "The PDF file appears to be encrypted or password-protected.",
                    )
                )
                recommendations.append("Remove the password protection and try again.")

            if _contains_any(sample, THREE_D_MARKERS):
                issues.append(
                    ValidationIssue(
                        Severity.WARNING,
                        "The PDF appears to contain 3D content, which may cause rendering issues.",
                    )
                )
                recommendations.append(
                    "Save the PDF as a flattened 2D document before uploading."
                )

            if _contains_any(sample, COMPLEX_GRAPHICS_MARKERS):
                issues.append(
                    ValidationIssue(
                        Severity.WARNING,
                        "The PDF contains complex graphics elements that might affect processing.",
                    )
                )

            size = os.stat(path).st_size
            if size > self.config.max_pdf_bytes:
                issues.append(
                    ValidationIssue(
                        Severity.ERROR,
                        f"File is too large ({round(size / MB)} MB). Maximum allowed size "
                        f"is {self.config.max_pdf_bytes // MB} MB.",
                    )
                )
                recommendations.append(
                    "Reduce the file size or split the document into smaller parts."
                )

        except OSError as exc:
            logger.error(
                "PDF validation could not read file",
                extra_data={
                    "path": path,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return ValidationReport(
                is_valid=False,
                issues=[ValidationIssue(Severity.ERROR, f"Failed to validate PDF: {exc}")],
            )

        report = ValidationReport(
            is_valid=not any(i.severity is Severity.ERROR for i in issues),
            issues=issues,
            recommendations=recommendations,
        )

        logger.debug(
            "PDF validation completed",
            extra_data={
                "path": path,
                "is_valid": report.is_valid,
                "errors": len(report.errors),
                "warnings": len(report.warnings),
            },
        )
        return report


def _contains_any(sample: bytes, markers: tuple[bytes, ...]) -> bool:
    return any(marker in sample for marker in markers)
