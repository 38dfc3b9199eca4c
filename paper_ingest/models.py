"""Data models for the ingestion pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class DocumentKind(str, Enum):
    PDF = "pdf"
    DOCX = "docx"
    IMAGE = "image"

    def __str__(self) -> str:
        return self.value


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


@dataclass
class SourceDocument:
    """An uploaded file as handed over by the caller. Never deleted here."""

    path: str
    declared_extension: str
    byte_size: int
    kind: DocumentKind
    mime_type: str


@dataclass(frozen=True)
class ValidationIssue:
    severity: Severity
    message: str


@dataclass
class ValidationReport:
    """Result of structural PDF validation."""

    is_valid: bool
    issues: list[ValidationIssue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.WARNING]

    @property
    def primary_error(self) -> Optional[str]:
        errors = self.errors
        return errors[0].message if errors else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "issues": [
                {"severity": str(i.severity), "message": i.message} for i in self.issues
            ],
            "recommendations": list(self.recommendations),
        }


@dataclass
class PageImage:
    """PNG raster of a single page."""

    page_number: int
    data: bytes
    width: int
    height: int
    preview: bool = False
    placeholder: bool = False


class PageOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FELL_BACK_TO_PREVIEW = "fell_back_to_preview"
    FAILED = "failed"


FALLBACK_NOTE = "[Note: simplified rendering used for page {page}]"
PAGE_ERROR_MARKER = "[Error: unable to process page {page}]"


@dataclass
class PageResult:
    """Outcome of OCR for one PDF page."""

    page_number: int
    outcome: PageOutcome
    text: str = ""
    error: Optional[str] = None

    def segment(self) -> str:
        """Contribution of this page to the document text."""
        if self.outcome is PageOutcome.SUCCEEDED:
            return self.text
        if self.outcome is PageOutcome.FELL_BACK_TO_PREVIEW:
            note = FALLBACK_NOTE.format(page=self.page_number)
            return f"{note}\n{self.text}" if self.text else note
        return PAGE_ERROR_MARKER.format(page=self.page_number)


@dataclass
class ExtractionResult:
    """Text extracted from one document.

    ``text`` is the per-page segments in ascending page order, each followed
    by a blank line. For images and DOCX it is the extractor output as is.
    """

    text: str
    pages_processed: int
    pages_total: int
    warnings: list[str] = field(default_factory=list)
    page_results: list[PageResult] = field(default_factory=list)


@dataclass
class IngestResult:
    """What the upload endpoint receives on success."""

    text: str
    page_count: int
    processing_time_ms: int
    pages_processed: int
    mime_type: str
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "pageCount": self.page_count,
            "processingTimeMs": self.processing_time_ms,
            "pagesProcessed": self.pages_processed,
            "mimeType": self.mime_type,
            "warnings": list(self.warnings),
        }
