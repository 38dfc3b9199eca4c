"""Exam paper ingestion: validation, rasterization and OCR of uploaded files."""

from paper_ingest.config import IngestConfig, OCRConfig
from paper_ingest.detector import DocumentDetector
from paper_ingest.engine import RecognitionEngine, TesseractEngine
from paper_ingest.exceptions import (
    ConfigError,
    EngineInitError,
    ExtractionError,
    FileTooLargeError,
    IngestError,
    InvalidDocumentError,
    OperationTimeoutError,
    PageCountError,
    PageCountTimeoutError,
    PageRenderError,
    PageTimeoutError,
    PaperIngestError,
    PasswordProtectedError,
    ProcessingBusyError,
    UnsupportedTypeError,
)
from paper_ingest.extractor import DocumentTextExtractor
from paper_ingest.gate import NullGate, SingleFlightGate, default_gate, reset_processing_status
from paper_ingest.handler import IngestPipeline
from paper_ingest.models import (
    DocumentKind,
    ExtractionResult,
    IngestResult,
    PageImage,
    PageOutcome,
    PageResult,
    Severity,
    SourceDocument,
    ValidationIssue,
    ValidationReport,
)
from paper_ingest.page_count import PageCountEstimator
from paper_ingest.pipeline import ingest_document, ingest_document_sync
from paper_ingest.rasterizer import PageRasterizer, RenderingEnvironment
from paper_ingest.timeouts import run_with_timeout
from paper_ingest.validator import PdfValidator

__version__ = "0.1.0"

__all__ = [
    # High-level API
    "ingest_document",
    "ingest_document_sync",
    "reset_processing_status",
    # Core classes
    "IngestPipeline",
    "DocumentDetector",
    "PdfValidator",
    "PageCountEstimator",
    "PageRasterizer",
    "RenderingEnvironment",
    "DocumentTextExtractor",
    "RecognitionEngine",
    "TesseractEngine",
    "SingleFlightGate",
    "NullGate",
    "default_gate",
    "run_with_timeout",
    # Data models
    "DocumentKind",
    "SourceDocument",
    "Severity",
    "ValidationIssue",
    "ValidationReport",
    "PageImage",
    "PageOutcome",
    "PageResult",
    "ExtractionResult",
    "IngestResult",
    # Configuration
    "IngestConfig",
    "OCRConfig",
    # Exceptions
    "PaperIngestError",
    "ConfigError",
    "UnsupportedTypeError",
    "FileTooLargeError",
    "InvalidDocumentError",
    "PasswordProtectedError",
    "OperationTimeoutError",
    "PageTimeoutError",
    "PageCountTimeoutError",
    "PageCountError",
    "PageRenderError",
    "EngineInitError",
    "ExtractionError",
    "ProcessingBusyError",
    "IngestError",
]
