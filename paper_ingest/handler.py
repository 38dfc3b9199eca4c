"""Upload ingestion orchestration."""

from typing import Optional

from paper_ingest.config import IngestConfig
from paper_ingest.detector import DocumentDetector
from paper_ingest.exceptions import InvalidDocumentError, IngestError, PaperIngestError, ProcessingBusyError
from paper_ingest.extractor import DocumentTextExtractor
from paper_ingest.gate import BUSY_MESSAGE, ProcessingGate, default_gate
from paper_ingest.logger import Timer, get_logger, request_context
from paper_ingest.models import DocumentKind, IngestResult
from paper_ingest.validator import PdfValidator

logger = get_logger(__name__)


class IngestPipeline:
    def __init__(
        self,
        config: Optional[IngestConfig] = None,
        gate: Optional[ProcessingGate] = None,
        extractor: Optional[DocumentTextExtractor] = None,
        detector: Optional[DocumentDetector] = None,
        validator: Optional[PdfValidator] = None,
    ) -> None:
        """Initialize the ingestion pipeline.

        Args:
            config: Ingestion limits. If None, uses defaults.
            gate: Concurrency gate. If None, uses the process-wide default gate.
            extractor: Text extractor. If None, creates default with config.
            detector: Upload admission. If None, creates default with config.
            validator: PDF validator. If None, creates default with config.
        """
        self.config = config or IngestConfig()
        self.gate = gate if gate is not None else default_gate
        self.extractor = extractor or DocumentTextExtractor(config=self.config)
        self.detector = detector or DocumentDetector(self.config)
        self.validator = validator or PdfValidator(self.config)

    async def process(
        self,
        path: str,
        mime_type: Optional[str] = None,
        request_id: Optional[str] = None,
        keep_gate: bool = False,
    ) -> IngestResult:
        """Ingest an uploaded file.

        Args:
            path: Path of the saved upload. The file is never deleted here.
            mime_type: MIME type declared by the client, if any
            request_id: Upload identifier for logs and gate bookkeeping
            keep_gate: Keep the processing slot after a successful extraction.
                The caller must then release it (see ``reset_processing_status``)
                once its own follow-up work is done. On failure the slot is
                always released.

        Returns:
            IngestResult with extracted text and metadata

        Raises:
            ProcessingBusyError: If another upload is being processed
            UnsupportedTypeError: If the file type is not accepted
            FileTooLargeError: If the file exceeds the upload limit
            InvalidDocumentError: If the PDF fails structural validation
            PaperIngestError: Any other pipeline failure, with ``status_code`` set
        """
        with request_context(request_id) as rid:
            if not self.gate.try_acquire(rid):
                raise ProcessingBusyError(BUSY_MESSAGE)

            succeeded = False
            try:
                result = await self._process(path, mime_type)
                succeeded = True
                return result
            finally:
                if not (keep_gate and succeeded):
                    self.gate.release(rid)

    async def _process(self, path: str, mime_type: Optional[str]) -> IngestResult:
        with Timer("ingest") as timer:
            document = self.detector.detect(path, mime_type)
            warnings: list[str] = []

            if document.kind is DocumentKind.PDF:
                report = self.validator.validate(path)
                if not report.is_valid:
                    logger.error(
                        "PDF validation failed",
                        extra_data={
                            "path": path,
                            "issues": [i.message for i in report.issues],
                        },
                    )
                    primary = (
                        report.primary_error
                        or "The file may be corrupted or in an unsupported format."
                    )
                    raise InvalidDocumentError(
                        f"Invalid PDF file. {primary}",
                        issues=report.issues,
                        recommendations=report.recommendations,
                    )
                for issue in report.warnings:
                    logger.warning(
                        "PDF validation warning",
                        extra_data={"path": path, "warning": issue.message},
                    )
                    warnings.append(issue.message)

            try:
                extraction = await self.extractor.extract(path, document.kind)
            except PaperIngestError:
                raise
            except Exception as exc:
                logger.error(
                    "Unexpected ingestion failure",
                    extra_data={
                        "path": path,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                    exc_info=True,
                )
                raise IngestError(f"Error processing file: {exc}") from exc

        warnings.extend(extraction.warnings)
        result = IngestResult(
            text=extraction.text,
            page_count=extraction.pages_total,
            processing_time_ms=timer.get_elapsed_ms(),
            pages_processed=extraction.pages_processed,
            mime_type=document.mime_type,
            warnings=warnings,
        )

        if not result.text.strip():
            logger.warning(
                "No text content extracted from document",
                extra_data={"path": path, "mime_type": document.mime_type},
            )

        logger.info(
            "Document ingested",
            extra_data={
                "path": path,
                "mime_type": document.mime_type,
                "page_count": result.page_count,
                "pages_processed": result.pages_processed,
                "character_count": len(result.text),
                "warnings": len(warnings),
                "processing_time_ms": result.processing_time_ms,
            },
        )
        return result
