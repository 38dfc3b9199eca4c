"""OCR orchestration: turns an uploaded PDF, image or DOCX into plain text."""

import asyncio
import gc
from pathlib import Path
from typing import Callable, Optional

from docx import Document

from paper_ingest.config import IngestConfig
from paper_ingest.detector import EXTENSION_TYPES
from paper_ingest.engine import RecognitionEngine, TesseractEngine
from paper_ingest.exceptions import EngineInitError, ExtractionError
from paper_ingest.logger import Timer, get_logger
from paper_ingest.models import DocumentKind, ExtractionResult, PageOutcome, PageResult
from paper_ingest.page_count import PageCountEstimator
from paper_ingest.rasterizer import PageRasterizer, RenderingEnvironment, default_environment
from paper_ingest.timeouts import run_with_timeout

logger = get_logger(__name__)


OCR_TIMEOUT_GRACE = 5.0

TRUNCATION_NOTE = (
    "[Note: Only the first {processed} of {total} pages were processed due to document size]"
)


class DocumentTextExtractor:
    """Extracts text from exam papers.

    PDFs are rasterized and OCR'd page by page, strictly one page at a time.
    A page that cannot be rendered is retried once through the preview
    renderer; if that fails too, an error marker stands in for its text. Only
    engine start-up, DOCX reading and page counting can fail a whole document.
    """

    def __init__(
        self,
        config: Optional[IngestConfig] = None,
        rasterizer: Optional[PageRasterizer] = None,
        page_counter: Optional[PageCountEstimator] = None,
        engine_factory: Optional[Callable[[], RecognitionEngine]] = None,
        environment: Optional[RenderingEnvironment] = None,
    ):
        """Initialize extractor.

        Args:
            config: Ingestion limits. If None, uses defaults.
            rasterizer: Page renderer. If None, creates one on ``environment``.
            page_counter: Page count estimator. If None, creates one.
            engine_factory: Builds a fresh recognition engine per document.
                If None, uses Tesseract with ``config.ocr``.
            environment: Rendering environment. If None, uses the process default.
        """
        self.config = config or IngestConfig()
        self.environment = environment or default_environment()
        self.rasterizer = rasterizer or PageRasterizer(self.environment, self.config)
        self.page_counter = page_counter or PageCountEstimator(self.config, self.environment)
        self.engine_factory = engine_factory or (
            lambda: TesseractEngine(self.config.ocr, timeout=self.config.ocr_timeout)
        )

    async def extract_text(self, path: str) -> str:
        """Extract text only. See :meth:`extract`."""
        result = await self.extract(path)
        return result.text

    async def extract(self, path: str, kind: Optional[DocumentKind] = None) -> ExtractionResult:
        """Extract text from the document at ``path``.

        Args:
            path: Path to the uploaded file. It is never modified or deleted.
            kind: Document kind; derived from the extension if None.

        Raises:
            EngineInitError: If the recognition engine cannot be started
            ExtractionError: If a DOCX or image cannot be read
            PasswordProtectedError, PageCountError, PageCountTimeoutError:
                If the PDF page count cannot be determined
        """
        kind = kind or _kind_for(path)

        logger.debug(
            "Starting document extraction",
            extra_data={"path": path, "kind": kind},
        )

        if kind is DocumentKind.DOCX:
            return await self._extract_docx(path)

        engine = await self._start_engine()
        try:
            if kind is DocumentKind.PDF:
                return await self._extract_pdf(path, engine)
            return await self._extract_image(path, engine)
        finally:
            self._terminate_engine(engine)

    async def _start_engine(self) -> RecognitionEngine:
        engine = self.engine_factory()
        try:
            await asyncio.to_thread(engine.start)
        except EngineInitError:
            raise
        except Exception as exc:
            raise EngineInitError(f"Failed to initialize OCR engine: {exc}") from exc
        return engine

    @staticmethod
    def _terminate_engine(engine: RecognitionEngine) -> None:
        try:
            engine.terminate()
        except Exception as exc:
            logger.warning(
                "Recognition engine did not terminate cleanly",
                extra_data={"error_type": type(exc).__name__, "error": str(exc)},
            )

    async def _recognize(self, engine: RecognitionEngine, image, label: str) -> str:
        # The engine kills its own process at ocr_timeout; this outer bound
        # only covers engines that cannot be interrupted.
        return await run_with_timeout(
            engine.recognize,
            image,
            timeout=self.config.ocr_timeout + OCR_TIMEOUT_GRACE,
            operation=f"Recognition of {label}",
        )

    async def _extract_pdf(self, path: str, engine: RecognitionEngine) -> ExtractionResult:
        page_count = await self.page_counter.count(path)
        pages_to_process = min(page_count, self.config.max_pages)
        batch_size = self.config.batch_size

        logger.info(
            "Processing PDF",
            extra_data={
                "path": path,
                "page_count": page_count,
                "pages_to_process": pages_to_process,
                "batch_size": batch_size,
            },
        )

        parts: list[str] = []
        page_results: list[PageResult] = []
        warnings: list[str] = []

        with Timer("pdf_ocr") as timer:
            batch_starts = list(range(1, pages_to_process + 1, batch_size))
            for batch_index, start in enumerate(batch_starts):
                end = min(start + batch_size - 1, pages_to_process)
                logger.debug(
                    f"Processing batch {batch_index + 1}",
                    extra_data={"first_page": start, "last_page": end},
                )

                for page_number in range(start, end + 1):
                    result = await self._process_page(path, page_number, engine)
                    page_results.append(result)
                    parts.append(result.segment() + "\n\n")
                    if result.outcome is PageOutcome.FELL_BACK_TO_PREVIEW:
                        warnings.append(
                            f"Page {page_number} was processed with simplified rendering: {result.error}"
                        )
                    elif result.outcome is PageOutcome.FAILED:
                        warnings.append(f"Page {page_number} could not be processed: {result.error}")
                    self.environment.reclaim()

                if batch_index < len(batch_starts) - 1:
                    gc.collect()
                    await asyncio.sleep(self.config.batch_pause)

        if page_count > pages_to_process:
            note = TRUNCATION_NOTE.format(processed=pages_to_process, total=page_count)
            parts.append(note + "\n")
            warnings.append(note)

        text = "".join(parts)

        logger.info(
            "PDF OCR completed",
            extra_data={
                "path": path,
                "pages_processed": len(page_results),
                "pages_total": page_count,
                "fallback_pages": sum(
                    r.outcome is PageOutcome.FELL_BACK_TO_PREVIEW for r in page_results
                ),
                "failed_pages": sum(r.outcome is PageOutcome.FAILED for r in page_results),
                "total_characters": len(text),
                "ocr_time_ms": timer.get_elapsed_ms(),
            },
        )

        return ExtractionResult(
            text=text,
            pages_processed=len(page_results),
            pages_total=page_count,
            warnings=warnings,
            page_results=page_results,
        )

    async def _process_page(
        self, path: str, page_number: int, engine: RecognitionEngine
    ) -> PageResult:
        """OCR one page; never raises.

        Rendering -> Succeeded, or Rendering -> preview -> FellBackToPreview,
        or Rendering -> preview -> Failed.
        """
        deadline = asyncio.get_running_loop().time() + self.config.page_timeout
        try:
            with Timer("page_ocr") as timer:
                image = await self.rasterizer.render(path, page_number, deadline=deadline)
                text = await self._recognize(engine, image.data, f"page {page_number}")
            logger.info(
                f"OCR completed for page {page_number}",
                extra_data={
                    "page_number": page_number,
                    "characters_extracted": len(text.strip()),
                    "ocr_time_ms": timer.get_elapsed_ms(),
                },
            )
            return PageResult(page_number, PageOutcome.SUCCEEDED, text=text.strip())
        except Exception as exc:
            first_error = exc
            logger.warning(
                f"Error processing page {page_number}, retrying with preview renderer",
                extra_data={
                    "page_number": page_number,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

        try:
            image = await self.rasterizer.render_preview(path, page_number)
            text = await self._recognize(engine, image.data, f"page {page_number} preview")
        except Exception as exc:
            logger.error(
                f"Fallback rendering also failed for page {page_number}",
                extra_data={
                    "page_number": page_number,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return PageResult(
                page_number,
                PageOutcome.FAILED,
                error=f"{first_error}; fallback failed: {exc}",
            )

        logger.info(
            f"Processed page {page_number} with fallback renderer",
            extra_data={
                "page_number": page_number,
                "placeholder": image.placeholder,
                "characters_extracted": len(text.strip()),
            },
        )
        return PageResult(
            page_number,
            PageOutcome.FELL_BACK_TO_PREVIEW,
            text=text.strip(),
            error=str(first_error),
        )

    async def _extract_image(self, path: str, engine: RecognitionEngine) -> ExtractionResult:
        try:
            with Timer("image_ocr") as timer:
                text = await self._recognize(engine, path, "image")
        except Exception as exc:
            logger.error(
                "Image OCR failed",
                extra_data={
                    "path": path,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
                exc_info=True,
            )
            raise ExtractionError(f"OCR processing failed: {exc}") from exc

        logger.info(
            "Image OCR completed",
            extra_data={
                "path": path,
                "characters_extracted": len(text.strip()),
                "ocr_time_ms": timer.get_elapsed_ms(),
            },
        )
        return ExtractionResult(text=text, pages_processed=1, pages_total=1)

    async def _extract_docx(self, path: str) -> ExtractionResult:
        try:
            with Timer("docx_extraction") as timer:
                text, paragraph_count, table_count = await asyncio.to_thread(_read_docx, path)
        except Exception as exc:
            logger.error(
                "DOCX extraction failed",
                extra_data={
                    "path": path,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            raise ExtractionError(f"DOCX processing failed: {exc}") from exc

        logger.debug(
            "DOCX extraction completed",
            extra_data={
                "path": path,
                "paragraph_count": paragraph_count,
                "table_count": table_count,
                "characters_extracted": len(text),
                "extraction_time_ms": timer.get_elapsed_ms(),
            },
        )
        return ExtractionResult(text=text, pages_processed=1, pages_total=1)


def _read_docx(path: str) -> tuple[str, int, int]:
    """Paragraph text followed by tables as pipe-separated rows."""
    doc = Document(path)

    paragraphs = [p.text.strip() for p in doc.paragraphs if p.text.strip()]

    tables = []
    for table in doc.tables:
        rows = [" | ".join(cell.text.strip() for cell in row.cells) for row in table.rows]
        if rows:
            tables.append("\n".join(rows))

    return "\n\n".join(paragraphs + tables), len(paragraphs), len(tables)


def _kind_for(path: str) -> DocumentKind:
    known = EXTENSION_TYPES.get(Path(path).suffix.lower())
    # Anything that is not a PDF or DOCX goes straight to the recognition engine
    return known[0] if known else DocumentKind.IMAGE
