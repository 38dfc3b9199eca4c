"""High-level API for ingesting uploaded exam papers."""

import asyncio
from typing import Optional

from paper_ingest.config import IngestConfig
from paper_ingest.gate import ProcessingGate
from paper_ingest.handler import IngestPipeline
from paper_ingest.models import IngestResult


async def ingest_document(
    file_path: str,
    mime_type: Optional[str] = None,
    config: Optional[IngestConfig] = None,
    gate: Optional[ProcessingGate] = None,
    request_id: Optional[str] = None,
) -> IngestResult:
    """Validate, OCR and return the text of an uploaded file.

    Convenience wrapper building an :class:`IngestPipeline` per call. The
    process-wide gate is used unless ``gate`` is given, so concurrent calls
    are rejected with ``ProcessingBusyError``.

    Args:
        file_path: Path of the saved upload (PDF, DOCX or image)
        mime_type: MIME type declared by the client (optional)
        config: Ingestion limits (optional, uses defaults if not provided)
        gate: Concurrency gate (optional)
        request_id: Upload identifier for logs (optional)

    Returns:
        IngestResult with extracted text and metadata

    Examples:
        >>> result = await ingest_document("uploads/physics-2019.pdf")
        >>> print(result.page_count, result.text[:200])

        >>> # Tighter limits from the environment
        >>> result = await ingest_document("scan.png", config=IngestConfig.from_env())
    """
    pipeline = IngestPipeline(config=config, gate=gate)
    return await pipeline.process(file_path, mime_type=mime_type, request_id=request_id)


def ingest_document_sync(
    file_path: str,
    mime_type: Optional[str] = None,
    config: Optional[IngestConfig] = None,
    gate: Optional[ProcessingGate] = None,
    request_id: Optional[str] = None,
) -> IngestResult:
    """Blocking variant of :func:`ingest_document` for scripts and workers."""
    return asyncio.run(
        ingest_document(
            file_path,
            mime_type=mime_type,
            config=config,
            gate=gate,
            request_id=request_id,
        )
    )
