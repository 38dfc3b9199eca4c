from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest

from paper_ingest.exceptions import (
    ExtractionError,
    FileTooLargeError,
    IngestError,
    InvalidDocumentError,
    ProcessingBusyError,
    UnsupportedTypeError,
)
from paper_ingest.gate import SingleFlightGate
from paper_ingest.handler import IngestPipeline
from paper_ingest.models import DocumentKind, ExtractionResult
from paper_ingest.config import IngestConfig

from tests.fakes import FakeEngine, FakePageCounter, FakeRasterizer


class FakeExtractor:
    def __init__(self, result: Optional[ExtractionResult] = None, error: Optional[Exception] = None):
        self.result = result or ExtractionResult(text="page 1\n\n", pages_processed=1, pages_total=1)
        self.error = error
        self.calls: list[tuple[str, DocumentKind]] = []

    async def extract(self, path: str, kind: Optional[DocumentKind] = None) -> ExtractionResult:
        self.calls.append((path, kind))
        if self.error is not None:
            raise self.error
        return self.result


def _pipeline(gate=None, extractor=None, config=None) -> IngestPipeline:
    return IngestPipeline(
        config=config or IngestConfig(batch_pause=0),
        gate=gate or SingleFlightGate(),
        extractor=extractor or FakeExtractor(),
    )


@pytest.mark.asyncio
async def test_pdf_is_validated_and_extracted(make_pdf) -> None:
    extractor = FakeExtractor(
        ExtractionResult(text="page 1\n\npage 2\n\n", pages_processed=2, pages_total=2)
    )
    gate = SingleFlightGate()
    path = make_pdf(pages=2)

    result = await _pipeline(gate, extractor).process(str(path), mime_type="application/pdf")

    assert result.text == "page 1\n\npage 2\n\n"
    assert result.page_count == 2
    assert result.processing_time_ms >= 0
    assert result.mime_type == "application/pdf"
    assert extractor.calls == [(str(path), DocumentKind.PDF)]
    assert gate.is_busy is False
    assert path.exists()


@pytest.mark.asyncio
async def test_result_serializes_for_caller(make_pdf) -> None:
    result = await _pipeline().process(str(make_pdf()))

    payload = result.to_dict()

    assert set(payload) >= {"text", "pageCount", "processingTimeMs"}


@pytest.mark.asyncio
async def test_invalid_pdf_is_rejected_with_issues(tmp_path: Path) -> None:
    path = tmp_path / "fake.pdf"
    path.write_bytes(b"PK\x03\x04 not really a pdf")
    extractor = FakeExtractor()
    gate = SingleFlightGate()

    with pytest.raises(InvalidDocumentError) as exc_info:
        await _pipeline(gate, extractor).process(str(path))

    error = exc_info.value
    assert error.status_code == 400
    assert error.message.startswith("Invalid PDF file. Not a valid PDF file.")
    assert error.to_dict()["issues"][0]["severity"] == "error"
    assert extractor.calls == []
    assert gate.is_busy is False
    assert path.exists()


@pytest.mark.asyncio
async def test_validation_warnings_are_carried_into_result(tmp_path: Path) -> None:
    path = tmp_path / "graphics.pdf"
    path.write_bytes(b"%PDF-1.4\n<< /XObject << >> >>\n")

    result = await _pipeline().process(str(path))

    assert any("complex graphics" in w for w in result.warnings)


@pytest.mark.asyncio
async def test_unsupported_type_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "notes.txt"
    path.write_text("hello")

    with pytest.raises(UnsupportedTypeError) as exc_info:
        await _pipeline().process(str(path))
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_oversized_upload_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "scan.png"
    path.write_bytes(b"\x89PNG" + b"0" * 4096)

    with pytest.raises(FileTooLargeError):
        await _pipeline(config=IngestConfig(max_upload_bytes=1024)).process(str(path))


@pytest.mark.asyncio
async def test_busy_gate_rejects_upload(tmp_path: Path) -> None:
    path = tmp_path / "scan.png"
    path.write_bytes(b"\x89PNG")
    gate = SingleFlightGate()
    gate.try_acquire("other-upload")
    extractor = FakeExtractor()

    with pytest.raises(ProcessingBusyError):
        await _pipeline(gate, extractor).process(str(path))

    assert extractor.calls == []
    assert gate.is_busy is True


@pytest.mark.asyncio
async def test_keep_gate_leaves_slot_for_caller(tmp_path: Path) -> None:
    path = tmp_path / "scan.png"
    path.write_bytes(b"\x89PNG")
    gate = SingleFlightGate()

    await _pipeline(gate).process(str(path), request_id="upload-1", keep_gate=True)

    assert gate.is_busy is True
    assert "upload-1" in gate.active_requests()
    gate.release("upload-1")
    assert gate.is_busy is False


@pytest.mark.asyncio
async def test_failure_releases_gate_even_with_keep_gate(tmp_path: Path) -> None:
    path = tmp_path / "paper.docx"
    path.write_bytes(b"PK\x03\x04")
    gate = SingleFlightGate()
    extractor = FakeExtractor(error=ExtractionError("DOCX processing failed: bad zip"))

    with pytest.raises(ExtractionError):
        await _pipeline(gate, extractor).process(str(path), keep_gate=True)

    assert gate.is_busy is False


@pytest.mark.asyncio
async def test_unexpected_failure_is_wrapped(tmp_path: Path) -> None:
    path = tmp_path / "scan.png"
    path.write_bytes(b"\x89PNG")
    extractor = FakeExtractor(error=KeyError("boom"))

    with pytest.raises(IngestError) as exc_info:
        await _pipeline(extractor=extractor).process(str(path))
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_end_to_end_with_fake_engine(make_pdf) -> None:
    from paper_ingest.extractor import DocumentTextExtractor
    from paper_ingest.rasterizer import RenderingEnvironment

    config = IngestConfig(batch_pause=0)
    extractor = DocumentTextExtractor(
        config=config,
        rasterizer=FakeRasterizer(render_fail=[3]),
        page_counter=FakePageCounter(3),
        engine_factory=FakeEngine,
        environment=RenderingEnvironment.create(),
    )

    result = await _pipeline(extractor=extractor, config=config).process(str(make_pdf(pages=3)))

    assert result.page_count == 3
    assert result.pages_processed == 3
    assert "[Note: simplified rendering used for page 3]" in result.text
    assert any("Page 3" in w for w in result.warnings)
