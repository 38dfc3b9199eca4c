from __future__ import annotations

import time
from pathlib import Path

import fitz
import pytest

from paper_ingest.config import IngestConfig
from paper_ingest.exceptions import PageCountError, PageCountTimeoutError, PasswordProtectedError
from paper_ingest.page_count import PageCountEstimator
from paper_ingest.rasterizer import PageRasterizer, RenderingEnvironment, default_environment


class TrackedDocument:
    def __init__(self, page_count: int = 3) -> None:
        self.page_count = page_count
        self.needs_pass = False
        self.closed = 0

    def close(self) -> None:
        self.closed += 1


@pytest.mark.asyncio
async def test_authoritative_count_reads_page_tree(make_pdf) -> None:
    estimator = PageCountEstimator()

    assert await estimator.count_authoritative(str(make_pdf(pages=5))) == 5


@pytest.mark.asyncio
async def test_authoritative_count_releases_document(tmp_path: Path) -> None:
    document = TrackedDocument(page_count=4)
    environment = RenderingEnvironment(open_document=lambda path: document)
    estimator = PageCountEstimator(environment=environment)

    assert await estimator.count_authoritative(str(tmp_path / "x.pdf")) == 4
    assert document.closed == 1


@pytest.mark.asyncio
async def test_password_protected_pdf_is_reported(make_pdf) -> None:
    path = make_pdf(
        pages=2,
        encryption=fitz.PDF_ENCRYPT_AES_256,
        user_pw="secret",
        owner_pw="owner-secret",
    )

    with pytest.raises(PasswordProtectedError) as exc_info:
        await PageCountEstimator().count(str(path))
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_slow_parse_times_out(tmp_path: Path) -> None:
    def slow_open(path: str) -> TrackedDocument:
        time.sleep(0.3)
        return TrackedDocument()

    config = IngestConfig(page_count_timeout=0.05, page_count_fallback=False)
    estimator = PageCountEstimator(config, RenderingEnvironment(open_document=slow_open))

    with pytest.raises(PageCountTimeoutError) as exc_info:
        await estimator.count(str(tmp_path / "slow.pdf"))
    assert "timed out" in str(exc_info.value)
    assert exc_info.value.status_code == 408


@pytest.mark.asyncio
async def test_corrupt_pdf_falls_back_to_heuristic(tmp_path: Path) -> None:
    path = tmp_path / "broken.pdf"
    path.write_bytes(
        b"%PDF-1.4\n"
        b"3 0 obj << /Type /Page /Parent 2 0 R >> endobj\n"
        b"4 0 obj << /Type /Page /Parent 2 0 R >> endobj\n"
        b"garbage without xref"
    )

    def broken_open(p: str):
        raise RuntimeError("cannot open broken document")

    estimator = PageCountEstimator(environment=RenderingEnvironment(open_document=broken_open))

    assert await estimator.count(str(path)) == 2


@pytest.mark.asyncio
async def test_parse_failure_without_readable_file_is_fatal(tmp_path: Path) -> None:
    def broken_open(p: str):
        raise RuntimeError("no such file")

    estimator = PageCountEstimator(environment=RenderingEnvironment(open_document=broken_open))

    with pytest.raises(PageCountError) as exc_info:
        await estimator.count(str(tmp_path / "missing.pdf"))
    assert str(exc_info.value).startswith("Failed to process PDF")


def test_estimate_counts_page_objects_not_page_tree(make_pdf) -> None:
    assert PageCountEstimator().estimate(str(make_pdf(pages=4))) == 4


def test_estimate_uses_object_count_without_page_markers(tmp_path: Path) -> None:
    path = tmp_path / "objects.pdf"
    path.write_bytes(b"%PDF-1.5\n" + b"".join(b"%d 0 obj\nendobj\n" % i for i in range(1, 24)))

    assert PageCountEstimator().estimate(str(path)) == 3


def test_estimate_defaults_to_one(tmp_path: Path) -> None:
    path = tmp_path / "tiny.pdf"
    path.write_bytes(b"%PDF-1.4\n1 0 obj\nendobj\n")

    assert PageCountEstimator().estimate(str(path)) == 1
    assert PageCountEstimator().estimate(str(tmp_path / "missing.pdf")) == 1


def test_default_estimator_shares_process_environment() -> None:
    estimator = PageCountEstimator()

    assert estimator.environment is default_environment()
    assert estimator.environment is PageRasterizer().environment
