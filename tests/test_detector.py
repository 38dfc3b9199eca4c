from __future__ import annotations

from pathlib import Path

import pytest

from paper_ingest.config import IngestConfig
from paper_ingest.detector import DOCX_MIME_TYPE, DocumentDetector
from paper_ingest.exceptions import FileTooLargeError, IngestError, UnsupportedTypeError
from paper_ingest.models import DocumentKind


@pytest.mark.parametrize(
    "name, kind, mime",
    [
        ("paper.pdf", DocumentKind.PDF, "application/pdf"),
        ("paper.docx", DocumentKind.DOCX, DOCX_MIME_TYPE),
        ("scan.PNG", DocumentKind.IMAGE, "image/png"),
        ("scan.jpeg", DocumentKind.IMAGE, "image/jpeg"),
        ("scan.tiff", DocumentKind.IMAGE, "image/tiff"),
    ],
)
def test_kind_follows_extension(tmp_path: Path, name: str, kind: DocumentKind, mime: str) -> None:
    path = tmp_path / name
    path.write_bytes(b"payload")

    document = DocumentDetector().detect(str(path))

    assert document.kind is kind
    assert document.mime_type == mime
    assert document.byte_size == 7
    assert document.declared_extension == Path(name).suffix.lower()


def test_declared_mime_type_is_kept(tmp_path: Path) -> None:
    path = tmp_path / "scan.jpg"
    path.write_bytes(b"\xff\xd8\xff")

    document = DocumentDetector().detect(str(path), "IMAGE/JPEG")

    assert document.mime_type == "image/jpeg"


@pytest.mark.parametrize("name", ["notes.txt", "slides.pptx", "archive"])
def test_unknown_extension_is_rejected(tmp_path: Path, name: str) -> None:
    path = tmp_path / name
    path.write_bytes(b"payload")

    with pytest.raises(UnsupportedTypeError) as exc_info:
        DocumentDetector().detect(str(path))
    assert exc_info.value.status_code == 400


def test_disallowed_mime_type_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "paper.pdf"
    path.write_bytes(b"%PDF-1.4")

    with pytest.raises(UnsupportedTypeError):
        DocumentDetector().detect(str(path), "text/html")


def test_signature_mismatch_is_not_fatal(tmp_path: Path) -> None:
    path = tmp_path / "scan.png"
    path.write_bytes(b"%PDF-1.4")

    assert DocumentDetector().detect(str(path)).kind is DocumentKind.IMAGE


def test_upload_limit(tmp_path: Path) -> None:
    path = tmp_path / "paper.pdf"
    path.write_bytes(b"%PDF-" + b"0" * 2048)
    detector = DocumentDetector(IngestConfig(max_upload_bytes=1024))

    with pytest.raises(FileTooLargeError) as exc_info:
        detector.detect(str(path))
    assert exc_info.value.status_code == 400


def test_missing_file_is_client_error(tmp_path: Path) -> None:
    with pytest.raises(IngestError) as exc_info:
        DocumentDetector().detect(str(tmp_path / "gone.pdf"))
    assert exc_info.value.status_code == 400
