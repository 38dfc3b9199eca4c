from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Callable

import fitz
import pytest
import pytesseract

from paper_ingest.config import IngestConfig

from tests.fakes import write_slow_tesseract


def write_pdf(path: Path, pages: int, text: str = "Question {n}: explain the result.", **save_kwargs) -> Path:
    doc = fitz.open()
    for n in range(1, pages + 1):
        page = doc.new_page()
        page.insert_text((72, 72), text.format(n=n), fontsize=14)
    doc.save(str(path), **save_kwargs)
    doc.close()
    return path


@pytest.fixture
def make_pdf(tmp_path: Path) -> Callable[..., Path]:
    def _make(pages: int = 1, name: str = "paper.pdf", **kwargs) -> Path:
        return write_pdf(tmp_path / name, pages, **kwargs)

    return _make


@pytest.fixture
def fast_config() -> IngestConfig:
    return IngestConfig(batch_pause=0)


@pytest.fixture
def slow_tesseract(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> SimpleNamespace:
    """Point pytesseract at a binary that never finishes; exposes its PID file."""
    if sys.platform == "win32":
        pytest.skip("uses a shell script as the tesseract binary")
    pidfile = tmp_path / "tesseract.pid"
    monkeypatch.setenv("SLOW_TESSERACT_PIDFILE", str(pidfile))
    monkeypatch.setattr(pytesseract, "get_tesseract_version", lambda: "5.3.0")
    # TesseractEngine.start() sets this module global
    monkeypatch.setattr(pytesseract.pytesseract, "tesseract_cmd", pytesseract.pytesseract.tesseract_cmd)
    return SimpleNamespace(cmd=str(write_slow_tesseract(tmp_path)), pidfile=pidfile)
