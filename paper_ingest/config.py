"""Configuration classes for the ingestion pipeline."""

import os
from dataclasses import dataclass, field, fields
from typing import Optional

from paper_ingest.exceptions import ConfigError

MB = 1024 * 1024


@dataclass
class OCRConfig:
    """Configuration for the Tesseract recognition engine.

    Examples:
        >>> # Default configuration (English exam papers)
        >>> config = OCRConfig()

        >>> # Bilingual papers with a custom tesseract binary
        >>> config = OCRConfig(languages="eng+fra", tesseract_cmd="/opt/tesseract/bin/tesseract")
    """

    tesseract_cmd: str = "tesseract"
    """Path to tesseract binary. Default: "tesseract" (assumes in PATH)."""

    tessdata_prefix: Optional[str] = None
    """Optional path to tessdata directory. If None, uses system default."""

    languages: str = "eng"
    """OCR languages in Tesseract format (e.g., "eng", "eng+fra")."""

    psm_mode: int = 3
    """Page segmentation mode (0-13). Default: 3 (fully automatic).

    Exam papers mix headings, numbered questions and diagrams, so automatic
    segmentation works better than 6 (uniform block of text).
    """

    use_oem_1: bool = True
    """Use Tesseract OEM 1 (LSTM engine only)."""

    enable_image_preprocessing: bool = True
    """Convert page images to grayscale and boost contrast before OCR."""

    contrast_enhancement: float = 1.2
    """Contrast factor applied when preprocessing is enabled (1.0 = none)."""

    @property
    def tesseract_config(self) -> str:
        parts = [f"--psm {self.psm_mode}"]
        if self.use_oem_1:
            parts.insert(0, "--oem 1")
        return " ".join(parts)


@dataclass
class IngestConfig:
    """Limits and timeouts for document ingestion.

    Every budget the pipeline enforces is a named field here so deployments
    can tune them without touching pipeline code. Timeouts are in seconds.

    Examples:
        >>> # Defaults: 8 pages, 2 pages per batch, 25s per page
        >>> config = IngestConfig()

        >>> # Larger documents on a bigger box
        >>> config = IngestConfig(max_pages=20, batch_size=4, max_dimension=2000)

        >>> # Read overrides from PAPER_INGEST_* environment variables
        >>> config = IngestConfig.from_env()
    """

    max_pages: int = 8
    """Maximum number of PDF pages OCR'd per document. Remaining pages are skipped."""

    batch_size: int = 2
    """Pages per batch. Pages are always processed one at a time; batches only
    decide where the recovery pause is inserted."""

    batch_pause: float = 0.5
    """Pause between batches so memory pressure can subside."""

    page_timeout: float = 25.0
    """Upper bound for rendering a single page at full fidelity."""

    ocr_timeout: float = 60.0
    """Upper bound for a single recognition call."""

    document_load_timeout: float = 15.0
    render_timeout: float = 20.0
    preview_load_timeout: float = 10.0
    preview_render_timeout: float = 15.0
    page_count_timeout: float = 15.0

    render_scale: float = 1.5
    """Zoom factor for full-fidelity rendering (1.0 = 72 dpi)."""

    max_dimension: int = 1500
    """Largest pixel width or height of a rendered page. Larger pages are
    uniformly downscaled, preserving aspect ratio."""

    preview_scale: float = 1.0
    preview_max_dimension: int = 800

    placeholder_size: tuple[int, int] = (800, 600)
    """Size of the image synthesized when even the preview render fails."""

    max_upload_bytes: int = 10 * MB
    """Upload size limit applied to every accepted file type."""

    max_pdf_bytes: int = 100 * MB
    """Structural ceiling checked by the PDF validator."""

    validation_sample_bytes: int = 8192
    """Number of leading bytes the PDF validator inspects."""

    page_count_fallback: bool = True
    """Fall back to the heuristic page count when the PDF cannot be parsed."""

    ocr: OCRConfig = field(default_factory=OCRConfig)

    def __post_init__(self) -> None:
        if self.max_pages < 1:
            raise ConfigError("max_pages must be at least 1")
        if self.batch_size < 1:
            raise ConfigError("batch_size must be at least 1")
        if self.max_dimension < 1 or self.preview_max_dimension < 1:
            raise ConfigError("max_dimension values must be positive")
        if self.render_scale <= 0 or self.preview_scale <= 0:
            raise ConfigError("render scales must be positive")
        for name in (
            "batch_pause",
            "page_timeout",
            "ocr_timeout",
            "document_load_timeout",
            "render_timeout",
            "preview_load_timeout",
            "preview_render_timeout",
            "page_count_timeout",
        ):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")

    @classmethod
    def from_env(cls, prefix: str = "PAPER_INGEST_") -> "IngestConfig":
        """Build a configuration from environment variables.

        Each scalar field can be overridden by ``<prefix><FIELD_NAME>``, e.g.
        ``PAPER_INGEST_MAX_PAGES=12``. Tesseract settings are read from
        ``TESSERACT_CMD``, ``TESSDATA_PREFIX`` and ``<prefix>OCR_LANGUAGES``.

        Raises:
            ConfigError: If a variable cannot be converted to the field type
        """
        overrides: dict = {}
        for f in fields(cls):
            if f.name in ("ocr", "placeholder_size"):
                continue
            raw = os.environ.get(prefix + f.name.upper())
            if raw is None or raw == "":
                continue
            overrides[f.name] = _coerce(f.name, raw, type(getattr(cls, f.name)))

        ocr = OCRConfig()
        if os.environ.get("TESSERACT_CMD"):
            ocr.tesseract_cmd = os.environ["TESSERACT_CMD"]
        if os.environ.get("TESSDATA_PREFIX"):
            ocr.tessdata_prefix = os.environ["TESSDATA_PREFIX"]
        if os.environ.get(prefix + "OCR_LANGUAGES"):
            ocr.languages = os.environ[prefix + "OCR_LANGUAGES"]
        if os.environ.get(prefix + "OCR_PSM_MODE"):
            ocr.psm_mode = _coerce("ocr_psm_mode", os.environ[prefix + "OCR_PSM_MODE"], int)

        return cls(ocr=ocr, **overrides)


def _coerce(name: str, raw: str, target: type):
    if target is bool:
        value = raw.strip().lower()
        if value in ("1", "true", "yes", "on"):
            return True
        if value in ("0", "false", "no", "off"):
            return False
        raise ConfigError(f"Invalid boolean for {name}: {raw!r}")
    try:
        return target(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid value for {name}: {raw!r}") from exc
