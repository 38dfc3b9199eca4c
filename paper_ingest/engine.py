"""Text recognition engines."""

import io
import os
from pathlib import Path
from typing import Optional, Protocol, Union

import pytesseract
from PIL import Image, ImageEnhance, ImageOps

from paper_ingest.config import OCRConfig
from paper_ingest.exceptions import EngineInitError
from paper_ingest.logger import Timer, get_logger

logger = get_logger(__name__)


ImageSource = Union[bytes, str, Path]


class RecognitionEngine(Protocol):
    """What the OCR orchestrator needs from a recognition engine.

    ``start`` and ``terminate`` bracket one document; ``recognize`` is
    blocking and is run off the event loop by the caller.
    """

    def start(self) -> None: ...

    def recognize(self, image: ImageSource) -> str: ...

    def terminate(self) -> None: ...


class TesseractEngine:
    """Tesseract OCR via pytesseract.

    ``timeout`` bounds each tesseract process; pytesseract kills the process
    when it expires and ``recognize`` raises ``RuntimeError``. 0 disables it.
    """

    def __init__(self, config: Optional[OCRConfig] = None, timeout: float = 0):
        self.config = config or OCRConfig()
        self.timeout = timeout
        self._started = False

    def start(self) -> None:
        """Point pytesseract at the configured binary and check it runs.

        Raises:
            EngineInitError: If tesseract is missing or cannot report its version
        """
        if self.config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd
        if self.config.tessdata_prefix:
            os.environ["TESSDATA_PREFIX"] = self.config.tessdata_prefix

        try:
            version = pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError) as exc:
            logger.error(
                "Tesseract is not available",
                extra_data={
                    "tesseract_cmd": self.config.tesseract_cmd,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            raise EngineInitError(f"Failed to initialize OCR engine: {exc}") from exc

        self._started = True
        logger.info(
            "Tesseract engine started",
            extra_data={
                "tesseract_version": version,
                "languages": self.config.languages,
                "tesseract_config": self.config.tesseract_config,
            },
        )

    def recognize(self, image: ImageSource) -> str:
        if not self._started:
            raise EngineInitError("OCR engine used before start()")

        with _open_image(image) as picture:
            prepared = self._preprocess(picture)
            with Timer("tesseract") as timer:
                text = pytesseract.image_to_string(
                    prepared,
                    lang=self.config.languages,
                    config=self.config.tesseract_config,
                    timeout=self.timeout,
                )

        logger.debug(
            "Tesseract recognition completed",
            extra_data={
                "image_width": prepared.width,
                "image_height": prepared.height,
                "characters_extracted": len(text.strip()),
                "ocr_time_ms": timer.get_elapsed_ms(),
            },
        )
        return text

    def terminate(self) -> None:
        if self._started:
            logger.debug("Tesseract engine terminated")
        self._started = False

    def _preprocess(self, image: Image.Image) -> Image.Image:
        if not self.config.enable_image_preprocessing:
            return image
        # Grayscale keeps memory down for large scans; contrast helps faded print
        image = ImageOps.grayscale(image)
        if self.config.contrast_enhancement != 1.0:
            image = ImageEnhance.Contrast(image).enhance(self.config.contrast_enhancement)
        return image


def _open_image(source: ImageSource) -> Image.Image:
    if isinstance(source, bytes):
        return Image.open(io.BytesIO(source))
    return Image.open(source)
