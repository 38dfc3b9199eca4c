"""PDF page rasterization with a full-fidelity path and a preview fallback."""

import asyncio
import functools
import io
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import fitz  # PyMuPDF
from PIL import Image, ImageDraw, ImageFont

from paper_ingest.config import IngestConfig
from paper_ingest.exceptions import OperationTimeoutError, PageRenderError, PageTimeoutError
from paper_ingest.logger import Timer, get_logger
from paper_ingest.models import PageImage
from paper_ingest.timeouts import remaining, run_with_timeout, when_settled

logger = get_logger(__name__)


RENDER_ERROR_KEYWORDS = ("render", "draw", "pixmap", "colorspace", "font")


def release_document(document: Any) -> None:
    """Release a parsed document's native resources. Safe to call repeatedly.

    Each of ``cleanup``, ``destroy`` and ``close`` is attempted if the object
    has it; failures are ignored so release can never mask the real outcome.
    """
    if document is None:
        return
    for name in ("cleanup", "destroy", "close"):
        method = getattr(document, name, None)
        if not callable(method):
            continue
        try:
            method()
        except Exception as exc:
            logger.debug(
                "Ignoring document cleanup error",
                extra_data={"method": name, "error": str(exc)},
            )


def fit_zoom(width: float, height: float, scale: float, max_dimension: int) -> float:
    """Zoom factor that applies ``scale`` but keeps both sides within ``max_dimension`` px."""
    largest = max(width, height) * scale
    if largest <= max_dimension or largest == 0:
        return scale
    return scale * (max_dimension / largest)


@dataclass
class RenderingEnvironment:
    """Process-level rendering setup shared by every rasterization call.

    Create it once with :meth:`create` at startup and pass it to the
    components that open documents. Tests can substitute ``open_document``.
    """

    open_document: Callable[[str], Any] = fitz.open
    display_errors: bool = False
    """Let MuPDF print its own error messages to stderr."""

    font_size: int = 24
    small_font_size: int = 18
    _fonts: dict = field(default_factory=dict, init=False, repr=False)

    @classmethod
    def create(cls, **kwargs) -> "RenderingEnvironment":
        environment = cls(**kwargs)
        environment.apply()
        return environment

    def apply(self) -> None:
        fitz.TOOLS.mupdf_display_errors(self.display_errors)
        logger.debug(
            "Rendering environment initialized",
            extra_data={
                "pymupdf_version": fitz.version[0],
                "display_errors": self.display_errors,
            },
        )

    def reclaim(self) -> None:
        """Drop MuPDF's cached fonts and images between pages."""
        fitz.TOOLS.store_shrink(100)

    def font(self, size: int):
        if size not in self._fonts:
            self._fonts[size] = ImageFont.load_default(size=size)
        return self._fonts[size]


@functools.lru_cache(maxsize=1)
def default_environment() -> RenderingEnvironment:
    return RenderingEnvironment.create()


@dataclass(frozen=True)
class _RenderProfile:
    scale: float
    max_dimension: int
    load_timeout: float
    render_timeout: float
    preview: bool


class PageRasterizer:
    """Renders single PDF pages to PNG.

    Every call opens its own document handle and releases it before
    returning, so no parsed document outlives the page it was opened for.
    """

    def __init__(
        self,
        environment: Optional[RenderingEnvironment] = None,
        config: Optional[IngestConfig] = None,
    ):
        self.environment = environment or default_environment()
        self.config = config or IngestConfig()
        self._full = _RenderProfile(
            scale=self.config.render_scale,
            max_dimension=self.config.max_dimension,
            load_timeout=self.config.document_load_timeout,
            render_timeout=self.config.render_timeout,
            preview=False,
        )
        self._preview = _RenderProfile(
            scale=self.config.preview_scale,
            max_dimension=self.config.preview_max_dimension,
            load_timeout=self.config.preview_load_timeout,
            render_timeout=self.config.preview_render_timeout,
            preview=True,
        )

    async def render(
        self, path: str, page_number: int, deadline: Optional[float] = None
    ) -> PageImage:
        """Render ``page_number`` (1-based) at full fidelity.

        Args:
            path: Path to the PDF file
            page_number: Page to render, starting at 1
            deadline: Optional event-loop time by which the whole render
                (load included) must finish

        Raises:
            PageTimeoutError: If loading or rendering runs out of time
            PageRenderError: If the page cannot be rendered
        """
        return await self._render(path, page_number, self._full, deadline)

    async def render_preview(self, path: str, page_number: int) -> PageImage:
        """Render a simplified grayscale preview, or a placeholder image.

        Annotations and form widgets are skipped and the resolution is
        lower. If even that fails, an image carrying an "Error rendering
        page N" message is returned instead so OCR always gets an image.
        """
        try:
            return await self._render(path, page_number, self._preview, None)
        except Exception as exc:
            logger.warning(
                "Preview rendering failed, using placeholder image",
                extra_data={
                    "path": path,
                    "page_number": page_number,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
        try:
            return self._placeholder(page_number)
        except Exception as exc:
            raise PageRenderError(
                f"Failed to create preview for page {page_number}", page_number
            ) from exc

    async def _render(
        self,
        path: str,
        page_number: int,
        profile: _RenderProfile,
        deadline: Optional[float],
    ) -> PageImage:
        label = "preview" if profile.preview else "page"
        document = None
        pending: Optional[asyncio.Future] = None
        stage = "load"

        try:
            with Timer(f"{label}_render") as timer:
                document = await run_with_timeout(
                    self.environment.open_document,
                    path,
                    timeout=remaining(deadline, profile.load_timeout),
                    operation=f"PDF {label} loading",
                    on_late_result=release_document,
                )
                stage = "render"
                image = await run_with_timeout(
                    self._rasterize,
                    document,
                    page_number,
                    profile,
                    timeout=remaining(deadline, profile.render_timeout),
                    operation=f"PDF {label} rendering",
                )

            logger.debug(
                f"Rendered {label} {page_number}",
                extra_data={
                    "path": path,
                    "page_number": page_number,
                    "width": image.width,
                    "height": image.height,
                    "png_bytes": len(image.data),
                    "render_time_ms": timer.get_elapsed_ms(),
                },
            )
            return image

        except OperationTimeoutError as exc:
            pending = exc.pending
            raise PageTimeoutError(
                f"Timeout while processing page {page_number}: The page is too "
                "complex or contains too many elements.",
                timeout=exc.timeout,
            ) from exc
        except Exception as exc:
            logger.error(
                f"Error rendering PDF {label}",
                extra_data={
                    "path": path,
                    "page_number": page_number,
                    "stage": stage,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            raise PageRenderError(_describe_failure(page_number, stage, exc), page_number) from exc
        finally:
            if document is not None:
                # A timed-out render may still be using the document
                when_settled(pending, functools.partial(release_document, document))

    @staticmethod
    def _rasterize(document: Any, page_number: int, profile: _RenderProfile) -> PageImage:
        page = document.load_page(page_number - 1)
        rect = page.rect
        zoom = fit_zoom(rect.width, rect.height, profile.scale, profile.max_dimension)
        pixmap = page.get_pixmap(
            matrix=fitz.Matrix(zoom, zoom),
            colorspace=fitz.csGRAY if profile.preview else fitz.csRGB,
            alpha=False,
            annots=not profile.preview,
        )
        return PageImage(
            page_number=page_number,
            data=pixmap.tobytes("png"),
            width=pixmap.width,
            height=pixmap.height,
            preview=profile.preview,
        )

    def _placeholder(self, page_number: int) -> PageImage:
        width, height = self.config.placeholder_size
        image = Image.new("RGB", (width, height), "#f0f0f0")
        draw = ImageDraw.Draw(image)
        draw.text(
            (50, 100),
            f"Error rendering page {page_number}",
            fill="#ff0000",
            font=self.environment.font(self.environment.font_size),
        )
        small = self.environment.font(self.environment.small_font_size)
        draw.text(
            (50, 150),
            "This page contains elements that cannot be rendered.",
            fill="#000000",
            font=small,
        )
        draw.text(
            (50, 180),
            "Try converting the PDF to a simpler format.",
            fill="#000000",
            font=small,
        )
        buffer = io.BytesIO()
        image.save(buffer, format="PNG", optimize=True)
        return PageImage(
            page_number=page_number,
            data=buffer.getvalue(),
            width=width,
            height=height,
            preview=True,
            placeholder=True,
        )


def _describe_failure(page_number: int, stage: str, exc: Exception) -> str:
    message = str(exc)
    if isinstance(exc, (IndexError, ValueError)):
        return f"Failed to convert PDF page {page_number} to image: {message}"
    if stage == "render" or any(k in message.lower() for k in RENDER_ERROR_KEYWORDS):
        return (
            f"Rendering error on page {page_number}: The PDF contains elements that "
            "cannot be rendered. Try converting the PDF to a different format."
        )
    return f"Failed to convert PDF page {page_number} to image: {message or type(exc).__name__}"
