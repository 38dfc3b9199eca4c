"""PDF page count: page-tree lookup with a structural heuristic fallback."""

import math
import re
from typing import Optional

from paper_ingest.config import IngestConfig
from paper_ingest.exceptions import (
    OperationTimeoutError,
    PageCountError,
    PageCountTimeoutError,
    PasswordProtectedError,
)
from paper_ingest.logger import Timer, get_logger
from paper_ingest.rasterizer import RenderingEnvironment, default_environment, release_document
from paper_ingest.timeouts import run_with_timeout

logger = get_logger(__name__)


PAGE_OBJECT_PATTERN = re.compile(r"/Type\s*/Page(?!s)")
INDIRECT_OBJECT_PATTERN = re.compile(r"\d+\s+\d+\s+obj")
MIN_OBJECTS_FOR_ESTIMATE = 5
OBJECTS_PER_PAGE = 10


class PageCountEstimator:
    """Determines how many pages a PDF has.

    ``count_authoritative`` parses the page tree and is exact. ``estimate``
    scans raw bytes and is a rough, lower-confidence guess that never fails.
    ``count`` composes the two.
    """

    def __init__(
        self,
        config: Optional[IngestConfig] = None,
        environment: Optional[RenderingEnvironment] = None,
    ):
        self.config = config or IngestConfig()
        self.environment = environment or default_environment()

    async def count(self, path: str) -> int:
        """Page count, falling back to the heuristic when parsing fails.

        Raises:
            PasswordProtectedError: If the document needs a password
            PageCountError: If the document cannot be parsed and the raw
                file cannot be scanned either (or fallback is disabled)
        """
        try:
            return await self.count_authoritative(path)
        except PasswordProtectedError:
            raise
        except (PageCountError, OperationTimeoutError) as exc:
            if not self.config.page_count_fallback:
                raise
            estimated = self._scan(path)
            if estimated is None:
                raise
            logger.warning(
                "Using estimated page count",
                extra_data={
                    "path": path,
                    "estimated_pages": estimated,
                    "reason": str(exc),
                },
            )
            return estimated

    async def count_authoritative(self, path: str) -> int:
        """Read the page count from the document's page tree.

        Raises:
            PasswordProtectedError: If the document needs a password
            PageCountTimeoutError: If parsing exceeds ``page_count_timeout``
            PageCountError: For any other parse failure
        """
        try:
            with Timer("page_count") as timer:
                page_count = await run_with_timeout(
                    self._read_page_count,
                    path,
                    timeout=self.config.page_count_timeout,
                    operation="PDF loading",
                    error_cls=PageCountTimeoutError,
                )
        except PasswordProtectedError:
            raise
        except PageCountTimeoutError as exc:
            raise PageCountTimeoutError(
                "PDF processing timed out. The file may be too large or complex.",
                timeout=exc.timeout,
                pending=exc.pending,
            ) from exc
        except Exception as exc:
            logger.error(
                "Failed to get PDF page count",
                extra_data={
                    "path": path,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            if "password" in str(exc).lower():
                raise PasswordProtectedError(
                    "Password-protected PDF detected. Please remove the password and try again."
                ) from exc
            raise PageCountError(f"Failed to process PDF: {exc}") from exc

        logger.debug(
            "PDF page count read from page tree",
            extra_data={
                "path": path,
                "page_count": page_count,
                "elapsed_ms": timer.get_elapsed_ms(),
            },
        )
        return page_count

    def _read_page_count(self, path: str) -> int:
        document = self.environment.open_document(path)
        try:
            if getattr(document, "needs_pass", False):
                raise PasswordProtectedError(
                    "Password-protected PDF detected. Please remove the password and try again."
                )
            return document.page_count
        finally:
            release_document(document)

    def estimate(self, path: str) -> int:
        """Rough page count from raw PDF structure. Never raises."""
        estimated = self._scan(path)
        return 1 if estimated is None else estimated

    @staticmethod
    def _scan(path: str) -> Optional[int]:
        """Heuristic page count, or None if the file cannot be read."""
        try:
            with open(path, "r", encoding="latin-1") as f:
                data = f.read()
        except OSError as exc:
            logger.error(
                "Error estimating PDF page count",
                extra_data={"path": path, "error": str(exc)},
            )
            return None

        page_markers = len(PAGE_OBJECT_PATTERN.findall(data))
        if page_markers > 0:
            return page_markers

        # Compressed object streams hide page dictionaries; approximate from
        # the number of indirect objects instead.
        objects = len(INDIRECT_OBJECT_PATTERN.findall(data))
        if objects > MIN_OBJECTS_FOR_ESTIMATE:
            return max(1, math.ceil(objects / OBJECTS_PER_PAGE))

        return 1
