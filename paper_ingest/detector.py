"""Upload admission: file type detection and size limits."""

import os
from pathlib import Path
from typing import Optional

from paper_ingest.config import MB, IngestConfig
from paper_ingest.exceptions import FileTooLargeError, IngestError, UnsupportedTypeError
from paper_ingest.logger import get_logger
from paper_ingest.models import DocumentKind, SourceDocument

logger = get_logger(__name__)


PDF_SIGNATURE = b"%PDF"
ZIP_SIGNATURE = b"PK\x03\x04"
PNG_SIGNATURE = b"\x89PNG"
GIF_SIGNATURES = (b"GIF87a", b"GIF89a")
TIFF_SIGNATURES = (b"II*\x00", b"MM\x00*")
BMP_SIGNATURE = b"BM"
JPEG_SIGNATURE = b"\xff\xd8\xff"

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

EXTENSION_TYPES: dict[str, tuple[DocumentKind, str]] = {
    ".pdf": (DocumentKind.PDF, "application/pdf"),
    ".docx": (DocumentKind.DOCX, DOCX_MIME_TYPE),
    ".png": (DocumentKind.IMAGE, "image/png"),
    ".jpg": (DocumentKind.IMAGE, "image/jpeg"),
    ".jpeg": (DocumentKind.IMAGE, "image/jpeg"),
    ".gif": (DocumentKind.IMAGE, "image/gif"),
    ".bmp": (DocumentKind.IMAGE, "image/bmp"),
    ".tif": (DocumentKind.IMAGE, "image/tiff"),
    ".tiff": (DocumentKind.IMAGE, "image/tiff"),
}

ALLOWED_MIME_TYPES = frozenset(mime for _, mime in EXTENSION_TYPES.values())

UNSUPPORTED_MESSAGE = "Invalid file type. Only PDF documents and images are allowed."


class DocumentDetector:
    """Decides whether an uploaded file is accepted and what kind it is.

    The extension decides the kind; the declared MIME type, when given, must
    be on the allow list. Signature sniffing only produces a log warning.
    """

    def __init__(self, config: Optional[IngestConfig] = None):
        self.config = config or IngestConfig()

    def detect(self, path: str, mime_type: Optional[str] = None) -> SourceDocument:
        """Admit an uploaded file.

        Raises:
            UnsupportedTypeError: If the extension or declared MIME type is not accepted
            FileTooLargeError: If the file exceeds ``max_upload_bytes``
        """
        extension = Path(path).suffix.lower()
        known = EXTENSION_TYPES.get(extension)
        if known is None:
            logger.warning(
                "Unsupported file extension",
                extra_data={"path": path, "file_extension": extension},
            )
            raise UnsupportedTypeError(UNSUPPORTED_MESSAGE)

        if mime_type and mime_type.lower() not in ALLOWED_MIME_TYPES:
            logger.warning(
                "Unsupported MIME type declared",
                extra_data={"path": path, "declared_mime_type": mime_type},
            )
            raise UnsupportedTypeError(UNSUPPORTED_MESSAGE)

        kind, default_mime = known
        try:
            byte_size = os.stat(path).st_size
        except OSError as exc:
            raise IngestError(f"Uploaded file is not readable: {exc}", status_code=400) from exc

        if byte_size > self.config.max_upload_bytes:
            logger.warning(
                "Upload exceeds size limit",
                extra_data={
                    "path": path,
                    "file_size_bytes": byte_size,
                    "max_upload_bytes": self.config.max_upload_bytes,
                },
            )
            raise FileTooLargeError(
                f"File is too large ({byte_size / MB:.1f} MB). Maximum allowed size is "
                f"{self.config.max_upload_bytes / MB:g} MB."
            )

        sniffed = self._sniff_kind(path)
        if sniffed is not None and sniffed is not kind:
            logger.warning(
                "File signature does not match extension",
                extra_data={
                    "path": path,
                    "file_extension": extension,
                    "sniffed_kind": sniffed,
                },
            )

        document = SourceDocument(
            path=path,
            declared_extension=extension,
            byte_size=byte_size,
            kind=kind,
            mime_type=(mime_type or default_mime).lower(),
        )
        logger.info(
            "Upload accepted",
            extra_data={
                "path": path,
                "kind": kind,
                "mime_type": document.mime_type,
                "file_size_bytes": byte_size,
            },
        )
        return document

    @staticmethod
    def _sniff_kind(path: str) -> Optional[DocumentKind]:
        """Guess the document kind from magic bytes; None if unknown or unreadable."""
        try:
            with open(path, "rb") as f:
                head = f.read(8)
        except OSError:
            return None
        if head.startswith(PDF_SIGNATURE):
            return DocumentKind.PDF
        if head.startswith(ZIP_SIGNATURE):
            # DOCX files are ZIP archives
            return DocumentKind.DOCX
        if (
            head.startswith(PNG_SIGNATURE)
            or head.startswith(JPEG_SIGNATURE)
            or head.startswith(GIF_SIGNATURES)
            or head.startswith(TIFF_SIGNATURES)
            or head.startswith(BMP_SIGNATURE)
        ):
            return DocumentKind.IMAGE
        return None
