"""Custom exceptions for the ingestion pipeline.

Each exception carries a suggested HTTP status so the route handler can map
failures without inspecting messages. The mapping itself stays with the caller.
"""

from typing import Any, Optional


class PaperIngestError(Exception):
    """Base exception for ingestion errors."""

    status_code: int = 500

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message}


class ConfigError(PaperIngestError):
    """Raised when configuration values are invalid."""

    pass


class UnsupportedTypeError(PaperIngestError):
    """Raised when the uploaded file type is not accepted."""

    status_code = 400


class FileTooLargeError(PaperIngestError):
    """Raised when the upload exceeds the configured size limit."""

    status_code = 400


class InvalidDocumentError(PaperIngestError):
    """Raised when a PDF fails structural validation."""

    status_code = 400

    def __init__(
        self,
        message: str,
        issues: Optional[list] = None,
        recommendations: Optional[list[str]] = None,
    ):
        super().__init__(message)
        self.issues = issues or []
        self.recommendations = recommendations or []

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["issues"] = [
            {"severity": str(issue.severity), "message": issue.message}
            for issue in self.issues
        ]
        if self.recommendations:
            payload["recommendations"] = list(self.recommendations)
        return payload


class PasswordProtectedError(PaperIngestError):
    """Raised when a PDF requires a password to open."""

    status_code = 400


class OperationTimeoutError(PaperIngestError):
    """Raised when a bounded operation exceeds its time budget.

    ``pending`` is the still-running future of the abandoned operation, if
    any. Callers owning resources used by that operation must defer their
    release until it completes.
    """

    status_code = 408

    def __init__(self, message: str, timeout: float = 0.0, pending: Any = None):
        super().__init__(message)
        self.timeout = timeout
        self.pending = pending


class PageTimeoutError(OperationTimeoutError):
    """Raised when a single page exceeds its rendering budget."""

    pass


class PageCountTimeoutError(OperationTimeoutError):
    """Raised when the page tree cannot be read in time."""

    pass


class PageCountError(PaperIngestError):
    """Raised when the page count cannot be determined."""

    pass


class PageRenderError(PaperIngestError):
    """Raised when a PDF page cannot be converted to an image."""

    def __init__(self, message: str, page_number: int):
        super().__init__(message)
        self.page_number = page_number


class EngineInitError(PaperIngestError):
    """Raised when the recognition engine cannot be started."""

    pass


class ExtractionError(PaperIngestError):
    """Raised when text extraction fails."""

    pass


class ProcessingBusyError(PaperIngestError):
    """Raised when another upload already holds the processing slot."""

    status_code = 429


class IngestError(PaperIngestError):
    """Raised for unclassified pipeline failures."""

    pass
