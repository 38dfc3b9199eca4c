"""Structured logging utilities for paper-ingest."""

import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Optional

# Request ID of the upload currently being ingested in this context
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class ContextLogger:
    """Logger wrapper that appends structured data to log messages."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    @staticmethod
    def _format_extra_data(extra_data: Optional[dict[str, Any]]) -> str:
        if not extra_data:
            return ""
        parts = [f"{k}={v}" for k, v in extra_data.items()]
        return " [" + ", ".join(parts) + "]"

    def _log(self, level: int, msg: str, extra_data: Optional[dict[str, Any]] = None, **kwargs):
        if not self.logger.isEnabledFor(level):
            return
        request_id = request_id_var.get()
        if request_id:
            extra_data = dict(extra_data or {})
            extra_data["request_id"] = request_id
        self.logger.log(level, msg + self._format_extra_data(extra_data), **kwargs)

    def debug(self, msg: str, extra_data: Optional[dict[str, Any]] = None, **kwargs):
        self._log(logging.DEBUG, msg, extra_data, **kwargs)

    def info(self, msg: str, extra_data: Optional[dict[str, Any]] = None, **kwargs):
        self._log(logging.INFO, msg, extra_data, **kwargs)

    def warning(self, msg: str, extra_data: Optional[dict[str, Any]] = None, **kwargs):
        self._log(logging.WARNING, msg, extra_data, **kwargs)

    def error(self, msg: str, extra_data: Optional[dict[str, Any]] = None, **kwargs):
        self._log(logging.ERROR, msg, extra_data, **kwargs)

    def critical(self, msg: str, extra_data: Optional[dict[str, Any]] = None, **kwargs):
        self._log(logging.CRITICAL, msg, extra_data, **kwargs)


def setup_logging(log_level: str = "INFO"):
    """Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # PIL's PNG plugin logs every chunk at DEBUG
    logging.getLogger("PIL").setLevel(max(level, logging.INFO))


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger instance.

    Args:
        name: Logger name (typically __name__)
    """
    return ContextLogger(logging.getLogger(name))


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, a new UUID is generated.

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> Optional[str]:
    return request_id_var.get()


@contextmanager
def request_context(request_id: Optional[str] = None) -> Iterator[str]:
    """Bind a request ID for the duration of the block, then restore the previous one."""
    token = request_id_var.set(request_id or str(uuid.uuid4()))
    try:
        yield request_id_var.get()
    finally:
        request_id_var.reset(token)


class Timer:
    """Context manager for timing operations."""

    def __init__(self, name: str):
        self.name = name
        self.start_time: Optional[float] = None
        self.elapsed_ms: Optional[int] = None

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        if self.start_time is not None:
            self.elapsed_ms = int((time.perf_counter() - self.start_time) * 1000)

    def get_elapsed_ms(self) -> int:
        """Elapsed time in milliseconds; usable while the block is still running."""
        if self.elapsed_ms is not None:
            return self.elapsed_ms
        if self.start_time is not None:
            return int((time.perf_counter() - self.start_time) * 1000)
        return 0
