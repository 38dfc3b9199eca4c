"""Process-wide single-flight gate for uploads."""

import threading
import time
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

from paper_ingest.exceptions import ProcessingBusyError
from paper_ingest.logger import get_logger

logger = get_logger(__name__)


BUSY_MESSAGE = "Another upload is currently being processed. Please try again in a moment."


class ProcessingGate(Protocol):
    def try_acquire(self, request_id: Optional[str] = None) -> bool: ...

    def release(self, request_id: Optional[str] = None) -> None: ...

    @property
    def is_busy(self) -> bool: ...


class SingleFlightGate:
    """Allows one upload at a time; competing uploads are rejected, not queued.

    The slot spans the whole upload request, so besides the pipeline itself
    the caller may release it after a later step (e.g. question generation)
    fails. ``release`` is idempotent.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._busy = False
        self._started: dict[str, float] = {}

    def try_acquire(self, request_id: Optional[str] = None) -> bool:
        with self._lock:
            if self._busy:
                logger.warning(
                    "Upload rejected, processing slot is taken",
                    extra_data={
                        "rejected_request_id": request_id,
                        "active_requests": list(self._started),
                    },
                )
                return False
            self._busy = True
            if request_id is not None:
                self._started[request_id] = time.time()
        logger.debug("Processing slot acquired", extra_data={"upload_id": request_id})
        return True

    def release(self, request_id: Optional[str] = None) -> None:
        with self._lock:
            was_busy = self._busy
            self._busy = False
            if request_id is not None:
                started = self._started.pop(request_id, None)
            else:
                started = None
                self._started.clear()
        if was_busy:
            logger.debug(
                "Processing slot released",
                extra_data={
                    "upload_id": request_id,
                    "held_ms": int((time.time() - started) * 1000) if started else None,
                },
            )

    @property
    def is_busy(self) -> bool:
        return self._busy

    def active_requests(self) -> dict[str, float]:
        """Request IDs currently holding the slot, with their start timestamps."""
        with self._lock:
            return dict(self._started)

    @contextmanager
    def hold(self, request_id: Optional[str] = None) -> Iterator[None]:
        """Hold the slot for the duration of the block.

        Raises:
            ProcessingBusyError: If the slot is already taken
        """
        if not self.try_acquire(request_id):
            raise ProcessingBusyError(BUSY_MESSAGE)
        try:
            yield
        finally:
            self.release(request_id)


class NullGate:
    """Gate that never blocks; for tests and single-user tools."""

    def try_acquire(self, request_id: Optional[str] = None) -> bool:
        return True

    def release(self, request_id: Optional[str] = None) -> None:
        return None

    @property
    def is_busy(self) -> bool:
        return False


default_gate = SingleFlightGate()


def reset_processing_status() -> None:
    """Release the process-wide slot, e.g. after question generation fails."""
    default_gate.release()
