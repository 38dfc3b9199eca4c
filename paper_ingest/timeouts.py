"""Bounded execution of blocking library calls."""

import asyncio
import functools
from typing import Any, Callable, Optional, TypeVar

from paper_ingest.exceptions import OperationTimeoutError
from paper_ingest.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def run_with_timeout(
    func: Callable[..., T],
    *args: Any,
    timeout: float,
    operation: str,
    error_cls: type[OperationTimeoutError] = OperationTimeoutError,
    on_late_result: Optional[Callable[[Any], None]] = None,
) -> T:
    """Run a blocking call in the default executor, bounded by ``timeout``.

    The worker thread cannot be interrupted, so on timeout the call keeps
    running and its eventual result is discarded. ``on_late_result`` is
    invoked with that result when it arrives, which is how abandoned
    resources (e.g. an opened document) get released. The still-running
    future is attached to the raised error as ``pending``.

    Raises:
        OperationTimeoutError: (or ``error_cls``) if the call does not finish in time
    """
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, functools.partial(func, *args))
    try:
        return await asyncio.wait_for(asyncio.shield(future), timeout)
    except asyncio.TimeoutError as exc:
        logger.warning(
            f"{operation} timed out",
            extra_data={"operation": operation, "timeout_s": timeout},
        )
        if on_late_result is not None:
            future.add_done_callback(functools.partial(_discard, on_late_result, operation))
        raise error_cls(
            f"{operation} timed out after {timeout:g} seconds",
            timeout=timeout,
            pending=future,
        ) from exc


def _discard(cleanup: Callable[[Any], None], operation: str, future: "asyncio.Future") -> None:
    if future.cancelled() or future.exception() is not None:
        return
    try:
        cleanup(future.result())
    except Exception as exc:
        logger.debug(
            "Cleanup of late result failed",
            extra_data={"operation": operation, "error": str(exc)},
        )
    logger.debug("Discarded late result", extra_data={"operation": operation})


def when_settled(pending: Optional["asyncio.Future"], callback: Callable[[], None]) -> None:
    """Run ``callback`` now, or once ``pending`` finishes if it is still running."""
    if pending is None or pending.done():
        callback()
        return

    def _settled(future: "asyncio.Future") -> None:
        if not future.cancelled():
            # Mark the exception retrieved; the caller already gave up on it
            future.exception()
        callback()

    pending.add_done_callback(_settled)


def remaining(deadline: Optional[float], timeout: float) -> float:
    """Clamp a stage timeout to what is left of an overall deadline."""
    if deadline is None:
        return timeout
    loop = asyncio.get_running_loop()
    return max(0.0, min(timeout, deadline - loop.time()))
